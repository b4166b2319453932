"""
Ledger event log and notifications.

Every state transition appends an entry to a hash-chained, append-only
log inside the same transaction as the transition itself. Subscribers are
notified only after the transaction has committed, so an observer never
sees an event for state that was rolled back.
"""

import json
import logging
import sqlite3
import threading
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .canonicalization import canonicalize_str
from .db import LedgerDatabase
from .hashing import chain_entry_hash, payload_hash

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    RECORD_CREATED = "RECORD_CREATED"
    DECRYPTION_REQUESTED = "DECRYPTION_REQUESTED"
    DECRYPTION_FULFILLED = "DECRYPTION_FULFILLED"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"


@dataclass(frozen=True)
class LedgerEvent:
    seq: int
    kind: EventKind
    created_at: int
    payload: Dict[str, Any]
    payload_hash: str
    prev_entry_hash: Optional[str]
    entry_hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "kind": self.kind.value,
            "created_at": self.created_at,
            "payload": self.payload,
            "payload_hash": self.payload_hash,
            "prev_entry_hash": self.prev_entry_hash,
            "entry_hash": self.entry_hash,
        }


Subscriber = Callable[[LedgerEvent], None]


class EventLog:
    """Hash-chained event log stored in the ledger database."""

    def __init__(self, db: LedgerDatabase):
        self._db = db

    def append(self, conn: sqlite3.Connection, kind: EventKind, payload: Dict[str, Any], created_at: int) -> LedgerEvent:
        """Append within the caller's open transaction."""
        row = conn.execute("SELECT entry_hash FROM event_log ORDER BY seq DESC LIMIT 1").fetchone()
        prev = row["entry_hash"] if row else None
        p_hash = payload_hash(payload)
        entry_hash = chain_entry_hash(prev, p_hash)
        cur = conn.execute(
            "INSERT INTO event_log(kind, created_at, payload_json, payload_hash, prev_entry_hash, entry_hash) "
            "VALUES(?,?,?,?,?,?)",
            (kind.value, created_at, canonicalize_str(payload), p_hash, prev, entry_hash),
        )
        return LedgerEvent(
            seq=cur.lastrowid,
            kind=kind,
            created_at=created_at,
            payload=payload,
            payload_hash=p_hash,
            prev_entry_hash=prev,
            entry_hash=entry_hash,
        )

    def export(self, kind: Optional[EventKind] = None) -> List[LedgerEvent]:
        query = (
            "SELECT seq, kind, created_at, payload_json, payload_hash, prev_entry_hash, entry_hash "
            "FROM event_log"
        )
        params: Tuple = ()
        if kind is not None:
            query += " WHERE kind=?"
            params = (kind.value,)
        query += " ORDER BY seq ASC"
        with self._db.read() as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            LedgerEvent(
                seq=row["seq"],
                kind=EventKind(row["kind"]),
                created_at=row["created_at"],
                payload=json.loads(row["payload_json"]),
                payload_hash=row["payload_hash"],
                prev_entry_hash=row["prev_entry_hash"],
                entry_hash=row["entry_hash"],
            )
            for row in rows
        ]

    def verify_chain(self) -> Tuple[bool, str]:
        """
        Recompute every payload hash and chain link.
        Returns (valid, reason).
        """
        prev = None
        for event in self.export():
            if payload_hash(event.payload) != event.payload_hash:
                return False, f"payload hash mismatch at seq {event.seq}"
            if event.prev_entry_hash != prev:
                return False, f"broken link at seq {event.seq}"
            if chain_entry_hash(prev, event.payload_hash) != event.entry_hash:
                return False, f"entry hash mismatch at seq {event.seq}"
            prev = event.entry_hash
        return True, "ok"


class EventBus:
    """In-process publish/subscribe for committed ledger events."""

    def __init__(self):
        self._subscribers: Dict[EventKind, List[Subscriber]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, kind: EventKind, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers[kind].append(callback)

    def publish(self, event: LedgerEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers[event.kind])
        for callback in callbacks:
            # Already committed: log the failure, keep notifying.
            try:
                callback(event)
            except Exception:
                logger.exception("subscriber %r failed on %s #%s", callback, event.kind.value, event.seq)
