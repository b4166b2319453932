"""
Confidential Record Store.

Append-only table of records keyed by a monotonic id, a secondary
owner -> ids index, and a registry of serialized ciphertexts keyed by
handle. Records expose handles only; nothing here can decrypt.
"""

import json
import sqlite3
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

from .canonicalization import canonicalize_str
from .db import STATE_RECORD_COUNTER, LedgerDatabase
from .errors import NotFoundError


@dataclass(frozen=True)
class ConfidentialRecord:
    id: int
    owner: str
    input_handles: Dict[str, str]
    score_handle: str
    created_at: int
    decryption_requested: bool

    def metadata(self) -> Dict[str, Any]:
        """Public metadata, visible to any caller."""
        return {
            "owner": self.owner,
            "timestamp": self.created_at,
            "requested": self.decryption_requested,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner": self.owner,
            "inputs": dict(self.input_handles),
            "score": self.score_handle,
            "timestamp": self.created_at,
            "requested": self.decryption_requested,
        }


def _row_to_record(row: sqlite3.Row) -> ConfidentialRecord:
    return ConfidentialRecord(
        id=row["id"],
        owner=row["owner"],
        input_handles=json.loads(row["inputs_json"]),
        score_handle=row["score_handle"],
        created_at=row["created_at"],
        decryption_requested=bool(row["decryption_requested"]),
    )


class RecordStore:
    """Record table, owner index and ciphertext registry."""

    def __init__(self, db: LedgerDatabase):
        self._db = db

    def insert(
        self,
        conn: sqlite3.Connection,
        owner: str,
        inputs: Mapping[str, Mapping[str, Any]],
        input_handles: Mapping[str, str],
        score: Mapping[str, Any],
        score_handle: str,
        created_at: int,
    ) -> int:
        """
        Allocate the next id and write the record, its index entry and its
        ciphertexts. Must run inside ``LedgerDatabase.transaction()``.
        """
        record_id = LedgerDatabase.get_state_in(conn, STATE_RECORD_COUNTER) + 1
        LedgerDatabase.set_state_in(conn, STATE_RECORD_COUNTER, record_id)

        for name, serialized in inputs.items():
            self._put_ciphertext(conn, input_handles[name], serialized)
        self._put_ciphertext(conn, score_handle, score)

        conn.execute(
            "INSERT INTO records(id, owner, inputs_json, score_handle, created_at) VALUES(?,?,?,?,?)",
            (record_id, owner, canonicalize_str(dict(input_handles)), score_handle, created_at),
        )
        position = conn.execute(
            "SELECT COUNT(*) AS cnt FROM owner_index WHERE owner=?", (owner,)
        ).fetchone()["cnt"]
        conn.execute(
            "INSERT INTO owner_index(owner, position, record_id) VALUES(?,?,?)",
            (owner, position, record_id),
        )
        return record_id

    @staticmethod
    def _put_ciphertext(conn: sqlite3.Connection, handle: str, serialized: Mapping[str, Any]) -> None:
        # Handles are content addresses: an existing row holds the same bytes.
        conn.execute(
            "INSERT OR IGNORE INTO ciphertexts(handle, payload_json) VALUES(?,?)",
            (handle, canonicalize_str(dict(serialized))),
        )

    def get(self, record_id: int) -> ConfidentialRecord:
        with self._db.read() as conn:
            return self.get_in(conn, record_id)

    @staticmethod
    def get_in(conn: sqlite3.Connection, record_id: int) -> ConfidentialRecord:
        row = conn.execute("SELECT * FROM records WHERE id=?", (record_id,)).fetchone()
        if row is None:
            raise NotFoundError(record_id)
        return _row_to_record(row)

    def list_by_owner(self, owner: str) -> List[int]:
        """Record ids of ``owner`` in submission order; empty for unknown owners."""
        with self._db.read() as conn:
            rows = conn.execute(
                "SELECT record_id FROM owner_index WHERE owner=? ORDER BY position ASC", (owner,)
            ).fetchall()
        return [row["record_id"] for row in rows]

    def count(self) -> int:
        return self._db.get_state(STATE_RECORD_COUNTER)

    def count_by_owner(self, owner: str) -> int:
        with self._db.read() as conn:
            return conn.execute(
                "SELECT COUNT(*) AS cnt FROM owner_index WHERE owner=?", (owner,)
            ).fetchone()["cnt"]

    def mark_requested(self, conn: sqlite3.Connection, record_id: int, requested_at: int) -> bool:
        """
        Compare-and-set the requested flag.
        Returns True only for the call that flipped it.
        """
        cur = conn.execute(
            "UPDATE records SET decryption_requested=1, requested_at=? "
            "WHERE id=? AND decryption_requested=0",
            (requested_at, record_id),
        )
        return cur.rowcount == 1

    def load_ciphertext(self, handle: str) -> Dict[str, Any]:
        with self._db.read() as conn:
            row = conn.execute(
                "SELECT payload_json FROM ciphertexts WHERE handle=?", (handle,)
            ).fetchone()
        if row is None:
            raise KeyError(handle)
        return json.loads(row["payload_json"])
