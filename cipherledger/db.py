"""
Database module for the confidential ledger.

SQLite storage for records, the owner index, ciphertexts, capability
grants, the scalar ledger state (record counter and balance), decryption
results and the event log.

Every write runs inside ``transaction()``: an in-process re-entrant lock
plus ``BEGIN IMMEDIATE``, so the write lock is taken up front and a
multi-table unit (record + index + grants + balance + event) either
commits as a whole or not at all. Nested ``transaction()`` calls join the
outer one.
"""

import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Union

MEMORY = ":memory:"

STATE_RECORD_COUNTER = "record_counter"
STATE_BALANCE = "balance"

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS records (
        id INTEGER PRIMARY KEY,
        owner TEXT NOT NULL,
        inputs_json TEXT NOT NULL,
        score_handle TEXT NOT NULL,
        created_at INTEGER NOT NULL,
        decryption_requested INTEGER NOT NULL DEFAULT 0,
        requested_at INTEGER
    );""",
    """
    CREATE TABLE IF NOT EXISTS owner_index (
        owner TEXT NOT NULL,
        position INTEGER NOT NULL,
        record_id INTEGER NOT NULL UNIQUE,
        PRIMARY KEY (owner, position)
    );""",
    """
    CREATE TABLE IF NOT EXISTS ciphertexts (
        handle TEXT PRIMARY KEY,
        payload_json TEXT NOT NULL
    );""",
    """
    CREATE TABLE IF NOT EXISTS capability_grants (
        handle TEXT NOT NULL,
        grantee TEXT NOT NULL,
        granted_at INTEGER NOT NULL,
        PRIMARY KEY (handle, grantee)
    );""",
    # Values are decimal strings: balances outgrow 64-bit integers.
    """
    CREATE TABLE IF NOT EXISTS ledger_state (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );""",
    """
    CREATE TABLE IF NOT EXISTS decryption_results (
        record_id INTEGER PRIMARY KEY,
        plaintext INTEGER NOT NULL,
        oracle_kid TEXT NOT NULL,
        fulfilled_at INTEGER NOT NULL
    );""",
    """
    CREATE TABLE IF NOT EXISTS event_log (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        kind TEXT NOT NULL,
        created_at INTEGER NOT NULL,
        payload_json TEXT NOT NULL,
        payload_hash TEXT NOT NULL,
        prev_entry_hash TEXT,
        entry_hash TEXT NOT NULL
    );""",
    "CREATE INDEX IF NOT EXISTS idx_records_owner ON records(owner);",
    "CREATE INDEX IF NOT EXISTS idx_event_log_kind ON event_log(kind);",
]

_TABLES = [
    "records", "owner_index", "ciphertexts", "capability_grants",
    "decryption_results", "event_log",
]


def now_epoch() -> int:
    """Get current Unix timestamp as integer."""
    return int(time.time())


class LedgerDatabase:
    """
    One SQLite connection shared by all threads of the process.

    The connection is opened with ``check_same_thread=False`` and every
    use goes through ``self._lock``.
    """

    def __init__(self, path: Union[str, Path] = MEMORY):
        self.path = str(path)
        self._lock = threading.RLock()
        self._depth = 0
        self._conn = self._connect()
        self.init_schema()

    def _connect(self) -> sqlite3.Connection:
        if self.path != MEMORY:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        # isolation_level=None: transactions are issued explicitly below
        conn = sqlite3.connect(self.path, check_same_thread=False, isolation_level=None)
        if self.path != MEMORY:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=FULL;")
        conn.execute("PRAGMA foreign_keys=ON;")
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for write transactions.
        Commits on success, rolls back on any exception and re-raises.
        """
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield self._conn
                finally:
                    self._depth -= 1
                return

            self._conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield self._conn
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                try:
                    self._conn.execute("COMMIT")
                except sqlite3.Error:
                    self._conn.execute("ROLLBACK")
                    raise
            finally:
                self._depth = 0

    @contextmanager
    def read(self) -> Iterator[sqlite3.Connection]:
        """Serialized read access."""
        with self._lock:
            yield self._conn

    def init_schema(self) -> None:
        """
        Initialize schema and seed the ledger state.
        Safe to call multiple times.
        """
        with self.transaction() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)
            for key in (STATE_RECORD_COUNTER, STATE_BALANCE):
                conn.execute(
                    "INSERT OR IGNORE INTO ledger_state(key, value) VALUES(?, '0')", (key,)
                )

    def get_state(self, key: str) -> int:
        with self.read() as conn:
            return self.get_state_in(conn, key)

    @staticmethod
    def get_state_in(conn: sqlite3.Connection, key: str) -> int:
        row = conn.execute("SELECT value FROM ledger_state WHERE key=?", (key,)).fetchone()
        if row is None:
            raise KeyError(key)
        return int(row["value"])

    @staticmethod
    def set_state_in(conn: sqlite3.Connection, key: str, value: int) -> None:
        conn.execute("UPDATE ledger_state SET value=? WHERE key=?", (str(value), key))

    def get_stats(self) -> Dict[str, int]:
        """Row counts for monitoring."""
        stats = {}
        with self.read() as conn:
            for table in _TABLES:
                cur = conn.execute(f"SELECT COUNT(*) AS cnt FROM {table}")
                stats[f"{table}_count"] = cur.fetchone()["cnt"]
        return stats

    def close(self) -> None:
        with self._lock:
            self._conn.close()
