"""
Capability Manager.

An explicit side-table of (ciphertext handle, identity) pairs. A row means
the identity may ask for decryption of that ciphertext. Grants are
permanent: there is no revoke.
"""

import sqlite3
from typing import List, Optional

from .db import LedgerDatabase, now_epoch
from .errors import AuthorizationError


class CapabilityManager:

    def __init__(self, db: LedgerDatabase):
        self._db = db

    def grant(self, handle: str, identity: str, conn: Optional[sqlite3.Connection] = None) -> bool:
        """
        Idempotently authorize ``identity`` on ``handle``.

        Joins the caller's transaction when ``conn`` is given. Returns True
        if the grant is new.
        """
        if not identity:
            raise ValueError("identity must not be empty")
        if conn is not None:
            return self._insert(conn, handle, identity)
        with self._db.transaction() as tx:
            return self._insert(tx, handle, identity)

    @staticmethod
    def _insert(conn: sqlite3.Connection, handle: str, identity: str) -> bool:
        cur = conn.execute(
            "INSERT OR IGNORE INTO capability_grants(handle, grantee, granted_at) VALUES(?,?,?)",
            (handle, identity, now_epoch()),
        )
        return cur.rowcount == 1

    def check(self, handle: str, identity: str) -> bool:
        with self._db.read() as conn:
            return self.check_in(conn, handle, identity)

    @staticmethod
    def check_in(conn: sqlite3.Connection, handle: str, identity: str) -> bool:
        row = conn.execute(
            "SELECT 1 FROM capability_grants WHERE handle=? AND grantee=?", (handle, identity)
        ).fetchone()
        return row is not None

    def require(self, handle: str, identity: str, conn: Optional[sqlite3.Connection] = None) -> None:
        allowed = self.check_in(conn, handle, identity) if conn is not None else self.check(handle, identity)
        if not allowed:
            raise AuthorizationError(f"{identity!r} holds no grant on {handle}")

    def grantees(self, handle: str) -> List[str]:
        with self._db.read() as conn:
            rows = conn.execute(
                "SELECT grantee FROM capability_grants WHERE handle=? ORDER BY grantee", (handle,)
            ).fetchall()
        return [row["grantee"] for row in rows]
