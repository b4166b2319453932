"""
Economics Gate.

Each submission must carry at least ``minimum_payment`` base units. All
payments accumulate into one ledger-wide balance which only the
configured withdrawer may drain, and only in full.
"""

import sqlite3
from typing import Any

from .db import STATE_BALANCE, LedgerDatabase
from .errors import AuthorizationError, InsufficientPaymentError, ValidationError

# 0.001 of an 18-decimal currency
DEFAULT_MINIMUM_PAYMENT = 10 ** 15


def require_amount(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{what} must be a non-negative integer, got {value!r}")
    return value


class EconomicsGate:

    def __init__(self, db: LedgerDatabase, withdrawer: str, minimum_payment: int = DEFAULT_MINIMUM_PAYMENT):
        if not withdrawer:
            raise ValueError("a withdrawer identity is required")
        self._db = db
        self.withdrawer = withdrawer
        self.minimum_payment = require_amount(minimum_payment, "minimum_payment")

    def validate_payment(self, payment: int) -> int:
        """Raise ``InsufficientPaymentError`` unless payment covers the minimum."""
        payment = require_amount(payment, "payment")
        if payment < self.minimum_payment:
            raise InsufficientPaymentError(payment, self.minimum_payment)
        return payment

    @staticmethod
    def credit(conn: sqlite3.Connection, amount: int) -> int:
        """Add to the balance inside the caller's transaction; returns the new balance."""
        balance = LedgerDatabase.get_state_in(conn, STATE_BALANCE) + amount
        LedgerDatabase.set_state_in(conn, STATE_BALANCE, balance)
        return balance

    def balance(self) -> int:
        return self._db.get_state(STATE_BALANCE)

    def check_withdrawer(self, caller: str) -> None:
        if caller != self.withdrawer:
            raise AuthorizationError(f"{caller!r} may not withdraw")

    def drain(self, conn: sqlite3.Connection) -> int:
        """Reset the balance to zero inside the caller's transaction; returns the drained amount."""
        amount = LedgerDatabase.get_state_in(conn, STATE_BALANCE)
        if amount:
            LedgerDatabase.set_state_in(conn, STATE_BALANCE, 0)
        return amount
