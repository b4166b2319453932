"""
Error taxonomy for the confidential ledger.

Every operation either completes or raises one of these before any state
is written. Each error carries a stable ``ErrorCode`` so that the HTTP
layer and callers can branch on it without parsing messages.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Stable failure codes."""
    INSUFFICIENT_PAYMENT = "INSUFFICIENT_PAYMENT"
    INVALID_PROOF = "INVALID_PROOF"
    MALFORMED_CIPHERTEXT = "MALFORMED_CIPHERTEXT"
    INVALID_INPUT = "INVALID_INPUT"
    UNAUTHORIZED = "UNAUTHORIZED"
    ALREADY_REQUESTED = "ALREADY_REQUESTED"
    NOT_REQUESTED = "NOT_REQUESTED"
    CONFLICTING_FULFILLMENT = "CONFLICTING_FULFILLMENT"
    NOT_FOUND = "NOT_FOUND"
    CONFIGURATION = "CONFIGURATION"
    FULFILLMENT_PENDING = "FULFILLMENT_PENDING"
    ALGEBRA = "ALGEBRA"


class LedgerError(Exception):
    """Base class for all ledger failures."""

    default_code = ErrorCode.INVALID_INPUT

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        self.message = message
        self.code = code or self.default_code
        super().__init__(f"[{self.code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message}


class ValidationError(LedgerError):
    """Input rejected: bad payment, unproven or malformed ciphertext."""
    default_code = ErrorCode.INVALID_INPUT


class InsufficientPaymentError(ValidationError):
    default_code = ErrorCode.INSUFFICIENT_PAYMENT

    def __init__(self, payment: int, minimum: int):
        self.payment = payment
        self.minimum = minimum
        super().__init__(f"payment {payment} is below the minimum of {minimum}")


class InvalidProofError(ValidationError):
    default_code = ErrorCode.INVALID_PROOF


class MalformedCiphertextError(ValidationError):
    default_code = ErrorCode.MALFORMED_CIPHERTEXT


class AuthorizationError(LedgerError):
    """Caller is not the record owner or holds no capability grant."""
    default_code = ErrorCode.UNAUTHORIZED


class StateError(LedgerError):
    """Operation not allowed in the record's current state."""
    default_code = ErrorCode.ALREADY_REQUESTED


class AlreadyRequestedError(StateError):
    default_code = ErrorCode.ALREADY_REQUESTED

    def __init__(self, record_id: int):
        self.record_id = record_id
        super().__init__(f"decryption already requested for record {record_id}")


class NotRequestedError(StateError):
    default_code = ErrorCode.NOT_REQUESTED

    def __init__(self, record_id: int):
        self.record_id = record_id
        super().__init__(f"decryption not requested for record {record_id}")


class NotFoundError(LedgerError):
    default_code = ErrorCode.NOT_FOUND

    def __init__(self, record_id: int):
        self.record_id = record_id
        super().__init__(f"record {record_id} does not exist")


class ConfigurationError(LedgerError):
    """Invalid configuration, detected at startup."""
    default_code = ErrorCode.CONFIGURATION


class FulfillmentPendingError(LedgerError):
    """
    The oracle has not answered yet.

    This is the one recoverable condition: poll again later instead of
    re-requesting. Not a ``StateError``.
    """
    default_code = ErrorCode.FULFILLMENT_PENDING

    def __init__(self, record_id: int):
        self.record_id = record_id
        super().__init__(f"decryption of record {record_id} not yet fulfilled")


class AlgebraError(LedgerError):
    """The algebra backend cannot evaluate the requested operation."""
    default_code = ErrorCode.ALGEBRA
