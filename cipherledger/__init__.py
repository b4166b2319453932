"""
cipherledger: a confidential computation ledger.

Parties submit encrypted boolean assessment inputs together with a proof of
well-formedness. The ledger derives an encrypted score from them without
ever seeing plaintext, and releases the plaintext only through a two-phase,
owner-gated decryption protocol:

    owner --request--> ledger --DECRYPTION_REQUESTED--> oracle
    oracle --signed fulfillment--> ledger
    owner --retrieve--> plaintext score

Usage:
    from cipherledger import (
        ConfidentialLedger,
        PaillierAlgebra,
        TrustStore,
        attest_inputs,
        generate_keypair,
    )

    public_key, private_key = generate_keypair()
    ledger = ConfidentialLedger(PaillierAlgebra(public_key), trust_store, withdrawer="treasury")

    record_id = ledger.create_record("alice", ciphertexts, proof, payment=10**15)
    ledger.request_decrypt(record_id, "alice")
    # ... oracle fulfills ...
    score = ledger.retrieve_decrypt(record_id, "alice")
"""

__version__ = "0.1.0"

from .algebra import (
    Ciphertext,
    EncryptedAlgebra,
    PaillierAlgebra,
    generate_keypair,
    public_key_from_dict,
    public_key_to_dict,
)
from .canonicalization import canonicalize, canonicalize_str
from .capabilities import CapabilityManager
from .coordinator import (
    DecryptionCoordinator,
    DecryptionState,
    FulfillmentMessage,
    fulfillment_statement,
    sign_fulfillment,
)
from .db import LedgerDatabase
from .economics import DEFAULT_MINIMUM_PAYMENT, EconomicsGate
from .errors import (
    AlgebraError,
    AlreadyRequestedError,
    AuthorizationError,
    ConfigurationError,
    ErrorCode,
    FulfillmentPendingError,
    InsufficientPaymentError,
    InvalidProofError,
    LedgerError,
    MalformedCiphertextError,
    NotFoundError,
    NotRequestedError,
    StateError,
    ValidationError,
)
from .events import EventBus, EventKind, EventLog, LedgerEvent
from .hashing import ciphertext_handle
from .ledger import ConfidentialLedger
from .oracle import LocalDecryptionOracle
from .proofs import InputVerifier, attest_inputs
from .scoring import InputWeight, ScoringEngine, WeightTable
from .signing import DECRYPTION_ORACLES, INPUT_ATTESTERS, KeyPair, TrustStore
from .store import ConfidentialRecord, RecordStore


__all__ = [
    "__version__",

    # Algebra
    "Ciphertext",
    "EncryptedAlgebra",
    "PaillierAlgebra",
    "generate_keypair",
    "public_key_from_dict",
    "public_key_to_dict",

    # Canonicalization and hashing
    "canonicalize",
    "canonicalize_str",
    "ciphertext_handle",

    # Components
    "CapabilityManager",
    "ConfidentialRecord",
    "RecordStore",
    "EconomicsGate",
    "DEFAULT_MINIMUM_PAYMENT",
    "InputWeight",
    "ScoringEngine",
    "WeightTable",
    "InputVerifier",
    "attest_inputs",
    "DecryptionCoordinator",
    "DecryptionState",
    "FulfillmentMessage",
    "fulfillment_statement",
    "sign_fulfillment",
    "LocalDecryptionOracle",

    # Storage and events
    "LedgerDatabase",
    "EventBus",
    "EventKind",
    "EventLog",
    "LedgerEvent",

    # Facade
    "ConfidentialLedger",

    # Signing
    "KeyPair",
    "TrustStore",
    "INPUT_ATTESTERS",
    "DECRYPTION_ORACLES",

    # Errors
    "ErrorCode",
    "LedgerError",
    "ValidationError",
    "InsufficientPaymentError",
    "InvalidProofError",
    "MalformedCiphertextError",
    "AuthorizationError",
    "StateError",
    "AlreadyRequestedError",
    "NotRequestedError",
    "NotFoundError",
    "ConfigurationError",
    "FulfillmentPendingError",
    "AlgebraError",
]
