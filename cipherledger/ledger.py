"""
Confidential ledger facade.

``ConfidentialLedger`` is the single state object: it owns the database and
wires the record store, scoring engine, capability manager, economics gate,
input verifier, decryption coordinator and event log together. Every public
operation either completes as one transaction or raises a ``LedgerError``
without writing anything.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .algebra import EncryptedAlgebra
from .capabilities import CapabilityManager
from .coordinator import DecryptionCoordinator, DecryptionState, FulfillmentMessage
from .db import MEMORY, LedgerDatabase, now_epoch
from .economics import DEFAULT_MINIMUM_PAYMENT, EconomicsGate, require_amount
from .errors import AuthorizationError, LedgerError, ValidationError
from .events import EventBus, EventKind, EventLog, LedgerEvent, Subscriber
from .hashing import ciphertext_handle
from .logging_config import audit_log
from .proofs import InputVerifier
from .scoring import ScoringEngine, WeightTable
from .signing import TrustStore
from .store import ConfidentialRecord, RecordStore

logger = logging.getLogger(__name__)

DEFAULT_ENVIRONMENT_ID = "cipherledger-env-001"
DEFAULT_LEDGER_ID = "cipherledger-local"


class ConfidentialLedger:

    def __init__(
        self,
        algebra: EncryptedAlgebra,
        trust_store: TrustStore,
        withdrawer: str,
        weights: Optional[WeightTable] = None,
        db: Optional[LedgerDatabase] = None,
        minimum_payment: int = DEFAULT_MINIMUM_PAYMENT,
        environment_id: str = DEFAULT_ENVIRONMENT_ID,
        ledger_id: str = DEFAULT_LEDGER_ID,
        clock: Callable[[], int] = now_epoch,
    ):
        self.algebra = algebra
        self.trust_store = trust_store
        self.weights = weights or WeightTable.reference()
        self.environment_id = environment_id
        self.ledger_id = ledger_id
        self.db = db or LedgerDatabase(MEMORY)
        self._clock = clock

        self.bus = EventBus()
        self.event_log = EventLog(self.db)
        self.store = RecordStore(self.db)
        self.capabilities = CapabilityManager(self.db)
        self.economics = EconomicsGate(self.db, withdrawer, minimum_payment)
        self.scoring = ScoringEngine(algebra, self.weights)
        self.verifier = InputVerifier(algebra, trust_store, ledger_id)
        self.coordinator = DecryptionCoordinator(
            self.db, self.store, self.capabilities, self.event_log, self.bus,
            trust_store, self.weights.capacity, clock,
        )

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def create_record(
        self,
        owner: str,
        ciphertexts: Mapping[str, Any],
        proof: Mapping[str, Any],
        payment: int,
    ) -> int:
        """
        Verify, score and store one submission. Returns the new record id.

        Raises:
            InsufficientPaymentError, InvalidProofError, MalformedCiphertextError
        """
        if not isinstance(owner, str) or not owner:
            raise ValidationError("owner identity must be a non-empty string")
        try:
            payment = self.economics.validate_payment(payment)
            verified = self.verifier.verify(owner, ciphertexts, proof, self.weights.input_names)
        except LedgerError as e:
            audit_log.submission_rejected(owner, e.code.value, e.message)
            raise

        score = self.scoring.score(verified.ciphertexts)
        serialized_score = self.algebra.serialize(score)
        score_handle = ciphertext_handle(serialized_score)

        with self.db.transaction() as conn:
            now = self._clock()
            record_id = self.store.insert(
                conn, owner, verified.serialized, verified.handles,
                serialized_score, score_handle, now,
            )
            for handle in list(verified.handles.values()) + [score_handle]:
                self.capabilities.grant(handle, owner, conn=conn)
                self.capabilities.grant(handle, self.environment_id, conn=conn)
            balance = self.economics.credit(conn, payment)
            event = self.event_log.append(conn, EventKind.RECORD_CREATED, {
                "record_id": record_id,
                "owner": owner,
                "inputs": verified.handles,
                "score_handle": score_handle,
                "payment": str(payment),
            }, now)

        logger.debug("record %s stored, balance now %s", record_id, balance)
        audit_log.record_submitted(record_id, owner, payment)
        self.bus.publish(event)
        return record_id

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_record(self, record_id: int) -> ConfidentialRecord:
        return self.store.get(record_id)

    def get_record_metadata(self, record_id: int) -> Dict[str, Any]:
        """``{owner, timestamp, requested}``; readable by anyone."""
        return self.store.get(record_id).metadata()

    def list_records(self, owner: str) -> List[int]:
        return self.store.list_by_owner(owner)

    def record_count(self) -> int:
        return self.store.count()

    def record_count_by_owner(self, owner: str) -> int:
        return self.store.count_by_owner(owner)

    def is_decryption_requested(self, record_id: int) -> bool:
        return self.store.get(record_id).decryption_requested

    def decryption_state(self, record_id: int) -> DecryptionState:
        return self.coordinator.state(record_id)

    def get_encrypted_score(self, record_id: int, caller: str) -> str:
        """Handle of the score ciphertext, for holders of a grant on it."""
        record = self.store.get(record_id)
        if not self.capabilities.check(record.score_handle, caller):
            audit_log.access_denied(record_id, caller, "read_score")
            raise AuthorizationError(f"{caller!r} holds no grant on the score of record {record_id}")
        return record.score_handle

    # ------------------------------------------------------------------
    # Two-phase decryption
    # ------------------------------------------------------------------

    def request_decrypt(self, record_id: int, caller: str) -> None:
        self.coordinator.request(record_id, caller)

    def fulfill_decryption(self, message: FulfillmentMessage) -> bool:
        """Returns False when an identical answer was already recorded."""
        return self.coordinator.fulfill(message) is not None

    def retrieve_decrypt(self, record_id: int, caller: str) -> int:
        return self.coordinator.retrieve(record_id, caller)

    # ------------------------------------------------------------------
    # Economics
    # ------------------------------------------------------------------

    def get_balance(self) -> int:
        return self.economics.balance()

    def deposit(self, sender: str, amount: int) -> int:
        """Credit a direct transfer. Returns the new balance."""
        amount = require_amount(amount, "amount")
        if amount == 0:
            raise ValidationError("deposit amount must be positive")
        with self.db.transaction() as conn:
            balance = self.economics.credit(conn, amount)
            event = self.event_log.append(conn, EventKind.DEPOSIT, {
                "sender": sender,
                "amount": str(amount),
            }, self._clock())
        audit_log.deposit(sender, amount)
        self.bus.publish(event)
        return balance

    def withdraw(self, caller: str) -> int:
        """Drain the whole balance to the withdrawer. Returns the amount."""
        self.economics.check_withdrawer(caller)
        with self.db.transaction() as conn:
            amount = self.economics.drain(conn)
            if not amount:
                return 0
            event = self.event_log.append(conn, EventKind.WITHDRAWAL, {
                "withdrawer": caller,
                "amount": str(amount),
            }, self._clock())
        audit_log.withdrawal(caller, amount)
        self.bus.publish(event)
        return amount

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, kind: EventKind, callback: Subscriber) -> None:
        self.bus.subscribe(kind, callback)

    def events(self, kind: Optional[EventKind] = None) -> List[LedgerEvent]:
        return self.event_log.export(kind)

    def verify_event_chain(self) -> Tuple[bool, str]:
        return self.event_log.verify_chain()

    def stats(self) -> Dict[str, int]:
        return self.db.get_stats()

    def close(self) -> None:
        self.db.close()
