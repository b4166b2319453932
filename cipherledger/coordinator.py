"""
Two-Phase Decryption Coordinator.

State machine per record:

    CREATED --request--> REQUESTED --fulfill--> FULFILLED

- request:  owner only, exactly once. Emits DECRYPTION_REQUESTED, which is
            what an external decryption oracle listens for.
- fulfill:  inbound message from the oracle, signed by a trusted oracle
            key. Handled as its own transition, never called from request.
- retrieve: owner only. Fails fast with ``FulfillmentPendingError`` until
            the oracle has answered, then returns the plaintext on every
            call.

The coordinator never decrypts. It decides when a caller may ask the
oracle and who may read the answer.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .canonicalization import canonicalize
from .capabilities import CapabilityManager
from .db import LedgerDatabase, now_epoch
from .errors import (
    AlreadyRequestedError,
    AuthorizationError,
    ErrorCode,
    FulfillmentPendingError,
    NotRequestedError,
    StateError,
    ValidationError,
)
from .events import EventBus, EventKind, EventLog, LedgerEvent
from .logging_config import audit_log
from .signing import DECRYPTION_ORACLES, KeyPair, TrustStore
from .store import ConfidentialRecord, RecordStore

logger = logging.getLogger(__name__)


class DecryptionState(str, Enum):
    CREATED = "CREATED"
    REQUESTED = "REQUESTED"
    FULFILLED = "FULFILLED"


@dataclass(frozen=True)
class FulfillmentMessage:
    """Oracle answer for one record."""
    record_id: int
    plaintext: int
    kid: str
    sig_b64: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "plaintext": self.plaintext,
            "kid": self.kid,
            "sig_b64": self.sig_b64,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FulfillmentMessage':
        return cls(
            record_id=int(data["record_id"]),
            plaintext=int(data["plaintext"]),
            kid=str(data["kid"]),
            sig_b64=str(data["sig_b64"]),
        )


def fulfillment_statement(record_id: int, score_handle: str, plaintext: int) -> bytes:
    return canonicalize({
        "record_id": record_id,
        "score_handle": score_handle,
        "plaintext": plaintext,
    })


def sign_fulfillment(oracle_key: KeyPair, record_id: int, score_handle: str, plaintext: int) -> FulfillmentMessage:
    """Oracle side: sign the answer for ``record_id``."""
    kid, sig_b64 = oracle_key.sign(fulfillment_statement(record_id, score_handle, plaintext))
    return FulfillmentMessage(record_id=record_id, plaintext=plaintext, kid=kid, sig_b64=sig_b64)


class DecryptionCoordinator:

    def __init__(
        self,
        db: LedgerDatabase,
        store: RecordStore,
        capabilities: CapabilityManager,
        event_log: EventLog,
        bus: EventBus,
        trust_store: TrustStore,
        capacity: int,
        clock: Callable[[], int] = now_epoch,
    ):
        self._db = db
        self._store = store
        self._capabilities = capabilities
        self._event_log = event_log
        self._bus = bus
        self._trust_store = trust_store
        self._capacity = capacity
        self._clock = clock

    def state(self, record_id: int) -> DecryptionState:
        with self._db.read() as conn:
            record = RecordStore.get_in(conn, record_id)
            if not record.decryption_requested:
                return DecryptionState.CREATED
            if self._result_in(conn, record_id) is None:
                return DecryptionState.REQUESTED
            return DecryptionState.FULFILLED

    def _authorize_owner(self, conn, record: ConfidentialRecord, caller: str, operation: str) -> None:
        if caller != record.owner:
            audit_log.access_denied(record.id, caller, operation)
            raise AuthorizationError(f"{caller!r} is not the owner of record {record.id}")
        self._capabilities.require(record.score_handle, caller, conn=conn)

    def request(self, record_id: int, caller: str) -> LedgerEvent:
        """
        Flip the record to REQUESTED.

        Raises:
            NotFoundError, AuthorizationError, AlreadyRequestedError
        """
        with self._db.transaction() as conn:
            record = RecordStore.get_in(conn, record_id)
            self._authorize_owner(conn, record, caller, "request")
            now = self._clock()
            if not self._store.mark_requested(conn, record_id, now):
                raise AlreadyRequestedError(record_id)
            event = self._event_log.append(conn, EventKind.DECRYPTION_REQUESTED, {
                "record_id": record_id,
                "owner": record.owner,
                "score_handle": record.score_handle,
            }, now)

        audit_log.decryption_requested(record_id, caller)
        self._bus.publish(event)
        return event

    def retrieve(self, record_id: int, caller: str) -> int:
        """
        Return the decrypted score.

        Raises:
            NotFoundError, AuthorizationError, NotRequestedError,
            FulfillmentPendingError (poll again)
        """
        with self._db.read() as conn:
            record = RecordStore.get_in(conn, record_id)
            self._authorize_owner(conn, record, caller, "retrieve")
            if not record.decryption_requested:
                raise NotRequestedError(record_id)
            result = self._result_in(conn, record_id)
        if result is None:
            raise FulfillmentPendingError(record_id)
        return result

    def fulfill(self, message: FulfillmentMessage) -> Optional[LedgerEvent]:
        """
        Accept the oracle's answer.

        Returns the DECRYPTION_FULFILLED event, or None when an identical
        answer was already recorded.

        Raises:
            NotFoundError, AuthorizationError (untrusted signature),
            ValidationError (plaintext out of range), NotRequestedError,
            StateError (conflicting answer)
        """
        with self._db.transaction() as conn:
            record = RecordStore.get_in(conn, message.record_id)
            statement = fulfillment_statement(record.id, record.score_handle, message.plaintext)
            if not self._trust_store.verify(DECRYPTION_ORACLES, message.kid, message.sig_b64, statement):
                audit_log.security_event(
                    "untrusted_fulfillment", severity="high",
                    record_id=record.id, kid=message.kid,
                )
                raise AuthorizationError(f"fulfillment for record {record.id} is not signed by a trusted oracle")
            if not 0 <= message.plaintext <= self._capacity:
                raise ValidationError(f"plaintext outside 0..{self._capacity}")
            if not record.decryption_requested:
                raise NotRequestedError(record.id)

            existing = self._result_in(conn, record.id)
            if existing is not None:
                if existing == message.plaintext:
                    logger.debug("duplicate fulfillment for record %s ignored", record.id)
                    return None
                raise StateError(
                    f"record {record.id} already fulfilled with a different value",
                    code=ErrorCode.CONFLICTING_FULFILLMENT,
                )

            now = self._clock()
            conn.execute(
                "INSERT INTO decryption_results(record_id, plaintext, oracle_kid, fulfilled_at) VALUES(?,?,?,?)",
                (record.id, message.plaintext, message.kid, now),
            )
            event = self._event_log.append(conn, EventKind.DECRYPTION_FULFILLED, {
                "record_id": record.id,
                "oracle_kid": message.kid,
            }, now)

        audit_log.decryption_fulfilled(record.id, message.kid)
        self._bus.publish(event)
        return event

    @staticmethod
    def _result_in(conn, record_id: int) -> Optional[int]:
        row = conn.execute(
            "SELECT plaintext FROM decryption_results WHERE record_id=?", (record_id,)
        ).fetchone()
        return row["plaintext"] if row else None
