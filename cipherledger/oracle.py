"""
Local decryption oracle.

Reference collaborator for the two-phase protocol. It holds the Paillier
private key, listens for DECRYPTION_REQUESTED events, and answers each one
with a signed ``FulfillmentMessage`` delivered back to the ledger.

Requests are only queued when the event arrives; nothing is decrypted until
``process_pending()`` runs, so the ledger observes the same
request-then-later-fulfill ordering it would see with a remote oracle.
"""

import logging
import threading
from collections import deque
from typing import Callable, Deque, List, Tuple

from phe import paillier

from .algebra import EncryptedAlgebra
from .coordinator import FulfillmentMessage, sign_fulfillment
from .errors import LedgerError
from .events import EventBus, EventKind, LedgerEvent
from .signing import KeyPair
from .store import RecordStore

logger = logging.getLogger(__name__)

Deliver = Callable[[FulfillmentMessage], object]


class LocalDecryptionOracle:

    def __init__(
        self,
        private_key: paillier.PaillierPrivateKey,
        algebra: EncryptedAlgebra,
        store: RecordStore,
        keypair: KeyPair,
        deliver: Deliver,
    ):
        self._private_key = private_key
        self._algebra = algebra
        self._store = store
        self._keypair = keypair
        self._deliver = deliver
        self._pending: Deque[Tuple[int, str]] = deque()
        self._lock = threading.Lock()

    @property
    def kid(self) -> str:
        return self._keypair.kid

    def attach(self, bus: EventBus) -> None:
        bus.subscribe(EventKind.DECRYPTION_REQUESTED, self.on_request)

    def on_request(self, event: LedgerEvent) -> None:
        with self._lock:
            self._pending.append((event.payload["record_id"], event.payload["score_handle"]))
        logger.debug("queued decryption of record %s", event.payload["record_id"])

    def pending(self) -> List[int]:
        with self._lock:
            return [record_id for record_id, _ in self._pending]

    def decrypt(self, score_handle: str) -> int:
        ct = self._algebra.deserialize(self._store.load_ciphertext(score_handle))
        return self._private_key.decrypt(ct.value)

    def answer(self, record_id: int, score_handle: str) -> FulfillmentMessage:
        return sign_fulfillment(self._keypair, record_id, score_handle, self.decrypt(score_handle))

    def process_pending(self) -> int:
        """
        Answer every queued request in arrival order.

        A request leaves the queue once the ledger has accepted or rejected
        its answer. Any other delivery failure propagates and leaves the
        request queued, so calling this again retries it.
        """
        processed = 0
        while True:
            with self._lock:
                if not self._pending:
                    break
                record_id, score_handle = self._pending[0]
            try:
                self._deliver(self.answer(record_id, score_handle))
            except LedgerError as e:
                logger.warning("ledger rejected answer for record %s: %s", record_id, e)
            else:
                processed += 1
            with self._lock:
                self._pending.popleft()
        if processed:
            logger.info("oracle %s fulfilled %d request(s)", self.kid, processed)
        return processed
