"""
Ledger facade tests.

End-to-end behaviour of submission, capability grants, economics, the
event log and the local oracle round trip.
"""

import os
import tempfile
import threading
import unittest

from cipherledger.coordinator import DecryptionState
from cipherledger.db import LedgerDatabase
from cipherledger.errors import (
    AuthorizationError,
    FulfillmentPendingError,
    InsufficientPaymentError,
    InvalidProofError,
    MalformedCiphertextError,
    NotFoundError,
    ValidationError,
)
from cipherledger.events import EventKind
from cipherledger.oracle import LocalDecryptionOracle

from support import (
    ALGEBRA,
    FEE,
    ORACLE,
    PRIVATE_KEY,
    WITHDRAWER,
    build_submission,
    make_ledger,
    submit,
)


class TestSubmission(unittest.TestCase):

    def setUp(self):
        self.ledger = make_ledger()

    def tearDown(self):
        self.ledger.close()

    def test_ids_are_gap_free(self):
        ids = [submit(self.ledger, owner) for owner in ("alice", "bob", "alice", "carol")]
        self.assertEqual(ids, [1, 2, 3, 4])
        self.assertEqual(self.ledger.record_count(), 4)
        self.assertEqual(self.ledger.list_records("alice"), [1, 3])
        self.assertEqual(self.ledger.list_records("nobody"), [])
        self.assertEqual(self.ledger.record_count_by_owner("alice"), 2)
        self.assertEqual(self.ledger.record_count_by_owner("nobody"), 0)

    def test_metadata_is_public(self):
        record_id = submit(self.ledger, "alice")
        metadata = self.ledger.get_record_metadata(record_id)
        self.assertEqual(metadata["owner"], "alice")
        self.assertFalse(metadata["requested"])
        self.assertIsInstance(metadata["timestamp"], int)

    def test_unknown_record(self):
        with self.assertRaises(NotFoundError):
            self.ledger.get_record_metadata(1)

    def test_clock_is_used_for_timestamps(self):
        ledger = make_ledger(clock=lambda: 1700000000)
        record_id = submit(ledger, "alice")
        self.assertEqual(ledger.get_record_metadata(record_id)["timestamp"], 1700000000)
        ledger.close()

    def _assert_no_trace(self):
        self.assertEqual(self.ledger.record_count(), 0)
        self.assertEqual(self.ledger.list_records("alice"), [])
        self.assertEqual(self.ledger.get_balance(), 0)
        self.assertEqual(self.ledger.events(), [])
        self.assertEqual(self.ledger.stats()["capability_grants_count"], 0)

    def test_insufficient_payment_leaves_no_trace(self):
        with self.assertRaises(InsufficientPaymentError):
            submit(self.ledger, "alice", payment=FEE - 1)
        self._assert_no_trace()
        self.assertEqual(submit(self.ledger, "alice"), 1)

    def test_invalid_proof_leaves_no_trace(self):
        ciphertexts, proof = build_submission("mallory", ledger_id=self.ledger.ledger_id)
        with self.assertRaises(InvalidProofError):
            self.ledger.create_record("alice", ciphertexts, proof, FEE)
        self._assert_no_trace()

    def test_malformed_ciphertext_leaves_no_trace(self):
        ciphertexts, proof = build_submission("alice", ledger_id=self.ledger.ledger_id)
        ciphertexts["skill"] = {"ciphertext": "abc", "exponent": 0}
        with self.assertRaises(MalformedCiphertextError):
            self.ledger.create_record("alice", ciphertexts, proof, FEE)
        self._assert_no_trace()

    def test_owner_required(self):
        ciphertexts, proof = build_submission("", ledger_id=self.ledger.ledger_id)
        with self.assertRaises(ValidationError):
            self.ledger.create_record("", ciphertexts, proof, FEE)

    def test_owner_and_environment_hold_grants(self):
        record_id = submit(self.ledger, "alice")
        record = self.ledger.get_record(record_id)
        expected = sorted(["alice", self.ledger.environment_id])
        for handle in list(record.input_handles.values()) + [record.score_handle]:
            with self.subTest(handle=handle):
                self.assertEqual(self.ledger.capabilities.grantees(handle), expected)

    def test_encrypted_score_access(self):
        record_id = submit(self.ledger, "alice")
        handle = self.ledger.get_encrypted_score(record_id, "alice")
        self.assertEqual(handle, self.ledger.get_encrypted_score(record_id, self.ledger.environment_id))
        with self.assertRaises(AuthorizationError):
            self.ledger.get_encrypted_score(record_id, "bob")
        stored = ALGEBRA.deserialize(self.ledger.store.load_ciphertext(handle))
        self.assertEqual(PRIVATE_KEY.decrypt(stored.value), 85)

    def test_concurrent_submissions_get_distinct_consecutive_ids(self):
        submissions = [build_submission(f"user-{i}", ledger_id=self.ledger.ledger_id) for i in range(6)]
        ids = []
        lock = threading.Lock()

        def run(i):
            ciphertexts, proof = submissions[i]
            record_id = self.ledger.create_record(f"user-{i}", ciphertexts, proof, FEE)
            with lock:
                ids.append(record_id)

        threads = [threading.Thread(target=run, args=(i,)) for i in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(sorted(ids), [1, 2, 3, 4, 5, 6])
        self.assertEqual(self.ledger.get_balance(), 6 * FEE)


class TestEconomics(unittest.TestCase):

    def setUp(self):
        self.ledger = make_ledger()

    def tearDown(self):
        self.ledger.close()

    def test_payments_accumulate(self):
        submit(self.ledger, "alice", payment=FEE)
        submit(self.ledger, "bob", payment=3 * FEE)
        self.assertEqual(self.ledger.get_balance(), 4 * FEE)

    def test_withdraw_drains_exact_balance(self):
        submit(self.ledger, "alice", payment=2 * FEE)
        self.assertEqual(self.ledger.withdraw(WITHDRAWER), 2 * FEE)
        self.assertEqual(self.ledger.get_balance(), 0)
        self.assertEqual(self.ledger.withdraw(WITHDRAWER), 0)
        self.assertEqual(len(self.ledger.events(EventKind.WITHDRAWAL)), 1)

    def test_withdraw_by_other_caller(self):
        submit(self.ledger, "alice")
        with self.assertRaises(AuthorizationError):
            self.ledger.withdraw("alice")
        self.assertEqual(self.ledger.get_balance(), FEE)

    def test_deposit(self):
        self.assertEqual(self.ledger.deposit("donor", 7), 7)
        self.assertEqual(self.ledger.get_balance(), 7)
        self.assertEqual(self.ledger.events(EventKind.DEPOSIT)[0].payload, {"sender": "donor", "amount": "7"})
        for amount in (0, -3, 2.5):
            with self.subTest(amount=amount):
                with self.assertRaises(ValidationError):
                    self.ledger.deposit("donor", amount)


class TestEventsAndOracle(unittest.TestCase):

    def setUp(self):
        self.ledger = make_ledger()
        self.oracle = LocalDecryptionOracle(
            PRIVATE_KEY, ALGEBRA, self.ledger.store, ORACLE, self.ledger.fulfill_decryption
        )
        self.oracle.attach(self.ledger.bus)

    def tearDown(self):
        self.ledger.close()

    def test_oracle_round_trip(self):
        record_id = submit(self.ledger, "alice", (1, 1, 0))
        self.assertEqual(self.oracle.pending(), [])
        self.ledger.request_decrypt(record_id, "alice")
        self.assertEqual(self.oracle.pending(), [record_id])
        with self.assertRaises(FulfillmentPendingError):
            self.ledger.retrieve_decrypt(record_id, "alice")

        self.assertEqual(self.oracle.process_pending(), 1)
        self.assertEqual(self.oracle.pending(), [])
        self.assertEqual(self.ledger.retrieve_decrypt(record_id, "alice"), 85)

    def test_oracle_answers_in_arrival_order(self):
        first = submit(self.ledger, "alice", (0, 0, 0))
        second = submit(self.ledger, "bob", (1, 1, 1))
        self.ledger.request_decrypt(second, "bob")
        self.ledger.request_decrypt(first, "alice")
        self.assertEqual(self.oracle.pending(), [second, first])
        self.assertEqual(self.oracle.process_pending(), 2)
        self.assertEqual(self.ledger.retrieve_decrypt(first, "alice"), 50)
        self.assertEqual(self.ledger.retrieve_decrypt(second, "bob"), 100)

    def test_failed_delivery_stays_queued(self):
        record_id = submit(self.ledger, "alice")
        self.ledger.request_decrypt(record_id, "alice")
        calls = []

        def flaky(message):
            calls.append(message)
            if len(calls) == 1:
                raise ConnectionError("ledger unreachable")
            return self.ledger.fulfill_decryption(message)

        oracle = LocalDecryptionOracle(PRIVATE_KEY, ALGEBRA, self.ledger.store, ORACLE, flaky)
        oracle.on_request(self.ledger.events(EventKind.DECRYPTION_REQUESTED)[0])
        with self.assertRaises(ConnectionError):
            oracle.process_pending()
        self.assertEqual(oracle.pending(), [record_id])
        self.assertEqual(oracle.process_pending(), 1)
        self.assertEqual(self.ledger.retrieve_decrypt(record_id, "alice"), 85)

    def test_rejected_answer_does_not_block_queue(self):
        # Attested but non-boolean inputs decrypt outside the score range.
        bad = submit(self.ledger, "mallory", (10, 10, 10))
        good = submit(self.ledger, "alice", (1, 1, 0))
        self.ledger.request_decrypt(bad, "mallory")
        self.ledger.request_decrypt(good, "alice")

        with self.assertLogs("cipherledger.oracle", level="WARNING"):
            self.assertEqual(self.oracle.process_pending(), 1)
        self.assertEqual(self.oracle.pending(), [])
        self.assertEqual(self.ledger.decryption_state(bad), DecryptionState.REQUESTED)
        self.assertEqual(self.ledger.retrieve_decrypt(good, "alice"), 85)

    def test_event_history_and_chain(self):
        record_id = submit(self.ledger, "alice")
        self.ledger.request_decrypt(record_id, "alice")
        self.oracle.process_pending()
        self.ledger.deposit("donor", 5)
        self.ledger.withdraw(WITHDRAWER)
        kinds = [event.kind for event in self.ledger.events()]
        self.assertEqual(kinds, [
            EventKind.RECORD_CREATED,
            EventKind.DECRYPTION_REQUESTED,
            EventKind.DECRYPTION_FULFILLED,
            EventKind.DEPOSIT,
            EventKind.WITHDRAWAL,
        ])
        self.assertEqual(self.ledger.verify_event_chain(), (True, "ok"))

    def test_events_never_carry_plaintext_scores(self):
        record_id = submit(self.ledger, "alice")
        self.ledger.request_decrypt(record_id, "alice")
        self.oracle.process_pending()
        for event in self.ledger.events():
            with self.subTest(kind=event.kind):
                self.assertNotIn("plaintext", event.payload)
                self.assertNotIn("score", event.payload)

    def test_subscribers_see_committed_state(self):
        seen = []
        self.ledger.subscribe(
            EventKind.RECORD_CREATED,
            lambda event: seen.append((event.payload["record_id"], self.ledger.record_count())),
        )
        record_id = submit(self.ledger, "alice")
        self.assertEqual(seen, [(record_id, 1)])


class TestPersistence(unittest.TestCase):

    def test_state_survives_reopen(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "ledger.db")
            ledger = make_ledger(db=LedgerDatabase(path))
            record_id = submit(ledger, "alice")
            ledger.request_decrypt(record_id, "alice")
            ledger.close()

            reopened = make_ledger(db=LedgerDatabase(path))
            self.assertEqual(reopened.record_count(), 1)
            self.assertEqual(reopened.get_balance(), FEE)
            self.assertTrue(reopened.is_decryption_requested(record_id))
            self.assertEqual(submit(reopened, "bob"), 2)
            self.assertEqual(reopened.verify_event_chain(), (True, "ok"))
            reopened.close()


if __name__ == "__main__":
    unittest.main()
