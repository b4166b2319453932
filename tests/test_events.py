"""Event log hash chain and event bus tests."""

import unittest

from cipherledger.db import LedgerDatabase
from cipherledger.events import EventBus, EventKind, EventLog


class TestEventLog(unittest.TestCase):

    def setUp(self):
        self.db = LedgerDatabase()
        self.log = EventLog(self.db)

    def tearDown(self):
        self.db.close()

    def _append(self, kind, payload):
        with self.db.transaction() as conn:
            return self.log.append(conn, kind, payload, 1000)

    def test_chain_links(self):
        first = self._append(EventKind.DEPOSIT, {"sender": "a", "amount": "5"})
        second = self._append(EventKind.WITHDRAWAL, {"withdrawer": "t", "amount": "5"})
        self.assertIsNone(first.prev_entry_hash)
        self.assertEqual(second.prev_entry_hash, first.entry_hash)
        self.assertEqual([e.seq for e in self.log.export()], [1, 2])
        self.assertEqual(self.log.verify_chain(), (True, "ok"))

    def test_export_by_kind(self):
        self._append(EventKind.DEPOSIT, {"amount": "1"})
        self._append(EventKind.WITHDRAWAL, {"amount": "1"})
        self.assertEqual(
            [e.kind for e in self.log.export(EventKind.DEPOSIT)], [EventKind.DEPOSIT]
        )

    def test_tampering_detected(self):
        self._append(EventKind.DEPOSIT, {"amount": "1"})
        self._append(EventKind.DEPOSIT, {"amount": "2"})
        with self.db.transaction() as conn:
            conn.execute("UPDATE event_log SET payload_json=? WHERE seq=1", ('{"amount":"100"}',))
        valid, reason = self.log.verify_chain()
        self.assertFalse(valid)
        self.assertIn("seq 1", reason)

    def test_rolled_back_event_not_logged(self):
        with self.assertRaises(RuntimeError):
            with self.db.transaction() as conn:
                self.log.append(conn, EventKind.DEPOSIT, {"amount": "1"}, 1000)
                raise RuntimeError("abort")
        self.assertEqual(self.log.export(), [])


class TestEventBus(unittest.TestCase):

    def test_publish_to_kind_subscribers(self):
        db = LedgerDatabase()
        log = EventLog(db)
        bus = EventBus()
        deposits, withdrawals = [], []
        bus.subscribe(EventKind.DEPOSIT, deposits.append)
        bus.subscribe(EventKind.WITHDRAWAL, withdrawals.append)
        with db.transaction() as conn:
            event = log.append(conn, EventKind.DEPOSIT, {"amount": "1"}, 1000)
        bus.publish(event)
        self.assertEqual(deposits, [event])
        self.assertEqual(withdrawals, [])
        db.close()

    def test_failing_subscriber_does_not_block_others(self):
        db = LedgerDatabase()
        log = EventLog(db)
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(EventKind.DEPOSIT, broken)
        bus.subscribe(EventKind.DEPOSIT, received.append)
        with db.transaction() as conn:
            event = log.append(conn, EventKind.DEPOSIT, {"amount": "1"}, 1000)
        with self.assertLogs("cipherledger.events", level="ERROR"):
            bus.publish(event)
        self.assertEqual(received, [event])
        db.close()


if __name__ == "__main__":
    unittest.main()
