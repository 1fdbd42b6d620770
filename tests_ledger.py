#!/usr/bin/env python3
"""
CASINOCORE - Wager Ledger Tests

Run: python tests_ledger.py
     python -m pytest tests_ledger.py -v

Test categories:
  TestAmounts           — amount validation
  TestBalanceMutations  — debit / credit, non-negative balance, transaction log
  TestConcurrency       — no lost updates under threaded mutation
  TestListeners         — push notifications and unsubscribe
  TestReconcile         — last-writer-wins between memory and storage
  TestPersistence       — seeding, corruption repair, background writer, retries
  TestReconcileLoop     — cross-process pickup and resume throttling
"""

import math
import random
import sqlite3
import sys
import tempfile
import threading
import unittest
from dataclasses import FrozenInstanceError
from pathlib import Path
from unittest.mock import MagicMock, patch

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.settings import LedgerConfig
from ledger import (
    BalanceReader, InsufficientFunds, InvalidAmount, PersistenceWriter,
    ReconcileLoop, StateStore, WagerLedger,
)
from ledger.models import BALANCE_KEY, DEFAULT_WAGER_KEY, LAST_ACTIVE_GAME_KEY


class FakeClock:
    """Manually advanced clock for timestamp-sensitive tests."""

    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


# ============================================================
# Amounts
# ============================================================

class TestAmounts(unittest.TestCase):

    def setUp(self):
        self.ledger = WagerLedger(balance=1000)

    def test_rejects_malformed_amounts(self):
        """Negative, NaN, infinite, fractional, boolean and text amounts."""
        for bad in (-1, math.nan, math.inf, -math.inf, 1.5, True, "10", None):
            with self.subTest(amount=bad):
                with self.assertRaises(InvalidAmount):
                    self.ledger.debit(bad)
                with self.assertRaises(InvalidAmount):
                    self.ledger.credit(bad)
        self.assertEqual(self.ledger.get_balance(), 1000)
        self.assertEqual(self.ledger.transactions(), [])

    def test_whole_float_is_accepted(self):
        self.ledger.debit(10.0)
        self.assertEqual(self.ledger.get_balance(), 990)

    def test_zero_is_allowed(self):
        tx = self.ledger.debit(0)
        self.assertEqual(tx.delta, 0)
        self.assertEqual(self.ledger.get_balance(), 1000)

    def test_constructor_rejects_bad_opening_state(self):
        """A ledger cannot start below zero or with a wager under 1."""
        for kwargs in ({"balance": -50}, {"balance": 2.5}, {"default_wager": 0},
                       {"default_wager": -10}):
            with self.subTest(**kwargs):
                with self.assertRaises(InvalidAmount):
                    WagerLedger(**kwargs)
        ledger = WagerLedger(balance=0, default_wager=1)
        self.assertEqual((ledger.get_balance(), ledger.default_wager), (0, 1))


# ============================================================
# Balance mutations
# ============================================================

class TestBalanceMutations(unittest.TestCase):

    def test_debit_then_credit_round_trip(self):
        ledger = WagerLedger(balance=1000)
        ledger.debit(10)
        ledger.credit(10)
        self.assertEqual(ledger.get_balance(), 1000)

    def test_insufficient_funds_changes_nothing(self):
        """Debit 50 against 40: error, balance 40, no transaction appended."""
        ledger = WagerLedger(balance=40)
        with self.assertRaises(InsufficientFunds) as ctx:
            ledger.debit(50)
        self.assertEqual(ctx.exception.requested, 50)
        self.assertEqual(ctx.exception.available, 40)
        self.assertEqual(ledger.get_balance(), 40)
        self.assertEqual(ledger.transactions(), [])

    def test_debit_entire_balance(self):
        ledger = WagerLedger(balance=40)
        ledger.debit(40)
        self.assertEqual(ledger.get_balance(), 0)

    def test_balance_never_negative_under_random_sequences(self):
        rng = random.Random(42)
        ledger = WagerLedger(balance=100)
        for _ in range(2_000):
            amount = rng.randint(0, 60)
            if rng.random() < 0.6:
                try:
                    ledger.debit(amount)
                except InsufficientFunds:
                    pass
            else:
                ledger.credit(amount)
            self.assertGreaterEqual(ledger.get_balance(), 0)

    def test_transactions_record_delta_cause_and_balance(self):
        ledger = WagerLedger(balance=100)
        ledger.debit(30, cause="slots:classic:wager")
        ledger.credit(50, cause="slots:classic:payout")
        txs = ledger.transactions()
        self.assertEqual([t.delta for t in txs], [-30, 50])
        self.assertEqual([t.balance_after for t in txs], [70, 120])
        self.assertEqual(txs[0].cause, "slots:classic:wager")
        self.assertLess(txs[0].timestamp, txs[1].timestamp)

    def test_transactions_are_immutable(self):
        tx = WagerLedger(balance=100).debit(1)
        with self.assertRaises(FrozenInstanceError):
            tx.delta = 5

    def test_timestamps_strictly_increase_with_frozen_clock(self):
        ledger = WagerLedger(balance=100, clock=FakeClock(50.0))
        a = ledger.debit(1)
        b = ledger.debit(1)
        self.assertGreater(b.timestamp, a.timestamp)
        self.assertEqual(ledger.last_write_ts, b.timestamp)

    def test_transactions_limit(self):
        ledger = WagerLedger(balance=100)
        for _ in range(5):
            ledger.credit(1)
        self.assertEqual(len(ledger.transactions(limit=2)), 2)
        self.assertEqual(ledger.transactions(limit=2)[-1].balance_after, 105)


# ============================================================
# Concurrency
# ============================================================

class TestConcurrency(unittest.TestCase):

    def test_concurrent_credits_are_not_lost(self):
        ledger = WagerLedger(balance=0)

        def worker():
            for _ in range(1_000):
                ledger.credit(1)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(ledger.get_balance(), 10_000)
        self.assertEqual(len(ledger.transactions()), LedgerConfig.TRANSACTION_HISTORY)

    def test_concurrent_debits_never_overdraw(self):
        """2,000 debit attempts against 1,000 credits: exactly 1,000 succeed."""
        ledger = WagerLedger(balance=1_000)
        successes = []
        lock = threading.Lock()

        def worker():
            ok = 0
            for _ in range(100):
                try:
                    ledger.debit(1)
                    ok += 1
                except InsufficientFunds:
                    pass
            with lock:
                successes.append(ok)

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(sum(successes), 1_000)
        self.assertEqual(ledger.get_balance(), 0)


# ============================================================
# Listeners
# ============================================================

class TestListeners(unittest.TestCase):

    def test_listener_receives_balance_and_transaction(self):
        ledger = WagerLedger(balance=100)
        seen = []
        ledger.on_balance_changed(lambda balance, tx: seen.append((balance, tx.delta)))
        ledger.debit(10)
        ledger.credit(25)
        self.assertEqual(seen, [(90, -10), (115, 25)])

    def test_unsubscribe_stops_notifications(self):
        ledger = WagerLedger(balance=100)
        listener = MagicMock()
        unsubscribe = ledger.on_balance_changed(listener)
        ledger.debit(1)
        unsubscribe()
        ledger.debit(1)
        self.assertEqual(listener.call_count, 1)

    def test_failing_listener_does_not_abort_mutation(self):
        ledger = WagerLedger(balance=100)
        good = MagicMock()
        ledger.on_balance_changed(MagicMock(side_effect=RuntimeError("widget gone")))
        ledger.on_balance_changed(good)
        with self.assertLogs("casinocore.ledger", level="ERROR"):
            ledger.debit(10)
        self.assertEqual(ledger.get_balance(), 90)
        good.assert_called_once()

    def test_reader_follows_pushes(self):
        ledger = WagerLedger(balance=100)
        reader = BalanceReader(ledger)
        ledger.debit(40)
        self.assertEqual(reader.balance, 60)
        reader.close()
        ledger.credit(5)
        self.assertEqual(reader.balance, 60)


# ============================================================
# Reconcile
# ============================================================

class TestReconcile(unittest.TestCase):

    def test_newer_persisted_value_is_adopted(self):
        """Memory 500 @100, storage 700 @200 -> 700."""
        ledger = WagerLedger(balance=500, last_write_ts=100.0)
        seen = []
        ledger.on_balance_changed(lambda balance, tx: seen.append(balance))
        self.assertTrue(ledger.reconcile(700, 200.0))
        self.assertEqual(ledger.get_balance(), 700)
        self.assertEqual(ledger.last_write_ts, 200.0)
        self.assertEqual(ledger.transactions()[-1].cause, "reconcile")
        self.assertEqual(ledger.transactions()[-1].delta, 200)
        self.assertEqual(seen, [700])

    def test_older_persisted_value_is_ignored_and_rewritten(self):
        writer = MagicMock()
        ledger = WagerLedger(balance=500, last_write_ts=100.0, writer=writer,
                             clock=FakeClock(150.0))
        self.assertFalse(ledger.reconcile(700, 50.0))
        self.assertEqual(ledger.get_balance(), 500)
        key, value, ts = writer.persist_value.call_args[0]
        self.assertEqual((key, value), (BALANCE_KEY, "500"))
        self.assertGreater(ts, 100.0)

    def test_equal_values_need_no_write(self):
        writer = MagicMock()
        ledger = WagerLedger(balance=500, last_write_ts=100.0, writer=writer)
        self.assertFalse(ledger.reconcile(500, 200.0))
        writer.persist_value.assert_not_called()

    def test_negative_persisted_value_is_not_adopted(self):
        ledger = WagerLedger(balance=500, last_write_ts=100.0)
        with self.assertLogs("casinocore.ledger", level="WARNING"):
            self.assertFalse(ledger.reconcile(-5, 200.0))
        self.assertEqual(ledger.get_balance(), 500)

    def test_reader_last_writer_wins(self):
        reader = BalanceReader(balance=500, timestamp=100.0)
        self.assertTrue(reader.observe(700, 200.0))
        self.assertFalse(reader.observe(900, 150.0))
        self.assertEqual(reader.balance, 700)


# ============================================================
# Persistence
# ============================================================

class _StoreTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = str(Path(self._tmp.name) / "casino.db")
        self.store = StateStore(self.db_path)
        self.ledgers = []

    def tearDown(self):
        for ledger in self.ledgers:
            ledger.close()
        self._tmp.cleanup()

    def load(self, **kwargs) -> WagerLedger:
        ledger = WagerLedger.load(self.store, **kwargs)
        self.ledgers.append(ledger)
        return ledger


class TestPersistence(_StoreTestCase):

    def test_first_launch_seeds_defaults(self):
        ledger = self.load()
        self.assertEqual(ledger.get_balance(), LedgerConfig.DEFAULT_BALANCE)
        self.assertEqual(ledger.default_wager, LedgerConfig.DEFAULT_WAGER)
        self.assertIsNone(ledger.last_active_game)
        self.assertEqual(self.store.read(BALANCE_KEY).value, str(LedgerConfig.DEFAULT_BALANCE))
        self.assertEqual(self.store.read(DEFAULT_WAGER_KEY).value, str(LedgerConfig.DEFAULT_WAGER))

    def test_corrupted_balance_is_reset_and_repaired(self):
        self.store.write(BALANCE_KEY, "not-a-number", 1.0)
        with self.assertLogs("casinocore.ledger", level="WARNING"):
            ledger = self.load()
        self.assertEqual(ledger.get_balance(), LedgerConfig.DEFAULT_BALANCE)
        self.assertEqual(self.store.read(BALANCE_KEY).value, str(LedgerConfig.DEFAULT_BALANCE))

    def test_zero_default_wager_is_corrupt(self):
        self.store.write(DEFAULT_WAGER_KEY, "0", 1.0)
        with self.assertLogs("casinocore.ledger", level="WARNING"):
            ledger = self.load()
        self.assertEqual(ledger.default_wager, LedgerConfig.DEFAULT_WAGER)

    def test_mutation_reaches_storage_after_flush(self):
        ledger = self.load()
        start = ledger.get_balance()
        ledger.debit(10, cause="wager")
        self.assertTrue(ledger.writer.flush())
        self.assertEqual(self.store.read(BALANCE_KEY).value, str(start - 10))
        txs = self.store.recent_transactions(10)
        self.assertEqual(txs[-1].delta, -10)
        self.assertEqual(txs[-1].cause, "wager")

    def test_state_survives_reload(self):
        ledger = self.load()
        ledger.credit(250)
        ledger.set_default_wager(25)
        ledger.set_last_active_game("slots:cyber")
        ledger.close()

        again = self.load()
        self.assertEqual(again.get_balance(), LedgerConfig.DEFAULT_BALANCE + 250)
        self.assertEqual(again.default_wager, 25)
        self.assertEqual(again.last_active_game, "slots:cyber")
        self.assertEqual(self.store.read(LAST_ACTIVE_GAME_KEY).value, "slots:cyber")

    def test_default_wager_must_be_positive(self):
        ledger = self.load()
        with self.assertRaises(InvalidAmount):
            ledger.set_default_wager(0)

    def test_failed_write_is_parked_then_replayed(self):
        """Storage failure keeps memory authoritative; the write lands later."""
        writer = PersistenceWriter(self.store, max_attempts=2, backoff_base=0, backoff_max=0)
        ledger = self.load(writer=writer)
        start = ledger.get_balance()

        with patch.object(self.store, "write", side_effect=sqlite3.OperationalError("disk I/O error")):
            with self.assertLogs("casinocore.persist", level="WARNING"):
                ledger.debit(10)
                self.assertTrue(writer.flush())
        self.assertEqual(ledger.get_balance(), start - 10)
        self.assertEqual(writer.parked, 1)
        self.assertEqual(self.store.read(BALANCE_KEY).value, str(start))

        ledger.debit(10)
        self.assertTrue(writer.flush())
        self.assertEqual(writer.parked, 0)
        self.assertEqual(self.store.read(BALANCE_KEY).value, str(start - 20))

    def test_transient_failure_is_retried(self):
        writer = PersistenceWriter(self.store, max_attempts=3, backoff_base=0, backoff_max=0)
        ledger = self.load(writer=writer)
        real_write = self.store.write
        calls = {"n": 0}

        def flaky(*args):
            calls["n"] += 1
            if calls["n"] == 1:
                raise sqlite3.OperationalError("database is locked")
            return real_write(*args)

        with patch.object(self.store, "write", side_effect=flaky):
            ledger.credit(5)
            self.assertTrue(writer.flush())
        self.assertEqual(calls["n"], 2)
        self.assertEqual(writer.parked, 0)
        self.assertEqual(self.store.read(BALANCE_KEY).value, str(ledger.get_balance()))


# ============================================================
# Reconcile loop
# ============================================================

class TestReconcileLoop(_StoreTestCase):

    def test_picks_up_write_from_another_process(self):
        ours = self.load()
        theirs = self.load()
        theirs.credit(500)
        theirs.writer.flush()

        reader = BalanceReader(store=self.store, balance=ours.get_balance())
        loop = ReconcileLoop(ours, readers=[reader])
        self.assertTrue(loop.run_once())
        self.assertEqual(ours.get_balance(), LedgerConfig.DEFAULT_BALANCE + 500)
        self.assertEqual(reader.balance, LedgerConfig.DEFAULT_BALANCE + 500)

    def test_missing_key_is_repersisted(self):
        ledger = self.load()
        ledger.debit(1)
        ledger.writer.flush()
        self.store.delete(BALANCE_KEY)
        ReconcileLoop(ledger).run_once()
        ledger.writer.flush()
        self.assertEqual(self.store.read(BALANCE_KEY).value, str(ledger.get_balance()))

    def test_resume_is_throttled(self):
        loop = ReconcileLoop(self.load())
        with patch.object(loop, "run_once") as run_once:
            self.assertTrue(loop.on_resume())
            self.assertFalse(loop.on_resume())
        run_once.assert_called_once()

    def test_background_thread_starts_and_stops(self):
        loop = ReconcileLoop(self.load(), interval=0.01)
        loop.start()
        loop.stop()
        self.assertIsNone(loop._thread)


if __name__ == "__main__":
    unittest.main(verbosity=2)
