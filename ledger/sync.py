"""
CASINOCORE - Balance Sync

Display readers get balance updates pushed through
ledger.on_balance_changed. The ReconcileLoop is only a safety net for
missed notifications and for writes made by another process against the
same store: every RECONCILE_INTERVAL_S (and on resume) it re-reads the
persisted balance and applies the last-writer-wins rule.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from typing import Optional

from config.settings import LedgerConfig
from ledger.models import BALANCE_KEY, Transaction, newer_and_different
from ledger.service import WagerLedger
from ledger.store import StateStore

logger = logging.getLogger("casinocore.sync")


class BalanceReader:
    """Passive cached view of the balance (header widgets, lobby, etc.)."""

    def __init__(self, ledger: Optional[WagerLedger] = None,
                 store: Optional[StateStore] = None,
                 balance: int = 0, timestamp: float = 0.0):
        self.store = store or (ledger.store if ledger else None)
        self._lock = threading.Lock()
        self._unsubscribe = None
        if ledger is not None:
            balance, timestamp = ledger.get_balance(), ledger.last_write_ts
            self._unsubscribe = ledger.on_balance_changed(self._on_change)
        self.balance = balance
        self.timestamp = timestamp

    def _on_change(self, balance: int, tx: Transaction):
        with self._lock:
            # pushes from different threads may arrive out of order
            if tx.timestamp >= self.timestamp:
                self.balance = balance
                self.timestamp = tx.timestamp

    def observe(self, value: int, ts: float) -> bool:
        with self._lock:
            if newer_and_different(self.balance, self.timestamp, value, ts):
                self.balance = value
                self.timestamp = ts
                return True
            return False

    def poll(self) -> bool:
        if self.store is None:
            return False
        stored = self.store.read(BALANCE_KEY)
        if stored is None:
            return False
        try:
            value = int(stored.value)
        except ValueError:
            logger.warning(f"Reader skipped unreadable balance {stored.value!r}")
            return False
        return self.observe(value, stored.updated_at)

    def close(self):
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None


class ReconcileLoop:

    def __init__(self, ledger: WagerLedger, store: StateStore = None,
                 interval: float = None, readers=()):
        self.ledger = ledger
        self.store = store or ledger.store
        self.interval = interval or LedgerConfig.RECONCILE_INTERVAL_S
        self.readers = list(readers)
        self._stop = threading.Event()
        self._thread = None
        self._last_resume = 0.0

    def run_once(self) -> bool:
        """One reconciliation pass. Returns True if the ledger adopted a value."""
        try:
            stored = self.store.read(BALANCE_KEY)
        except sqlite3.Error as e:
            logger.warning(f"Reconcile read failed: {e}")
            return False

        adopted = False
        if stored is None:
            self.ledger.repersist()
        else:
            try:
                value = int(stored.value)
            except ValueError:
                logger.warning(f"Persisted balance unreadable ({stored.value!r}); re-persisting")
                self.ledger.repersist()
            else:
                adopted = self.ledger.reconcile(value, stored.updated_at)

        for reader in self.readers:
            reader.poll()
        return adopted

    def on_resume(self) -> bool:
        """Process came back to the foreground. At most one pass per second."""
        now = time.monotonic()
        if now - self._last_resume < LedgerConfig.RESUME_THROTTLE_S:
            return False
        self._last_resume = now
        self.run_once()
        return True

    def start(self):
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="casino-reconcile", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self):
        while not self._stop.wait(self.interval):
            self.run_once()
