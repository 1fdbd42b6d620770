"""
CASINOCORE - Wager Ledger

The single authoritative credit balance. One WagerLedger instance is
created at startup and injected into every game session; nothing else
mutates the balance.

    ledger.debit(n)     -> Transaction   (InsufficientFunds, no partial debits)
    ledger.credit(n)    -> Transaction
    ledger.get_balance()
    ledger.reconcile(persisted_value, persisted_ts) -> bool
    ledger.on_balance_changed(listener) -> unsubscribe()

Each mutation reads, computes and writes the balance under one lock, so
two interleaved callers can never both work from the pre-mutation value.
The in-memory balance is authoritative the moment a mutation returns;
the SQLite write happens later on the PersistenceWriter thread.

Usage:
    from ledger import WagerLedger, StateStore

    ledger = WagerLedger.load(StateStore("data/casino.db"))
    ledger.debit(10, cause="slots:classic:wager")
"""

from __future__ import annotations

import logging
import math
import numbers
import threading
import time
from collections import deque
from typing import Callable, Optional

from config.settings import LedgerConfig
from ledger.errors import CorruptedPersistedState, InsufficientFunds, InvalidAmount
from ledger.models import (
    BALANCE_KEY, DEFAULT_WAGER_KEY, LAST_ACTIVE_GAME_KEY,
    Transaction, newer_and_different,
)
from ledger.store import PersistenceWriter, StateStore

logger = logging.getLogger("casinocore.ledger")

BalanceListener = Callable[[int, Transaction], None]


def validate_amount(amount) -> int:
    """Coerce to a non-negative int or raise InvalidAmount."""
    if isinstance(amount, bool):
        raise InvalidAmount(f"Amount must be a number, got {amount!r}")
    if isinstance(amount, numbers.Integral):
        value = int(amount)
    elif isinstance(amount, numbers.Real):
        if not math.isfinite(amount) or amount != int(amount):
            raise InvalidAmount(f"Amount must be a finite whole number, got {amount!r}")
        value = int(amount)
    else:
        raise InvalidAmount(f"Amount must be a number, got {amount!r}")
    if value < 0:
        raise InvalidAmount(f"Amount must not be negative, got {value}")
    return value


class WagerLedger:

    def __init__(self, store: Optional[StateStore] = None,
                 writer: Optional[PersistenceWriter] = None,
                 balance: int = None,
                 default_wager: int = None,
                 last_active_game: Optional[str] = None,
                 last_write_ts: float = 0.0,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.writer = writer or (PersistenceWriter(store) if store is not None else None)
        self._balance = validate_amount(LedgerConfig.DEFAULT_BALANCE if balance is None else balance)
        self._default_wager = validate_amount(
            LedgerConfig.DEFAULT_WAGER if default_wager is None else default_wager)
        if self._default_wager < 1:
            raise InvalidAmount("Default wager must be at least 1")
        self._last_active_game = last_active_game
        self._last_write_ts = last_write_ts
        self._clock = clock
        self._lock = threading.RLock()
        self._transactions: deque[Transaction] = deque(maxlen=LedgerConfig.TRANSACTION_HISTORY)
        self._listeners: list[BalanceListener] = []

    # ═══════════════════════════════════════════════════════════
    # Loading
    # ═══════════════════════════════════════════════════════════

    @classmethod
    def load(cls, store: StateStore, writer: PersistenceWriter = None,
             clock: Callable[[], float] = time.time) -> "WagerLedger":
        """Build a ledger from persisted state, seeding or repairing keys."""
        balance, balance_ts = _load_int(store, BALANCE_KEY, LedgerConfig.DEFAULT_BALANCE, 0, clock)
        wager, _ = _load_int(store, DEFAULT_WAGER_KEY, LedgerConfig.DEFAULT_WAGER, 1, clock)
        last_game = store.read(LAST_ACTIVE_GAME_KEY)
        ledger = cls(
            store=store, writer=writer,
            balance=balance, default_wager=wager,
            last_active_game=last_game.value if last_game else None,
            last_write_ts=balance_ts, clock=clock,
        )
        logger.info(f"Ledger loaded: balance={balance}, default_wager={wager}")
        return ledger

    # ═══════════════════════════════════════════════════════════
    # Balance operations
    # ═══════════════════════════════════════════════════════════

    def get_balance(self) -> int:
        with self._lock:
            return self._balance

    @property
    def last_write_ts(self) -> float:
        with self._lock:
            return self._last_write_ts

    def debit(self, amount, cause: str = "wager") -> Transaction:
        value = validate_amount(amount)
        with self._lock:
            if value > self._balance:
                raise InsufficientFunds(value, self._balance)
            tx = self._apply(-value, cause)
        self._publish(tx)
        return tx

    def credit(self, amount, cause: str = "payout") -> Transaction:
        value = validate_amount(amount)
        with self._lock:
            tx = self._apply(value, cause)
        self._publish(tx)
        return tx

    def reconcile(self, persisted_value: int, persisted_ts: float) -> bool:
        """Resolve divergence with the persisted copy. Returns True when the
        persisted value was adopted."""
        with self._lock:
            adopt = newer_and_different(self._balance, self._last_write_ts,
                                        persisted_value, persisted_ts)
            if adopt and (not isinstance(persisted_value, int) or persisted_value < 0):
                logger.warning(f"Ignoring invalid persisted balance {persisted_value!r}")
                adopt = False

            if adopt:
                old = self._balance
                self._balance = persisted_value
                self._last_write_ts = persisted_ts
                tx = Transaction(persisted_value - old, "reconcile", persisted_ts, persisted_value)
                self._transactions.append(tx)
                logger.info(f"Reconciled balance {old} -> {persisted_value} (newer persisted write)")
            else:
                tx = None
                if persisted_value != self._balance:
                    self._repersist()

        if tx is not None:
            self._publish(tx)
        return adopt

    def repersist(self):
        """Schedule a write of the in-memory balance with a fresh timestamp."""
        with self._lock:
            self._repersist()

    def transactions(self, limit: int = None) -> list[Transaction]:
        with self._lock:
            items = list(self._transactions)
        return items[-limit:] if limit else items

    # ─── Listeners ────────────────────────────────────────────

    def on_balance_changed(self, listener: BalanceListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return unsubscribe

    # ═══════════════════════════════════════════════════════════
    # Preferences
    # ═══════════════════════════════════════════════════════════

    @property
    def default_wager(self) -> int:
        return self._default_wager

    def set_default_wager(self, amount):
        value = validate_amount(amount)
        if value < 1:
            raise InvalidAmount("Default wager must be at least 1")
        with self._lock:
            self._default_wager = value
            self._persist(DEFAULT_WAGER_KEY, str(value), self._clock())

    @property
    def last_active_game(self) -> Optional[str]:
        return self._last_active_game

    def set_last_active_game(self, game_id: str):
        with self._lock:
            self._last_active_game = game_id
            self._persist(LAST_ACTIVE_GAME_KEY, game_id, self._clock())

    def close(self):
        if self.writer is not None:
            self.writer.close()

    # ═══════════════════════════════════════════════════════════
    # Internals (caller holds the lock)
    # ═══════════════════════════════════════════════════════════

    def _next_timestamp(self) -> float:
        ts = self._clock()
        if ts <= self._last_write_ts:
            ts = self._last_write_ts + 1e-6
        self._last_write_ts = ts
        return ts

    def _apply(self, delta: int, cause: str) -> Transaction:
        self._balance += delta
        tx = Transaction(delta, cause, self._next_timestamp(), self._balance)
        self._transactions.append(tx)
        self._persist(BALANCE_KEY, str(self._balance), tx.timestamp)
        if self.writer is not None:
            self.writer.append_transaction(tx)
        return tx

    def _repersist(self):
        self._persist(BALANCE_KEY, str(self._balance), self._next_timestamp())

    def _persist(self, key: str, value: str, ts: float):
        if self.writer is not None:
            self.writer.persist_value(key, value, ts)

    def _publish(self, tx: Transaction):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(tx.balance_after, tx)
            except Exception:
                logger.exception(f"Balance listener {listener!r} failed")


def _load_int(store: StateStore, key: str, default: int, minimum: int, clock):
    """Read an integer key; seed it when missing, repair it when unreadable."""
    stored = store.read(key)
    if stored is None:
        ts = clock()
        store.write(key, str(default), ts)
        logger.info(f"Seeded '{key}' with default {default}")
        return default, ts
    try:
        value = int(stored.value)
        if value < minimum:
            raise ValueError(f"below minimum {minimum}")
    except ValueError:
        err = CorruptedPersistedState(key, stored.value)
        ts = clock()
        logger.warning(f"{err}; restoring default {default}")
        store.write(key, str(default), ts)
        return default, ts
    return value, stored.updated_at
