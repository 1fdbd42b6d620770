"""
CASINOCORE - Persisted State Store

StateStore reads and writes the key/value state and the transaction log.
PersistenceWriter is the fire-and-forget tail behind the ledger: a daemon
thread that drains write jobs, retrying each with exponential backoff.

A job that keeps failing is parked, never dropped. Parked jobs are replayed
before the next job runs. A successful write of a key supersedes any parked
write of the same key, so a stale balance can never land on top of a
fresher one.

Usage:
    from ledger.store import StateStore, PersistenceWriter

    store = StateStore("data/casino.db")
    writer = PersistenceWriter(store)
    writer.persist_value("balance", "990", time.time())
    writer.flush()
"""

from __future__ import annotations

import logging
import queue
import sqlite3
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

from config.database import get_db, init_db
from config.settings import LedgerConfig
from ledger.errors import PersistenceFailure
from ledger.models import StoredValue, Transaction

logger = logging.getLogger("casinocore.persist")


class StateStore:

    def __init__(self, db_path=None):
        self.db_path = db_path or LedgerConfig.DB_PATH
        init_db(self.db_path)

    def read(self, key: str) -> Optional[StoredValue]:
        with get_db(self.db_path) as db:
            row = db.execute(
                "SELECT key, value, updated_at FROM kv_state WHERE key = ?", [key]
            ).fetchone()
        if row is None:
            return None
        return StoredValue(row["key"], row["value"], row["updated_at"])

    def write(self, key: str, value: str, updated_at: float):
        with get_db(self.db_path) as db:
            db.execute(
                "INSERT INTO kv_state (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                "updated_at = excluded.updated_at",
                [key, value, updated_at],
            )

    def delete(self, key: str):
        with get_db(self.db_path) as db:
            db.execute("DELETE FROM kv_state WHERE key = ?", [key])

    def append_transaction(self, tx: Transaction):
        with get_db(self.db_path) as db:
            db.execute(
                "INSERT INTO transactions (delta, cause, balance_after, timestamp) "
                "VALUES (?, ?, ?, ?)",
                [tx.delta, tx.cause, tx.balance_after, tx.timestamp],
            )

    def recent_transactions(self, limit: int = 50) -> list[Transaction]:
        with get_db(self.db_path) as db:
            rows = db.execute(
                "SELECT delta, cause, balance_after, timestamp FROM transactions "
                "ORDER BY id DESC LIMIT ?", [limit]
            ).fetchall()
        return [
            Transaction(r["delta"], r["cause"], r["timestamp"], r["balance_after"])
            for r in reversed(rows)
        ]


# ═══════════════════════════════════════════════════════════════
# Background writer
# ═══════════════════════════════════════════════════════════════

@dataclass
class WriteJob:
    key: Optional[str]         # None for append-only jobs
    action: Callable[[], None]
    description: str = ""


_STOP = object()


class PersistenceWriter:

    def __init__(self, store: StateStore,
                 max_attempts: int = None,
                 backoff_base: float = None,
                 backoff_max: float = None):
        self.store = store
        self.max_attempts = max_attempts or LedgerConfig.PERSIST_MAX_ATTEMPTS
        self.backoff_base = LedgerConfig.PERSIST_BACKOFF_BASE_S if backoff_base is None else backoff_base
        self.backoff_max = LedgerConfig.PERSIST_BACKOFF_MAX_S if backoff_max is None else backoff_max
        self._queue: queue.Queue = queue.Queue()
        self._parked: deque[WriteJob] = deque()
        self._stopping = threading.Event()
        self._thread = threading.Thread(target=self._run, name="casino-persist", daemon=True)
        self._thread.start()

    # ─── Submission ───────────────────────────────────────────

    def persist_value(self, key: str, value: str, updated_at: float):
        self._queue.put(WriteJob(
            key=key,
            action=lambda: self.store.write(key, value, updated_at),
            description=f"{key}={value}",
        ))

    def append_transaction(self, tx: Transaction):
        self._queue.put(WriteJob(
            key=None,
            action=lambda: self.store.append_transaction(tx),
            description=f"tx {tx.cause} {tx.delta:+d}",
        ))

    @property
    def parked(self) -> int:
        return len(self._parked)

    def flush(self, timeout: float = 5.0) -> bool:
        """Wait until every submitted job has been attempted."""
        deadline = time.monotonic() + timeout
        while self._queue.unfinished_tasks:
            if time.monotonic() > deadline:
                return False
            time.sleep(0.005)
        return True

    def close(self, timeout: float = 5.0):
        self.flush(timeout)
        self._stopping.set()
        self._queue.put(_STOP)
        self._thread.join(timeout)
        if self._parked:
            logger.error(f"Writer closed with {len(self._parked)} parked write(s)")

    # ─── Worker ───────────────────────────────────────────────

    def _run(self):
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                self._replay_parked()
                self._execute(job)
            finally:
                self._queue.task_done()

    def _replay_parked(self):
        for _ in range(len(self._parked)):
            job = self._parked.popleft()
            self._execute(job)

    def _execute(self, job: WriteJob) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            try:
                job.action()
            except (sqlite3.Error, OSError) as e:
                failure = PersistenceFailure(job.key or "transactions", attempt, e)
                logger.warning(str(failure))
                if attempt < self.max_attempts and not self._stopping.is_set():
                    delay = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
                    self._stopping.wait(delay)
                continue
            if job.key is not None:
                self._drop_parked(job.key)
            return True

        logger.error(f"Parking write after {self.max_attempts} attempts: {job.description}")
        if job.key is not None:
            self._drop_parked(job.key)
        self._parked.append(job)
        return False

    def _drop_parked(self, key: str):
        if self._parked:
            self._parked = deque(j for j in self._parked if j.key != key)
