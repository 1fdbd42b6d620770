"""
CASINOCORE - Database Layer

SQLite storage for the persisted casino state (balance, default wager,
last active game) and the append-only transaction log.

Usage:
    from config.database import get_db, init_db

    init_db(path)
    with get_db(path) as db:
        row = db.execute("SELECT value FROM kv_state WHERE key = ?", ["balance"]).fetchone()
"""

import logging
import sqlite3
from pathlib import Path

from config.settings import LedgerConfig

logger = logging.getLogger("casinocore.db")


def _sqlite_dict_factory(cursor, row):
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def _open_sqlite(path):
    """Open a raw SQLite connection."""
    conn = sqlite3.connect(str(path), timeout=10)
    conn.row_factory = _sqlite_dict_factory
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


# ═══════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════

class DatabaseConnection:
    """Thin wrapper around a SQLite connection.

    - Returns dict rows from queries
    - Commits on clean exit from a `with` block, rolls back otherwise
    """

    def __init__(self, conn):
        self._conn = conn
        self._cursor = None

    def execute(self, sql, params=None):
        """Execute a query. Returns self for chaining."""
        self._cursor = self._conn.execute(sql, params or [])
        return self

    def executescript(self, sql):
        self._conn.executescript(sql)
        return self

    def fetchone(self):
        if self._cursor is None:
            return None
        return self._cursor.fetchone()

    def fetchall(self):
        if self._cursor is None:
            return []
        return self._cursor.fetchall()

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.rollback()
        else:
            self.commit()
        self.close()


def get_db(path=None):
    """Open a new connection. Caller closes it (or uses `with`)."""
    path = Path(path or LedgerConfig.DB_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    return DatabaseConnection(_open_sqlite(path))


# ═══════════════════════════════════════════════════════════════
# Schema Initialization
# ═══════════════════════════════════════════════════════════════

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    delta INTEGER NOT NULL,
    cause TEXT NOT NULL,
    balance_after INTEGER NOT NULL,
    timestamp REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_transactions_ts ON transactions(timestamp);
"""


def init_db(path=None):
    """Initialize the database schema."""
    db = get_db(path)
    try:
        db.executescript(SCHEMA_SQL)
        db.commit()
        logger.info(f"Database initialized ({path or LedgerConfig.DB_PATH})")
    finally:
        db.close()
