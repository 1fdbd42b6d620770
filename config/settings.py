"""
CASINOCORE - Configuration

Env-driven settings for the wager ledger and the outcome/payout engine.
Every value can be overridden from the environment or a local .env file.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("CASINO_DATA_DIR", "./data"))


# ============================================================
# WAGER LEDGER
#
# Balance + preferences live in one SQLite file. Writes are
# fire-and-forget from the ledger's point of view; the writer
# thread retries with exponential backoff:
#   delay = min(BACKOFF_BASE * 2**attempt, BACKOFF_MAX)
# ============================================================

class LedgerConfig:

    DB_PATH = os.getenv("CASINO_DB_PATH", str(DATA_DIR / "casino.db"))

    # --- Seed values for a first launch ---
    DEFAULT_BALANCE = int(os.getenv("CASINO_DEFAULT_BALANCE", "1000"))
    DEFAULT_WAGER = int(os.getenv("CASINO_DEFAULT_WAGER", "10"))

    # --- Persistence tail ---
    PERSIST_MAX_ATTEMPTS = int(os.getenv("CASINO_PERSIST_MAX_ATTEMPTS", "5"))
    PERSIST_BACKOFF_BASE_S = float(os.getenv("CASINO_PERSIST_BACKOFF_BASE", "0.05"))
    PERSIST_BACKOFF_MAX_S = float(os.getenv("CASINO_PERSIST_BACKOFF_MAX", "2.0"))

    # --- Readers ---
    RECONCILE_INTERVAL_S = float(os.getenv("CASINO_RECONCILE_INTERVAL", "0.4"))
    RESUME_THROTTLE_S = 1.0

    # In-memory transaction window (the full log is in SQLite)
    TRANSACTION_HISTORY = int(os.getenv("CASINO_TX_HISTORY", "500"))

    @classmethod
    def summary(cls) -> dict:
        return {
            "db_path": cls.DB_PATH,
            "default_balance": cls.DEFAULT_BALANCE,
            "default_wager": cls.DEFAULT_WAGER,
            "persist_max_attempts": cls.PERSIST_MAX_ATTEMPTS,
            "reconcile_interval_s": cls.RECONCILE_INTERVAL_S,
        }


# ============================================================
# OUTCOME / PAYOUT ENGINE
# ============================================================

class EngineConfig:

    # Paytable probabilities must sum to 1 within this epsilon
    PROBABILITY_TOLERANCE = float(os.getenv("CASINO_PROBABILITY_TOLERANCE", "1e-6"))

    MIN_RUN_LENGTH = 3

    # Monte Carlo convergence checks
    MONTE_CARLO_DRAWS = int(os.getenv("CASINO_MC_DRAWS", "100000"))
    FREQUENCY_TOLERANCE = float(os.getenv("CASINO_FREQ_TOLERANCE", "0.01"))

    @classmethod
    def summary(cls) -> dict:
        return {
            "probability_tolerance": cls.PROBABILITY_TOLERANCE,
            "min_run_length": cls.MIN_RUN_LENGTH,
            "monte_carlo_draws": cls.MONTE_CARLO_DRAWS,
            "frequency_tolerance": cls.FREQUENCY_TOLERANCE,
        }
