"""
CASINOCORE - Wager Ledger package.

Usage:
    from ledger import WagerLedger, StateStore

    ledger = WagerLedger.load(StateStore())
"""

from ledger.errors import (
    CasinoError, CorruptedPersistedState, InsufficientFunds,
    InvalidAmount, PersistenceFailure,
)
from ledger.models import Transaction
from ledger.service import WagerLedger
from ledger.store import PersistenceWriter, StateStore
from ledger.sync import BalanceReader, ReconcileLoop

__all__ = [
    "CasinoError", "CorruptedPersistedState", "InsufficientFunds",
    "InvalidAmount", "PersistenceFailure",
    "Transaction", "WagerLedger", "PersistenceWriter", "StateStore",
    "BalanceReader", "ReconcileLoop",
]
