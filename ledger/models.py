"""
CASINOCORE - Ledger Data Models

Transaction is the unit written to the transaction log and the unit
handed to balance listeners. Never mutated after creation.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict


# Persisted keys
BALANCE_KEY = "balance"
DEFAULT_WAGER_KEY = "defaultWager"
LAST_ACTIVE_GAME_KEY = "lastActiveGame"


@dataclass(frozen=True)
class Transaction:
    delta: int            # signed
    cause: str
    timestamp: float
    balance_after: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class StoredValue:
    """A raw persisted value with its write timestamp."""
    key: str
    value: str
    updated_at: float


def newer_and_different(local_value: int, local_ts: float,
                        persisted_value: int, persisted_ts: float) -> bool:
    """Last-writer-wins: adopt the persisted value only when it was written
    after the local one and actually differs from it."""
    return persisted_ts > local_ts and persisted_value != local_value
