"""
CASINOCORE - Base Game Session

Abstract base for every game session. A session owns its state machine,
its rng and its round history; the balance belongs to the injected
WagerLedger and only moves through ledger.debit / ledger.credit.
"""

from __future__ import annotations

import logging
import random
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ledger.models import Transaction
from ledger.service import WagerLedger
from sim_engine.errors import InvalidGameState

logger = logging.getLogger("casinocore.games")


@dataclass
class RoundRecord:
    """Settled outcome of one spin / hand / roll."""
    round_id: int
    wagered: int
    returned: int
    detail: dict = field(default_factory=dict)

    @property
    def net(self) -> int:
        return self.returned - self.wagered

    def to_dict(self) -> dict:
        return {
            "round_id": self.round_id,
            "wagered": self.wagered,
            "returned": self.returned,
            "net": self.net,
            "detail": self.detail,
        }


class BaseGameSession(ABC):
    """Abstract base for all game sessions."""

    game_type: str = "base"
    display_name: str = "Base Game"

    # state -> states reachable from it
    TRANSITIONS: dict = {}

    def __init__(self, ledger: WagerLedger, rng: Optional[random.Random] = None,
                 session_id: str = None):
        self.ledger = ledger
        self.rng = rng or random.SystemRandom()
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.state = self.initial_state()
        self.history: list[RoundRecord] = []

    @abstractmethod
    def initial_state(self) -> Enum:
        ...

    # ─── State machine ────────────────────────────────────────

    def _require(self, action: str, *states):
        if self.state not in states:
            raise InvalidGameState(self.game_type, self.state, action)

    def _transition(self, new_state: Enum):
        allowed = self.TRANSITIONS.get(self.state, ())
        if new_state not in allowed:
            raise InvalidGameState(self.game_type, self.state, f"move to '{new_state.value}'")
        logger.debug(f"[{self.game_type}:{self.session_id}] {self.state.value} -> {new_state.value}")
        self.state = new_state

    # ─── Ledger ───────────────────────────────────────────────

    def _stake(self, amount: int, what: str = "wager") -> Transaction:
        return self.ledger.debit(amount, cause=f"{self.game_type}:{what}")

    def _pay(self, amount: int, what: str = "payout") -> Optional[Transaction]:
        if amount > 0:
            return self.ledger.credit(amount, cause=f"{self.game_type}:{what}")
        return None

    def _record(self, wagered: int, returned: int, **detail) -> RoundRecord:
        record = RoundRecord(len(self.history) + 1, wagered, returned, detail)
        self.history.append(record)
        return record

    def activate(self):
        """Mark this game as the last one played."""
        self.ledger.set_last_active_game(self.game_type)

    def get_metadata(self) -> dict:
        return {
            "game_type": self.game_type,
            "display_name": self.display_name,
            "session_id": self.session_id,
            "state": self.state.value,
            "rounds": len(self.history),
        }
