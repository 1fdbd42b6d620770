"""
CASINOCORE - Roulette Session

European single-zero wheel.

    Betting -> Spinning -> Resolved -> Betting

One pocket (number + color) settles every bet on the table independently.
Credited totals include the stake: straight 36x, dozens 3x, even-money
bets 2x. Zero loses every outside bet.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ledger.errors import InvalidAmount
from ledger.service import validate_amount
from sim_engine.errors import InvalidBet
from sim_engine.games.base import BaseGameSession

# Wheel order, clockwise from zero
WHEEL_ORDER = (
    0, 32, 15, 19, 4, 21, 2, 25, 17, 34, 6, 27, 13, 36, 11, 30, 8, 23, 10,
    5, 24, 16, 33, 1, 20, 14, 31, 9, 22, 18, 29, 7, 28, 12, 35, 3, 26,
)
RED_NUMBERS = frozenset({
    32, 19, 21, 25, 34, 27, 36, 30, 23, 5, 16, 1, 14, 9, 18, 7, 12, 3,
})

# payout ratio (to 1) per bet category
PAYOUT_RATIOS = {
    "straight": 35,
    "red": 1, "black": 1,
    "even": 1, "odd": 1,
    "low": 1, "high": 1,
    "dozen": 2,
}


def color_of(number: int) -> str:
    if number == 0:
        return "green"
    return "red" if number in RED_NUMBERS else "black"


class RouletteState(str, Enum):
    BETTING = "betting"
    SPINNING = "spinning"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class RouletteBet:
    category: str
    selection: int = 0      # number for straight, 1-3 for dozen

    @property
    def key(self) -> str:
        if self.category in ("straight", "dozen"):
            return f"{self.category}:{self.selection}"
        return self.category

    @classmethod
    def parse(cls, key: str) -> "RouletteBet":
        """'red', 'straight:17', 'dozen:2' ..."""
        category, _, selection = str(key).partition(":")
        if category not in PAYOUT_RATIOS:
            raise InvalidBet(f"Unknown roulette bet: {key}. Available: {sorted(PAYOUT_RATIOS)}")
        if category == "straight":
            number = _int_selection(key, selection)
            if not 0 <= number <= 36:
                raise InvalidBet(f"Straight bet must be 0-36, got {number}")
            return cls(category, number)
        if category == "dozen":
            dozen = _int_selection(key, selection)
            if dozen not in (1, 2, 3):
                raise InvalidBet(f"Dozen must be 1, 2 or 3, got {dozen}")
            return cls(category, dozen)
        if selection:
            raise InvalidBet(f"'{category}' takes no selection")
        return cls(category)

    def wins(self, number: int) -> bool:
        c = self.category
        if c == "straight":
            return number == self.selection
        if number == 0:
            return False
        if c in ("red", "black"):
            return color_of(number) == c
        if c == "even":
            return number % 2 == 0
        if c == "odd":
            return number % 2 == 1
        if c == "low":
            return number <= 18
        if c == "high":
            return number >= 19
        return (number - 1) // 12 + 1 == self.selection


def _int_selection(key, selection) -> int:
    try:
        return int(selection)
    except ValueError:
        raise InvalidBet(f"Bet '{key}' needs a numeric selection") from None


@dataclass
class SpinOutcome:
    number: int
    color: str
    settlements: dict = field(default_factory=dict)   # bet key -> credited total

    @property
    def returned(self) -> int:
        return sum(self.settlements.values())

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "color": self.color,
            "settlements": self.settlements,
            "returned": self.returned,
        }


class RouletteSession(BaseGameSession):

    game_type = "roulette"
    display_name = "Roulette"

    TRANSITIONS = {
        RouletteState.BETTING: (RouletteState.SPINNING,),
        RouletteState.SPINNING: (RouletteState.RESOLVED,),
        RouletteState.RESOLVED: (RouletteState.BETTING,),
    }

    def __init__(self, ledger, rng=None, session_id=None):
        super().__init__(ledger, rng, session_id)
        self.bets: dict[RouletteBet, int] = {}
        self.last_outcome = None

    def initial_state(self):
        return RouletteState.BETTING

    def place_bet(self, key: str, amount: int) -> int:
        self._require("place a bet", RouletteState.BETTING)
        bet = RouletteBet.parse(key)
        amount = validate_amount(amount)
        if amount < 1:
            raise InvalidAmount("Bet must be at least 1")
        self._stake(amount, what=f"bet:{bet.key}")
        self.bets[bet] = self.bets.get(bet, 0) + amount
        return self.bets[bet]

    def clear_bets(self) -> int:
        self._require("clear bets", RouletteState.BETTING)
        refund = sum(self.bets.values())
        self.bets.clear()
        self._pay(refund, what="refund")
        return refund

    def spin(self, number: int = None) -> SpinOutcome:
        self._require("spin", RouletteState.BETTING)
        if not self.bets:
            raise InvalidBet("Place at least one bet before spinning")
        self._transition(RouletteState.SPINNING)
        if number is None:
            number = self.rng.choice(WHEEL_ORDER)
        elif number not in WHEEL_ORDER:
            raise InvalidBet(f"No pocket {number} on a single-zero wheel")

        settlements = {}
        for bet, stake in self.bets.items():
            settlements[bet.key] = stake * (PAYOUT_RATIOS[bet.category] + 1) if bet.wins(number) else 0

        outcome = SpinOutcome(number, color_of(number), settlements)
        self._pay(outcome.returned, what=f"pocket:{number}")
        self._record(sum(self.bets.values()), outcome.returned, number=number)
        self.bets = {}
        self.last_outcome = outcome
        self._transition(RouletteState.RESOLVED)
        return outcome

    def next_round(self):
        self._require("start a new round", RouletteState.RESOLVED)
        self._transition(RouletteState.BETTING)

    def view(self) -> dict:
        return {
            "state": self.state.value,
            "bets": {b.key: amt for b, amt in self.bets.items()},
            "last_outcome": self.last_outcome.to_dict() if self.last_outcome else None,
            "balance": self.ledger.get_balance(),
        }
