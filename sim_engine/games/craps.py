"""
CASINOCORE - Craps Session

    ComeOut -> Point -> ComeOut

Come-out:  7/11 pass wins, don't pass loses
           2/3  pass loses, don't pass wins
           12   pass loses, don't pass pushes
           else the total becomes the point
Point:     point  pass wins, don't pass loses, back to ComeOut
           7      pass loses, don't pass wins (seven-out), back to ComeOut

One-roll bets (field, any 7) settle on every roll in either state.
Hardways lose on the easy way. Place bets win only while a point is set
and lose on any 7.

Placing a bet debits it; a winning bet returns stake + floor(stake * ratio).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from typing import Optional

from ledger.errors import InvalidAmount
from ledger.service import validate_amount
from sim_engine.errors import InvalidBet
from sim_engine.games.base import BaseGameSession


class CrapsState(str, Enum):
    COME_OUT = "come_out"
    POINT = "point"


class BetType(str, Enum):
    PASS_LINE = "pass_line"
    DONT_PASS = "dont_pass"
    FIELD = "field"
    ANY_7 = "any_7"
    PLACE_4 = "place_4"
    PLACE_5 = "place_5"
    PLACE_6 = "place_6"
    PLACE_8 = "place_8"
    PLACE_9 = "place_9"
    PLACE_10 = "place_10"
    HARD_4 = "hard_4"
    HARD_6 = "hard_6"
    HARD_8 = "hard_8"
    HARD_10 = "hard_10"


CONTRACT_BETS = {BetType.PASS_LINE, BetType.DONT_PASS}
ONE_ROLL_BETS = {BetType.FIELD, BetType.ANY_7}

PLACE_NUMBERS = {
    BetType.PLACE_4: 4, BetType.PLACE_5: 5, BetType.PLACE_6: 6,
    BetType.PLACE_8: 8, BetType.PLACE_9: 9, BetType.PLACE_10: 10,
}
PLACE_RATIOS = {4: Fraction(9, 5), 10: Fraction(9, 5),
                5: Fraction(7, 5), 9: Fraction(7, 5),
                6: Fraction(7, 6), 8: Fraction(7, 6)}

HARD_NUMBERS = {BetType.HARD_4: 4, BetType.HARD_6: 6, BetType.HARD_8: 8, BetType.HARD_10: 10}
HARD_RATIOS = {4: 7, 10: 7, 6: 9, 8: 9}

FIELD_NUMBERS = {2, 3, 4, 9, 10, 11, 12}
FIELD_DOUBLE = {2, 12}
ANY_7_RATIO = 4


class Resolution(str, Enum):
    WIN = "win"
    LOSE = "lose"
    PUSH = "push"


@dataclass
class BetSettlement:
    bet: BetType
    stake: int
    resolution: Resolution
    returned: int

    def to_dict(self) -> dict:
        return {
            "bet": self.bet.value,
            "stake": self.stake,
            "resolution": self.resolution.value,
            "returned": self.returned,
        }


@dataclass
class RollResult:
    dice: tuple[int, int]
    total: int
    state_before: CrapsState
    state_after: CrapsState
    point: Optional[int]
    settlements: list[BetSettlement] = field(default_factory=list)

    @property
    def returned(self) -> int:
        return sum(s.returned for s in self.settlements)

    def settlement(self, bet: BetType) -> Optional[BetSettlement]:
        return next((s for s in self.settlements if s.bet is bet), None)

    def to_dict(self) -> dict:
        return {
            "dice": list(self.dice),
            "total": self.total,
            "state_before": self.state_before.value,
            "state_after": self.state_after.value,
            "point": self.point,
            "settlements": [s.to_dict() for s in self.settlements],
            "returned": self.returned,
        }


class CrapsSession(BaseGameSession):

    game_type = "craps"
    display_name = "Craps"

    TRANSITIONS = {
        CrapsState.COME_OUT: (CrapsState.POINT,),
        CrapsState.POINT: (CrapsState.COME_OUT,),
    }

    def __init__(self, ledger, rng=None, session_id=None):
        super().__init__(ledger, rng, session_id)
        self.point: Optional[int] = None
        self.bets: dict[BetType, int] = {}

    def initial_state(self):
        return CrapsState.COME_OUT

    # ─── Betting ──────────────────────────────────────────────

    def place_bet(self, bet_type, amount: int) -> int:
        """Debit and add to the bet. Returns the total now riding on it."""
        bet = _bet_type(bet_type)
        amount = validate_amount(amount)
        if amount < 1:
            raise InvalidAmount("Bet must be at least 1")
        if bet in CONTRACT_BETS and self.state is CrapsState.POINT and bet not in self.bets:
            raise InvalidBet(f"{bet.value} can only be made on the come-out roll")
        self._stake(amount, what=f"bet:{bet.value}")
        self.bets[bet] = self.bets.get(bet, 0) + amount
        return self.bets[bet]

    def remove_bet(self, bet_type) -> int:
        """Take a bet down and refund it. Contract bets stay up once a point is set."""
        bet = _bet_type(bet_type)
        if bet not in self.bets:
            raise InvalidBet(f"No {bet.value} bet on the table")
        if bet in CONTRACT_BETS and self.state is CrapsState.POINT:
            raise InvalidBet(f"{bet.value} cannot be removed while a point is set")
        amount = self.bets.pop(bet)
        self._pay(amount, what=f"refund:{bet.value}")
        return amount

    # ─── Rolling ──────────────────────────────────────────────

    def roll(self, dice: tuple[int, int] = None) -> RollResult:
        if dice is None:
            dice = (self.rng.randint(1, 6), self.rng.randint(1, 6))
        if len(dice) != 2 or any(not 1 <= d <= 6 for d in dice):
            raise InvalidBet(f"Invalid dice {dice}")
        d1, d2 = dice
        total = d1 + d2
        hard = d1 == d2
        before = self.state
        settlements: list[BetSettlement] = []

        def settle(bet: BetType, resolution: Resolution, ratio=0):
            stake = self.bets.pop(bet)
            if resolution is Resolution.WIN:
                returned = stake + math.floor(stake * ratio)
            elif resolution is Resolution.PUSH:
                returned = stake
            else:
                returned = 0
            settlements.append(BetSettlement(bet, stake, resolution, returned))

        # One-roll bets
        if BetType.FIELD in self.bets:
            if total in FIELD_NUMBERS:
                settle(BetType.FIELD, Resolution.WIN, 2 if total in FIELD_DOUBLE else 1)
            else:
                settle(BetType.FIELD, Resolution.LOSE)
        if BetType.ANY_7 in self.bets:
            settle(BetType.ANY_7, Resolution.WIN if total == 7 else Resolution.LOSE, ANY_7_RATIO)

        # Hardways
        for bet, number in HARD_NUMBERS.items():
            if bet in self.bets and total == number:
                settle(bet, Resolution.WIN if hard else Resolution.LOSE, HARD_RATIOS[number])

        # Place bets
        for bet, number in PLACE_NUMBERS.items():
            if bet not in self.bets:
                continue
            if total == 7:
                settle(bet, Resolution.LOSE)
            elif before is CrapsState.POINT and total == number:
                settle(bet, Resolution.WIN, PLACE_RATIOS[number])

        # Line bets and state
        if before is CrapsState.COME_OUT:
            if total in (7, 11):
                self._settle_line(settle, pass_wins=True)
            elif total in (2, 3):
                self._settle_line(settle, pass_wins=False)
            elif total == 12:
                if BetType.PASS_LINE in self.bets:
                    settle(BetType.PASS_LINE, Resolution.LOSE)
                if BetType.DONT_PASS in self.bets:
                    settle(BetType.DONT_PASS, Resolution.PUSH)
            else:
                self.point = total
                self._transition(CrapsState.POINT)
        else:
            if total == self.point:
                self._settle_line(settle, pass_wins=True)
                self._end_point()
            elif total == 7:
                self._settle_line(settle, pass_wins=False)
                self._end_point()

        result = RollResult(dice=(d1, d2), total=total, state_before=before,
                            state_after=self.state, point=self.point, settlements=settlements)
        returned = result.returned
        self._pay(returned, what=f"roll:{total}")
        if settlements:
            self._record(sum(s.stake for s in settlements), returned, total=total)
        return result

    def _settle_line(self, settle, pass_wins: bool):
        if BetType.PASS_LINE in self.bets:
            settle(BetType.PASS_LINE, Resolution.WIN if pass_wins else Resolution.LOSE, 1)
        if BetType.DONT_PASS in self.bets:
            settle(BetType.DONT_PASS, Resolution.LOSE if pass_wins else Resolution.WIN, 1)

    def _end_point(self):
        self.point = None
        self._transition(CrapsState.COME_OUT)

    def view(self) -> dict:
        return {
            "state": self.state.value,
            "point": self.point,
            "bets": {b.value: amt for b, amt in self.bets.items()},
            "balance": self.ledger.get_balance(),
        }


def _bet_type(value) -> BetType:
    try:
        return BetType(value)
    except ValueError:
        raise InvalidBet(
            f"Unknown craps bet: {value}. Available: {[b.value for b in BetType]}"
        ) from None
