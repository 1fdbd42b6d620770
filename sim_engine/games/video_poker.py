"""
CASINOCORE - Video Poker Session

Five-card draw against a dealer hand.

    Betting -> Holding -> Resolved -> Betting

After the draw the dealer is dealt five cards from the same deck. The
player wins when their hand category ranks at or above the dealer's, and
is credited bet * multiplier for that category. A pair below jacks and
high card pay nothing even when they beat the dealer.
"""

from __future__ import annotations

from collections import Counter
from enum import Enum

from ledger.errors import InvalidAmount
from ledger.service import validate_amount
from sim_engine.errors import InvalidBet
from sim_engine.games.base import BaseGameSession
from sim_engine.games.cards import Card, Deck, RANK_ORDER


class HandRank(Enum):
    # (strength, multiplier)
    ROYAL_FLUSH = (10, 250)
    STRAIGHT_FLUSH = (9, 50)
    FOUR_OF_A_KIND = (8, 25)
    FULL_HOUSE = (7, 9)
    FLUSH = (6, 6)
    STRAIGHT = (5, 4)
    THREE_OF_A_KIND = (4, 3)
    TWO_PAIR = (3, 2)
    JACKS_OR_BETTER = (2, 1)
    LOW_PAIR = (1, 0)
    HIGH_CARD = (0, 0)

    @property
    def strength(self) -> int:
        return self.value[0]

    @property
    def multiplier(self) -> int:
        return self.value[1]

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()


def evaluate_hand(cards: list[Card]) -> HandRank:
    if len(cards) != 5:
        raise ValueError(f"A poker hand has 5 cards, got {len(cards)}")
    orders = sorted((c.order for c in cards), reverse=True)
    counts = sorted(Counter(orders).values(), reverse=True)
    flush = len({c.suit for c in cards}) == 1
    unique = sorted(set(orders))
    straight = len(unique) == 5 and (unique[-1] - unique[0] == 4 or unique == [2, 3, 4, 5, 14])

    if straight and flush:
        return HandRank.ROYAL_FLUSH if unique[0] == 10 else HandRank.STRAIGHT_FLUSH
    if counts[0] == 4:
        return HandRank.FOUR_OF_A_KIND
    if counts[:2] == [3, 2]:
        return HandRank.FULL_HOUSE
    if flush:
        return HandRank.FLUSH
    if straight:
        return HandRank.STRAIGHT
    if counts[0] == 3:
        return HandRank.THREE_OF_A_KIND
    if counts[:2] == [2, 2]:
        return HandRank.TWO_PAIR
    if counts[0] == 2:
        pair = next(o for o, n in Counter(orders).items() if n == 2)
        return HandRank.JACKS_OR_BETTER if pair >= RANK_ORDER["J"] else HandRank.LOW_PAIR
    return HandRank.HIGH_CARD


class PokerState(str, Enum):
    BETTING = "betting"
    HOLDING = "holding"
    RESOLVED = "resolved"


class VideoPokerSession(BaseGameSession):

    game_type = "video_poker"
    display_name = "Video Poker"

    TRANSITIONS = {
        PokerState.BETTING: (PokerState.HOLDING,),
        PokerState.HOLDING: (PokerState.RESOLVED,),
        PokerState.RESOLVED: (PokerState.BETTING,),
    }

    def __init__(self, ledger, rng=None, session_id=None):
        super().__init__(ledger, rng, session_id)
        self.deck = Deck(self.rng)
        self.hand: list[Card] = []
        self.dealer: list[Card] = []
        self.bet = 0
        self.result = None

    def initial_state(self):
        return PokerState.BETTING

    def deal(self, bet: int) -> dict:
        self._require("deal", PokerState.BETTING)
        bet = validate_amount(bet)
        if bet < 1:
            raise InvalidAmount("Bet must be at least 1")
        self._stake(bet)
        self.bet = bet
        self.result = None
        self.deck.reshuffle()
        self.hand = [self.deck.draw() for _ in range(5)]
        self.dealer = []
        self._transition(PokerState.HOLDING)
        return self.view()

    def draw(self, hold=()) -> dict:
        """Replace every card whose index is not in `hold`, then settle."""
        self._require("draw", PokerState.HOLDING)
        held = set(hold)
        if any(not 0 <= i < 5 for i in held):
            raise InvalidBet(f"Hold positions must be 0-4, got {sorted(held)}")
        self.hand = [card if i in held else self.deck.draw() for i, card in enumerate(self.hand)]
        self.dealer = [self.deck.draw() for _ in range(5)]

        player_rank = evaluate_hand(self.hand)
        dealer_rank = evaluate_hand(self.dealer)
        won = player_rank.strength >= dealer_rank.strength
        returned = self.bet * player_rank.multiplier if won else 0
        self.result = {
            "player_rank": player_rank.label,
            "dealer_rank": dealer_rank.label,
            "won": won,
            "returned": returned,
        }
        # RESOLVED before the credit lands: a draw settles at most once
        self._record(self.bet, returned, player_rank=player_rank.label,
                     dealer_rank=dealer_rank.label, won=won)
        self._transition(PokerState.RESOLVED)
        self._pay(returned, what=player_rank.name.lower())
        return self.view()

    def new_round(self):
        self._require("start a new round", PokerState.RESOLVED)
        self._transition(PokerState.BETTING)
        self.hand, self.dealer = [], []
        self.bet = 0

    def view(self) -> dict:
        return {
            "state": self.state.value,
            "bet": self.bet,
            "hand": [c.to_dict() for c in self.hand],
            "dealer": [c.to_dict() for c in self.dealer],
            "result": self.result,
            "balance": self.ledger.get_balance(),
        }
