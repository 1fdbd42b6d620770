"""
CASINOCORE - Blackjack Session

    Betting -> PlayerTurn -> DealerTurn -> Resolved -> Betting

Credited totals (stake included): win 2x, natural 21 pays 3:2 (2.5x,
floored), push refunds 1x, loss 0. Dealer draws to 17. Doubling is only
allowed on the first two cards and debits a second stake.
"""

from __future__ import annotations

import math
from enum import Enum

from ledger.errors import InvalidAmount
from ledger.service import validate_amount
from sim_engine.errors import InvalidBet
from sim_engine.games.base import BaseGameSession
from sim_engine.games.cards import Card, Deck

DEALER_STANDS_ON = 17


class BlackjackState(str, Enum):
    BETTING = "betting"
    PLAYER_TURN = "player_turn"
    DEALER_TURN = "dealer_turn"
    RESOLVED = "resolved"


class Outcome(str, Enum):
    WIN = "win"
    BLACKJACK = "blackjack"
    PUSH = "push"
    LOSE = "lose"
    BUST = "bust"


def hand_value(cards: list[Card]) -> int:
    """Aces count 11, downgraded to 1 one at a time while the hand is over 21."""
    total, aces = 0, 0
    for card in cards:
        if card.rank == "A":
            total += 11
            aces += 1
        elif card.rank in ("K", "Q", "J"):
            total += 10
        else:
            total += int(card.rank)
    while total > 21 and aces:
        total -= 10
        aces -= 1
    return total


def is_natural(cards: list[Card]) -> bool:
    return len(cards) == 2 and hand_value(cards) == 21


class BlackjackSession(BaseGameSession):

    game_type = "blackjack"
    display_name = "Blackjack"

    TRANSITIONS = {
        BlackjackState.BETTING: (BlackjackState.PLAYER_TURN,),
        BlackjackState.PLAYER_TURN: (BlackjackState.DEALER_TURN,),
        BlackjackState.DEALER_TURN: (BlackjackState.RESOLVED,),
        BlackjackState.RESOLVED: (BlackjackState.BETTING,),
    }

    def __init__(self, ledger, rng=None, session_id=None):
        super().__init__(ledger, rng, session_id)
        self.deck = Deck(self.rng)
        self.player: list[Card] = []
        self.dealer: list[Card] = []
        self.bet = 0
        self.outcome = None
        self.returned = 0

    def initial_state(self):
        return BlackjackState.BETTING

    # ─── Actions ──────────────────────────────────────────────

    def deal(self, bet: int) -> dict:
        self._require("deal", BlackjackState.BETTING)
        bet = validate_amount(bet)
        if bet < 1:
            raise InvalidAmount("Bet must be at least 1")
        self._stake(bet)

        self.bet = bet
        self.outcome = None
        self.returned = 0
        self.deck.reshuffle()
        self.player = [self.deck.draw(), self.deck.draw()]
        self.dealer = [self.deck.draw(), self.deck.draw()]
        self._transition(BlackjackState.PLAYER_TURN)

        if is_natural(self.player):
            self._finish_player_turn()
        return self.view()

    def hit(self) -> dict:
        self._require("hit", BlackjackState.PLAYER_TURN)
        self.player.append(self.deck.draw())
        value = hand_value(self.player)
        if value > 21:
            self._transition(BlackjackState.DEALER_TURN)
            self._resolve(Outcome.BUST)
        elif value == 21:
            self._finish_player_turn()
        return self.view()

    def stand(self) -> dict:
        self._require("stand", BlackjackState.PLAYER_TURN)
        self._finish_player_turn()
        return self.view()

    def double_down(self) -> dict:
        self._require("double down", BlackjackState.PLAYER_TURN)
        if len(self.player) != 2:
            raise InvalidBet("Double down is only allowed on the first two cards")
        self._stake(self.bet, what="double")
        self.bet *= 2
        self.player.append(self.deck.draw())
        if hand_value(self.player) > 21:
            self._transition(BlackjackState.DEALER_TURN)
            self._resolve(Outcome.BUST)
        else:
            self._finish_player_turn()
        return self.view()

    def new_round(self):
        self._require("start a new round", BlackjackState.RESOLVED)
        self._transition(BlackjackState.BETTING)
        self.player, self.dealer = [], []
        self.bet = 0

    # ─── Dealer & resolution ──────────────────────────────────

    def _finish_player_turn(self):
        self._transition(BlackjackState.DEALER_TURN)
        player_natural = is_natural(self.player)
        if player_natural:
            self._resolve(Outcome.PUSH if is_natural(self.dealer) else Outcome.BLACKJACK)
            return

        while hand_value(self.dealer) < DEALER_STANDS_ON:
            self.dealer.append(self.deck.draw())

        player, dealer = hand_value(self.player), hand_value(self.dealer)
        if dealer > 21 or player > dealer:
            self._resolve(Outcome.WIN)
        elif player == dealer:
            self._resolve(Outcome.PUSH)
        else:
            self._resolve(Outcome.LOSE)

    def _resolve(self, outcome: Outcome):
        if outcome is Outcome.BLACKJACK:
            returned = math.floor(self.bet * 5 / 2)
        elif outcome is Outcome.WIN:
            returned = self.bet * 2
        elif outcome is Outcome.PUSH:
            returned = self.bet
        else:
            returned = 0
        self._pay(returned, what=outcome.value)
        self.outcome = outcome
        self.returned = returned
        self._record(self.bet, returned, outcome=outcome.value,
                     player=hand_value(self.player), dealer=hand_value(self.dealer))
        self._transition(BlackjackState.RESOLVED)

    def view(self) -> dict:
        hide_hole = self.state is BlackjackState.PLAYER_TURN
        dealer_cards = [self.dealer[0].to_dict()] if hide_hole and self.dealer else [
            c.to_dict() for c in self.dealer]
        return {
            "state": self.state.value,
            "bet": self.bet,
            "player": [c.to_dict() for c in self.player],
            "player_value": hand_value(self.player),
            "dealer": dealer_cards,
            "dealer_value": None if hide_hole else hand_value(self.dealer),
            "outcome": self.outcome.value if self.outcome else None,
            "returned": self.returned,
            "balance": self.ledger.get_balance(),
        }
