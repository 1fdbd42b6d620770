"""
CASINOCORE - Playing Cards

Standard 52-card deck shared by blackjack and video poker.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

SUITS = ("hearts", "diamonds", "clubs", "spades")
RANKS = ("2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A")
RANK_ORDER = {rank: i + 2 for i, rank in enumerate(RANKS)}   # 2..14, ace high


@dataclass(frozen=True)
class Card:
    rank: str
    suit: str

    @property
    def order(self) -> int:
        return RANK_ORDER[self.rank]

    def __str__(self):
        return f"{self.rank}{self.suit[0].upper()}"

    def to_dict(self) -> dict:
        return {"rank": self.rank, "suit": self.suit}


class Deck:

    def __init__(self, rng: random.Random):
        self.rng = rng
        self.cards: list[Card] = []
        self.reshuffle()

    def reshuffle(self):
        self.cards = [Card(rank, suit) for suit in SUITS for rank in RANKS]
        self.rng.shuffle(self.cards)

    def draw(self) -> Card:
        if not self.cards:
            self.reshuffle()
        return self.cards.pop()

    def __len__(self):
        return len(self.cards)
