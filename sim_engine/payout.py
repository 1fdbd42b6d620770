"""
CASINOCORE - Payout Calculator

    base  = sum(wager * value(symbol) * tier(run_length) * line_multiplier)
    total = base -> GLITCH -> POWER_UP -> DEBUFF -> SPECIAL_MODE -> max(0, floor(.))

Stage order is fixed, and the order in which effects were activated does not
change it. Within a stage, effects apply in activation order. Arithmetic is
exact (Fraction); the result is floored once, at the end.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum, IntEnum
from fractions import Fraction
from typing import Callable, Iterable, Mapping, Optional, Union

from sim_engine.outcome import Cell
from sim_engine.patterns import MatchResult


def _exact(x) -> Fraction:
    if isinstance(x, Fraction):
        return x
    if isinstance(x, float):
        return Fraction(repr(x))
    return Fraction(x)


# ═══════════════════════════════════════════════════════════════
# Tier tables
# ═══════════════════════════════════════════════════════════════

class TierTable:
    """Step function run_length -> multiplier. Runs below the lowest tier pay 0."""

    def __init__(self, tiers: Mapping[int, float]):
        if not tiers:
            raise ValueError("TierTable needs at least one tier")
        self.tiers = dict(sorted((int(k), v) for k, v in tiers.items()))

    @classmethod
    def flat(cls, multiplier: float = 1.0, min_run: int = 1) -> "TierTable":
        return cls({min_run: multiplier})

    @property
    def min_run(self) -> int:
        return next(iter(self.tiers))

    def multiplier(self, run_length: int) -> float:
        result = 0
        for run, mult in self.tiers.items():
            if run_length >= run:
                result = mult
            else:
                break
        return result

    __call__ = multiplier

    def __eq__(self, other):
        return isinstance(other, TierTable) and self.tiers == other.tiers

    def __hash__(self):
        return hash(tuple(self.tiers.items()))

    def __repr__(self):
        return f"TierTable({self.tiers})"


DEFAULT_TIERS = TierTable({3: 1, 4: 5, 5: 10})


# ═══════════════════════════════════════════════════════════════
# Modifier effects
# ═══════════════════════════════════════════════════════════════

class EffectKind(str, Enum):
    MULTIPLICATIVE = "multiplicative"
    ADDITIVE = "additive"
    FLOOR_AT_ZERO = "floor_at_zero"


class ModifierStage(IntEnum):
    GLITCH = 1          # per-cell, this draw only
    POWER_UP = 2
    DEBUFF = 3
    SPECIAL_MODE = 4    # whole-draw multipliers (hidden modes)


@dataclass(frozen=True)
class ModifierEffect:
    kind: EffectKind
    stage: ModifierStage
    value: float = 0
    name: str = ""
    spins_remaining: Optional[int] = 1     # None: until cleared
    cells: tuple[Cell, ...] = ()

    @classmethod
    def multiplicative(cls, factor, stage=ModifierStage.POWER_UP, name="", spins=1, cells=()):
        return cls(EffectKind.MULTIPLICATIVE, stage, factor, name, spins, tuple(cells))

    @classmethod
    def additive(cls, amount, stage=ModifierStage.GLITCH, name="", spins=1, cells=()):
        return cls(EffectKind.ADDITIVE, stage, amount, name, spins, tuple(cells))

    @classmethod
    def floor_at_zero(cls, stage=ModifierStage.GLITCH, name="", spins=1, cells=()):
        return cls(EffectKind.FLOOR_AT_ZERO, stage, 0, name, spins, tuple(cells))

    def apply(self, amount: Fraction) -> Fraction:
        if self.kind is EffectKind.MULTIPLICATIVE:
            return amount * _exact(self.value)
        if self.kind is EffectKind.ADDITIVE:
            return amount + _exact(self.value)
        return max(Fraction(0), amount)

    def tick(self) -> Optional["ModifierEffect"]:
        """Effect after one more spin, or None once it has expired."""
        if self.spins_remaining is None:
            return self
        left = self.spins_remaining - 1
        return replace(self, spins_remaining=left) if left > 0 else None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "stage": self.stage.name.lower(),
            "value": self.value,
            "name": self.name,
            "spins_remaining": self.spins_remaining,
            "cells": [list(c) for c in self.cells],
        }


def ordered(modifiers: Iterable[ModifierEffect]) -> list[ModifierEffect]:
    return sorted(modifiers, key=lambda m: m.stage)   # stable within a stage


class ActiveEffects:
    """Per-session list of timed effects."""

    def __init__(self):
        self._effects: list[ModifierEffect] = []

    def activate(self, effect: ModifierEffect):
        """Add an effect; re-activating a named effect resets its duration."""
        if effect.name:
            self._effects = [e for e in self._effects if e.name != effect.name]
        self._effects.append(effect)

    def clear(self, name: str = None):
        if name is None:
            self._effects.clear()
        else:
            self._effects = [e for e in self._effects if e.name != name]

    def has(self, name: str) -> bool:
        return any(e.name == name for e in self._effects)

    def get(self, name: str) -> Optional[ModifierEffect]:
        return next((e for e in self._effects if e.name == name), None)

    def tick(self) -> list[str]:
        """Advance one spin. Returns names of expired effects."""
        kept, expired = [], []
        for effect in self._effects:
            nxt = effect.tick()
            if nxt is None:
                expired.append(effect.name)
            else:
                kept.append(nxt)
        self._effects = kept
        return expired

    def __iter__(self):
        return iter(list(self._effects))

    def __len__(self):
        return len(self._effects)

    def to_list(self) -> list[dict]:
        return [e.to_dict() for e in self._effects]


# ═══════════════════════════════════════════════════════════════
# Payout
# ═══════════════════════════════════════════════════════════════

TierSpec = Union[TierTable, Mapping[str, TierTable]]


def _tier_for(tiers: TierSpec, match: MatchResult) -> TierTable:
    if isinstance(tiers, TierTable):
        return tiers
    try:
        return tiers[match.group]
    except KeyError:
        raise ValueError(f"No tier table for line group '{match.group}'") from None


def base_amount(matches: Iterable[MatchResult], wager: int,
                symbol_value_of: Callable[[str], float],
                tiers: TierSpec = DEFAULT_TIERS) -> Fraction:
    total = Fraction(0)
    for match in matches:
        tier = _tier_for(tiers, match).multiplier(match.run_length)
        total += (_exact(wager) * _exact(symbol_value_of(match.symbol_id))
                  * _exact(tier) * _exact(match.line_multiplier))
    return total


def compute_payout(matches: Iterable[MatchResult], wager: int,
                   symbol_value_of: Callable[[str], float],
                   modifiers: Iterable[ModifierEffect] = (),
                   tiers: TierSpec = DEFAULT_TIERS) -> int:
    amount = base_amount(matches, wager, symbol_value_of, tiers)
    for effect in ordered(modifiers):
        amount = effect.apply(amount)
    return max(0, math.floor(amount))
