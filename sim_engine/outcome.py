"""
CASINOCORE - Weighted Outcome Generator

A Paytable is validated exactly once, when it is built. Drawing never
re-checks probabilities.

Selection is by cumulative probability in table order: a uniform value
u in [0, 1) picks the first entry whose cumulative bound exceeds u. The
last entry is a catch-all for floating-point shortfall at the top of the
range.

Grid layout is grid[reel][row], a tuple of tuples that cannot be mutated
after the draw.
"""

from __future__ import annotations

import bisect
import itertools
import math
import random
from dataclasses import dataclass
from typing import Iterable, Optional

from config.settings import EngineConfig
from sim_engine.errors import InvalidPaytable

Cell = tuple[int, int]                # (reel, row)
Grid = tuple[tuple[str, ...], ...]    # grid[reel][row]


@dataclass(frozen=True)
class PaytableEntry:
    symbol_id: str
    display_value: float
    probability: float


class Paytable:

    def __init__(self, entries: Iterable[PaytableEntry], name: str = "",
                 tolerance: float = None):
        self.name = name
        self.entries = tuple(entries)
        tolerance = EngineConfig.PROBABILITY_TOLERANCE if tolerance is None else tolerance

        if not self.entries:
            raise InvalidPaytable(f"Paytable '{name}' has no entries")

        seen = set()
        for entry in self.entries:
            if entry.symbol_id in seen:
                raise InvalidPaytable(f"Paytable '{name}': duplicate symbol '{entry.symbol_id}'")
            seen.add(entry.symbol_id)
            if not math.isfinite(entry.probability) or entry.probability < 0:
                raise InvalidPaytable(
                    f"Paytable '{name}': bad probability {entry.probability} for '{entry.symbol_id}'"
                )

        total = math.fsum(e.probability for e in self.entries)
        if abs(total - 1.0) > tolerance:
            raise InvalidPaytable(
                f"Paytable '{name}': probabilities sum to {total:.9f}, expected 1 ± {tolerance}"
            )

        self._cumulative = list(itertools.accumulate(e.probability for e in self.entries))
        self._values = {e.symbol_id: e.display_value for e in self.entries}

    @property
    def symbols(self) -> list[str]:
        return [e.symbol_id for e in self.entries]

    def value_of(self, symbol_id: str) -> float:
        return self._values[symbol_id]

    def probability_of(self, symbol_id: str) -> float:
        for e in self.entries:
            if e.symbol_id == symbol_id:
                return e.probability
        raise KeyError(symbol_id)

    def pick(self, u: float) -> str:
        idx = bisect.bisect_right(self._cumulative, u)
        if idx >= len(self.entries):
            idx = len(self.entries) - 1
        return self.entries[idx].symbol_id

    def __len__(self):
        return len(self.entries)

    def __repr__(self):
        return f"Paytable({self.name!r}, {len(self.entries)} symbols)"


class OutcomeGenerator:
    """Draws grids from a paytable. Each cell uses its own uniform value."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.SystemRandom()

    def draw(self, paytable: Paytable, reel_count: int, row_count: int) -> Grid:
        if reel_count < 1 or row_count < 1:
            raise ValueError(f"Grid must be at least 1x1, got {reel_count}x{row_count}")
        return tuple(
            tuple(paytable.pick(self.rng.random()) for _ in range(row_count))
            for _ in range(reel_count)
        )


_default_generator = OutcomeGenerator()


def draw(paytable: Paytable, reel_count: int, row_count: int) -> Grid:
    return _default_generator.draw(paytable, reel_count, row_count)


def grid_with(grid: Grid, cells: Iterable[Cell], symbol_id: str) -> Grid:
    """Copy of `grid` with the given cells replaced by `symbol_id`."""
    targets = set(cells)
    return tuple(
        tuple(symbol_id if (reel, row) in targets else sym for row, sym in enumerate(column))
        for reel, column in enumerate(grid)
    )
