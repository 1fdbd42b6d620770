"""
CASINOCORE - Pattern Evaluator

Three match policies:

  contiguous_from_left       run of identical symbols starting at the first
                             cell of the line path; needs >= min_run cells.
  best_contiguous_anywindow  tries every start 0..len(path)-min_run and keeps
                             the longest qualifying run (earliest start on ties).
  majority                   unordered cell set; triggers when the most frequent
                             symbol fills at least half the cells (rounded down).

All qualifying lines are reported. Payouts add across lines.

Blocked cells (glitched or frozen for this draw) never match: they break
runs, and a majority pattern that touches one does not trigger.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Sequence

from config.settings import EngineConfig
from sim_engine.outcome import Cell, Grid

logger = logging.getLogger("casinocore.engine")


class MatchPolicy(str, Enum):
    CONTIGUOUS_FROM_LEFT = "contiguous_from_left"
    BEST_CONTIGUOUS_ANYWINDOW = "best_contiguous_anywindow"
    MAJORITY = "majority"


@dataclass(frozen=True)
class LineDefinition:
    line_id: str
    path: tuple[Cell, ...]
    group: str = "line"
    multiplier: float = 1.0

    @classmethod
    def from_rows(cls, line_id: str, rows: Sequence[Optional[int]], group: str = "line"):
        """One row index per reel; None skips that reel."""
        path = tuple((reel, row) for reel, row in enumerate(rows) if row is not None)
        return cls(line_id, path, group)

    @classmethod
    def column(cls, line_id: str, reel: int, row_count: int, group: str = "column"):
        return cls(line_id, tuple((reel, row) for row in range(row_count)), group)

    @classmethod
    def pattern(cls, line_id: str, cells: Iterable[Cell], multiplier: float = 1.0,
                group: str = "pattern"):
        return cls(line_id, tuple(dict.fromkeys(cells)), group, multiplier)

    def to_dict(self) -> dict:
        return {
            "line_id": self.line_id,
            "path": [list(c) for c in self.path],
            "group": self.group,
            "multiplier": self.multiplier,
        }


@dataclass(frozen=True)
class MatchResult:
    line_id: str
    symbol_id: str
    run_length: int
    cell_positions: tuple[Cell, ...]
    group: str = "line"
    line_multiplier: float = 1.0

    def to_dict(self) -> dict:
        return {
            "line_id": self.line_id,
            "symbol_id": self.symbol_id,
            "run_length": self.run_length,
            "cell_positions": [list(c) for c in self.cell_positions],
            "group": self.group,
            "line_multiplier": self.line_multiplier,
        }


def _symbol_at(grid: Grid, cell: Cell) -> str:
    reel, row = cell
    return grid[reel][row]


def _run_from(grid: Grid, path: Sequence[Cell], start: int, blocked) -> int:
    if path[start] in blocked:
        return 0
    first = _symbol_at(grid, path[start])
    length = 1
    for cell in path[start + 1:]:
        if cell in blocked or _symbol_at(grid, cell) != first:
            break
        length += 1
    return length


def _match_contiguous_left(grid, line, blocked, min_run) -> Optional[MatchResult]:
    if len(line.path) < min_run:
        return None
    run = _run_from(grid, line.path, 0, blocked)
    if run < min_run:
        return None
    cells = line.path[:run]
    return MatchResult(line.line_id, _symbol_at(grid, cells[0]), run, cells,
                       line.group, line.multiplier)


def _match_best_window(grid, line, blocked, min_run) -> Optional[MatchResult]:
    best_start, best_run = -1, 0
    for start in range(len(line.path) - min_run + 1):
        run = _run_from(grid, line.path, start, blocked)
        if run >= min_run and run > best_run:
            best_start, best_run = start, run
    if best_start < 0:
        return None
    cells = line.path[best_start:best_start + best_run]
    return MatchResult(line.line_id, _symbol_at(grid, cells[0]), best_run, cells,
                       line.group, line.multiplier)


def _match_majority(grid, line, blocked) -> Optional[MatchResult]:
    if not line.path or any(cell in blocked for cell in line.path):
        return None
    symbols = [_symbol_at(grid, cell) for cell in line.path]
    # Counter keeps first-seen order, so ties go to the earliest cell
    symbol, count = Counter(symbols).most_common(1)[0]
    if count < max(1, len(line.path) // 2):
        return None
    cells = tuple(c for c, s in zip(line.path, symbols) if s == symbol)
    return MatchResult(line.line_id, symbol, count, cells, line.group, line.multiplier)


def evaluate(grid: Grid, lines: Iterable[LineDefinition], policy: MatchPolicy,
             blocked: Iterable[Cell] = (), min_run: int = None) -> list[MatchResult]:
    """Evaluate every line under one policy and return all qualifying matches."""
    policy = MatchPolicy(policy)
    min_run = EngineConfig.MIN_RUN_LENGTH if min_run is None else min_run
    blocked = frozenset(blocked)
    matches = []
    for line in lines:
        if policy is MatchPolicy.CONTIGUOUS_FROM_LEFT:
            match = _match_contiguous_left(grid, line, blocked, min_run)
        elif policy is MatchPolicy.BEST_CONTIGUOUS_ANYWINDOW:
            match = _match_best_window(grid, line, blocked, min_run)
        else:
            match = _match_majority(grid, line, blocked)
        if match is not None:
            matches.append(match)
    if matches:
        logger.debug(f"{len(matches)} match(es) under {policy.value}")
    return matches
