"""
CASINOCORE - Paytable Monte Carlo Validator

Two checks, both run outside the ledger:
  • Frequency convergence: N draws from a paytable, each symbol's observed
    frequency within ±tolerance of its configured probability, plus a
    chi-squared statistic against the configured distribution
  • Variant RTP: N spins of a slot variant through evaluate + compute_payout
    with no bonus triggers, reporting return-to-player and hit frequency

Usage:
    from tools.paytable_montecarlo import check_frequencies, simulate_variant
    report = check_frequencies(get_variant("advanced").paytable, n_draws=100_000, seed=7)
    print(report.summary())

    result = simulate_variant("advanced", n_spins=50_000, wager=10, seed=7)
    print(result.summary())
"""

from __future__ import annotations

import random
import statistics
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional, Union

from config.settings import EngineConfig
from sim_engine.outcome import OutcomeGenerator, Paytable
from sim_engine.paytables import SlotVariant, get_variant


# ═══════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════

@dataclass
class SymbolFrequency:
    symbol_id: str
    expected: float
    observed: float
    count: int

    @property
    def delta(self) -> float:
        return abs(self.observed - self.expected)


@dataclass
class FrequencyReport:
    paytable: str
    n_draws: int
    tolerance: float
    symbols: list[SymbolFrequency] = field(default_factory=list)
    chi_squared: float = 0.0
    duration_seconds: float = 0.0

    @property
    def passed(self) -> bool:
        return all(s.delta <= self.tolerance for s in self.symbols)

    @property
    def max_delta(self) -> float:
        return max((s.delta for s in self.symbols), default=0.0)

    def summary(self) -> str:
        status = "✅ PASS" if self.passed else "❌ FAIL"
        lines = [
            f"═══ Frequencies: {self.paytable.upper()} ═══",
            f"  Draws:       {self.n_draws:,}",
            f"  Max Delta:   {self.max_delta*100:.3f}%  (±{self.tolerance*100:.1f}%)",
            f"  Chi²:        {self.chi_squared:.2f}  (df={len(self.symbols) - 1})",
            f"  Check:       {status}",
        ]
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "paytable": self.paytable,
            "n_draws": self.n_draws,
            "tolerance": self.tolerance,
            "passed": self.passed,
            "chi_squared": round(self.chi_squared, 4),
            "symbols": [
                {"symbol_id": s.symbol_id, "expected": s.expected,
                 "observed": round(s.observed, 6), "count": s.count}
                for s in self.symbols
            ],
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class VariantSimulation:
    game_id: str
    n_spins: int
    wager: int
    total_wagered: int
    total_returned: int
    hits: int
    max_win: int
    std_dev: float = 0.0
    group_hits: dict = field(default_factory=dict)
    duration_seconds: float = 0.0

    @property
    def rtp(self) -> float:
        return self.total_returned / self.total_wagered if self.total_wagered else 0.0

    @property
    def hit_frequency(self) -> float:
        return self.hits / self.n_spins if self.n_spins else 0.0

    def summary(self) -> str:
        return "\n".join([
            f"═══ Monte Carlo: {self.game_id.upper()} ═══",
            f"  Spins:       {self.n_spins:,}",
            f"  RTP:         {self.rtp*100:.2f}%",
            f"  Hit Freq:    {self.hit_frequency*100:.2f}%",
            f"  Max Win:     {self.max_win:,} ({self.max_win / self.wager:.1f}x)",
            f"  Std Dev:     {self.std_dev:.2f}",
            f"  Duration:    {self.duration_seconds:.2f}s",
        ])

    def to_dict(self) -> dict:
        return {
            "game_id": self.game_id,
            "n_spins": self.n_spins,
            "wager": self.wager,
            "rtp_pct": round(self.rtp * 100, 4),
            "hit_frequency_pct": round(self.hit_frequency * 100, 2),
            "max_win": self.max_win,
            "std_dev": round(self.std_dev, 4),
            "group_hits": self.group_hits,
            "duration_seconds": round(self.duration_seconds, 3),
        }


# ═══════════════════════════════════════════════════════════════
# Checks
# ═══════════════════════════════════════════════════════════════

def check_frequencies(paytable: Paytable, n_draws: int = None, tolerance: float = None,
                      seed: Optional[int] = None) -> FrequencyReport:
    n_draws = n_draws or EngineConfig.MONTE_CARLO_DRAWS
    tolerance = EngineConfig.FREQUENCY_TOLERANCE if tolerance is None else tolerance
    rng = random.Random(seed)
    start = time.time()

    counts = Counter(paytable.pick(rng.random()) for _ in range(n_draws))

    report = FrequencyReport(paytable.name or "paytable", n_draws, tolerance)
    for entry in paytable.entries:
        count = counts.get(entry.symbol_id, 0)
        report.symbols.append(SymbolFrequency(
            entry.symbol_id, entry.probability, count / n_draws, count))
        expected = entry.probability * n_draws
        if expected > 0:
            report.chi_squared += (count - expected) ** 2 / expected
    report.duration_seconds = time.time() - start
    return report


def simulate_variant(variant: Union[str, SlotVariant], n_spins: int = 50_000,
                     wager: int = 10, seed: Optional[int] = None) -> VariantSimulation:
    if isinstance(variant, str):
        variant = get_variant(variant)
    generator = OutcomeGenerator(random.Random(seed))
    start = time.time()

    payouts = []
    group_hits: Counter = Counter()
    for _ in range(n_spins):
        grid = generator.draw(variant.paytable, variant.reels, variant.rows)
        matches = variant.evaluate(grid)
        payout = variant.payout(matches, wager)
        payouts.append(payout)
        for m in matches:
            group_hits[m.group] += 1

    return VariantSimulation(
        game_id=variant.game_id,
        n_spins=n_spins,
        wager=wager,
        total_wagered=wager * n_spins,
        total_returned=sum(payouts),
        hits=sum(1 for p in payouts if p > 0),
        max_win=max(payouts, default=0),
        std_dev=statistics.pstdev(payouts) if payouts else 0.0,
        group_hits=dict(group_hits),
        duration_seconds=time.time() - start,
    )
