"""
CASINOCORE - Outcome / Payout Engine

One parametrized engine shared by every slot variant:
    draw(paytable, reels, rows)            -> Grid
    evaluate(grid, lines, policy)          -> list[MatchResult]
    compute_payout(matches, wager, ...)    -> int

Card, dice and wheel games live in sim_engine.games and share only the
ledger contract.
"""

from sim_engine.errors import InvalidBet, InvalidGameState, InvalidPaytable
from sim_engine.outcome import OutcomeGenerator, Paytable, PaytableEntry, draw
from sim_engine.patterns import LineDefinition, MatchPolicy, MatchResult, evaluate
from sim_engine.payout import (
    ActiveEffects, EffectKind, ModifierEffect, ModifierStage, TierTable, compute_payout,
)
