"""
CASINOCORE - Slot Variant Catalogue

Built-in slot variants as SlotVariantSpec data, compiled into SlotVariant
objects that hold one validated Paytable plus their line groups.

Variants were tuned independently, so their tier tables and match
policies do not agree with each other. audit_variants() reports every
such divergence instead of normalising it away.

Usage:
    from sim_engine.paytables import get_variant, VARIANT_IDS
    variant = get_variant("advanced")
    grid = generator.draw(variant.paytable, variant.reels, variant.rows)
    matches = variant.evaluate(grid)
    payout = variant.payout(matches, wager=10)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from config.game_schema import SlotVariantSpec
from sim_engine.outcome import Cell, Grid, Paytable, PaytableEntry
from sim_engine.patterns import LineDefinition, MatchPolicy, MatchResult, evaluate
from sim_engine.payout import ModifierEffect, TierTable, compute_payout

logger = logging.getLogger("casinocore.engine")


# ═══════════════════════════════════════════════════════════════
# Compiled variant
# ═══════════════════════════════════════════════════════════════

@dataclass
class LineGroup:
    name: str
    policy: MatchPolicy
    lines: tuple[LineDefinition, ...]
    tiers: TierTable
    min_run: int = 3


@dataclass
class SlotVariant:
    spec: SlotVariantSpec
    paytable: Paytable
    groups: list[LineGroup] = field(default_factory=list)

    @property
    def game_id(self) -> str:
        return self.spec.game_id

    @property
    def display_name(self) -> str:
        return self.spec.display_name or self.spec.game_id

    @property
    def reels(self) -> int:
        return self.spec.reels

    @property
    def rows(self) -> int:
        return self.spec.rows

    @property
    def bonus(self):
        return self.spec.bonus

    @property
    def tiers(self) -> dict[str, TierTable]:
        return {g.name: g.tiers for g in self.groups}

    def pattern(self, name: str) -> LineDefinition:
        for group in self.groups:
            for line in group.lines:
                if line.line_id == f"{group.name}:{name}":
                    return line
        raise KeyError(name)

    def evaluate(self, grid: Grid, blocked: Iterable[Cell] = ()) -> list[MatchResult]:
        """Matches that pay. Runs below a group's lowest tier are dropped."""
        blocked = frozenset(blocked)
        matches = []
        for group in self.groups:
            found = evaluate(grid, group.lines, group.policy, blocked, group.min_run)
            matches.extend(m for m in found if group.tiers.multiplier(m.run_length) > 0)
        return matches

    def payout(self, matches: list[MatchResult], wager: int,
               modifiers: Iterable[ModifierEffect] = ()) -> int:
        return compute_payout(matches, wager, self.paytable.value_of, modifiers, self.tiers)

    def to_dict(self) -> dict:
        return {
            "game_id": self.game_id,
            "display_name": self.display_name,
            "reels": self.reels,
            "rows": self.rows,
            "symbols": [s.model_dump() for s in self.spec.symbols],
            "groups": [
                {"name": g.name, "policy": g.policy.value, "tiers": g.tiers.tiers,
                 "lines": len(g.lines)}
                for g in self.groups
            ],
            "streak": self.bonus.streak.model_dump() if self.bonus.streak else None,
        }


def compile_variant(spec: SlotVariantSpec) -> SlotVariant:
    """Validate the paytable (InvalidPaytable) and build line definitions."""
    paytable = Paytable(
        (PaytableEntry(s.id, s.value, s.probability) for s in spec.symbols),
        name=spec.game_id,
    )
    groups = []
    for g in spec.line_groups:
        lines = []
        for i, rows in enumerate(g.lines):
            label = g.line_names[i] if i < len(g.line_names) else str(i + 1)
            lines.append(LineDefinition.from_rows(f"{g.name}:{label}", rows, g.name))
        if g.columns:
            for reel in range(spec.reels):
                lines.append(LineDefinition.column(f"{g.name}:{reel + 1}", reel, spec.rows, g.name))
        for p in g.patterns:
            lines.append(LineDefinition.pattern(f"{g.name}:{p.name}", p.cells, p.multiplier, g.name))
        groups.append(LineGroup(g.name, g.policy, tuple(lines), TierTable(g.tiers), g.min_run))
    return SlotVariant(spec=spec, paytable=paytable, groups=groups)


# ═══════════════════════════════════════════════════════════════
# Built-in variants
# ═══════════════════════════════════════════════════════════════

def _symbols(*rows) -> list[dict]:
    return [{"id": sid, "value": value, "probability": p} for sid, value, p in rows]


def _rc(*pairs) -> list[tuple[int, int]]:
    """[row, col] pairs -> (reel, row) cells."""
    return [(col, row) for row, col in pairs]


CLASSIC = {
    "game_id": "classic",
    "display_name": "Classic Slots",
    "reels": 3, "rows": 1,
    "symbols": _symbols(
        ("cherry", 10, 0.25), ("lemon", 15, 0.20), ("orange", 20, 0.17),
        ("watermelon", 25, 0.15), ("grapes", 30, 0.10), ("bell", 40, 0.08),
        ("diamond", 50, 0.04), ("seven", 100, 0.01),
    ),
    "line_groups": [{
        # three of a kind pays full value, an adjacent pair a fifth
        "name": "line", "policy": "best_contiguous_anywindow",
        "tiers": {2: 0.2, 3: 1}, "min_run": 2,
        "lines": [[0, 0, 0]], "line_names": ["Center"],
    }],
}

_FIVE_BY_THREE_TIERS = {3: 1, 4: 5, 5: 10}

ADVANCED = {
    "game_id": "advanced",
    "display_name": "Advanced Slots",
    "reels": 5, "rows": 3,
    "symbols": _symbols(
        ("cherry", 1, 0.20), ("lemon", 2, 0.18), ("orange", 3, 0.16),
        ("grapes", 5, 0.14), ("watermelon", 8, 0.10), ("bell", 10, 0.08),
        ("star", 15, 0.06), ("diamond", 25, 0.04), ("seven", 50, 0.03),
        ("jackpot", 100, 0.01),
    ),
    "line_groups": [{
        "name": "line", "policy": "contiguous_from_left",
        "tiers": _FIVE_BY_THREE_TIERS,
        "lines": [
            [0, 0, 0, 0, 0], [1, 1, 1, 1, 1], [2, 2, 2, 2, 2],
            [0, 0, 1, 2, 2], [2, 2, 1, 0, 0], [0, 1, 2, 1, 0],
            [2, 1, 0, 1, 2], [0, 2, 0, 2, 0], [2, 0, 2, 0, 2],
        ],
    }],
}

GHOST_PIRATE = {
    "game_id": "ghost_pirate",
    "display_name": "Ghost Pirate",
    "reels": 5, "rows": 3,
    "symbols": _symbols(
        ("ghost", 2, 0.20), ("pirate_flag", 3, 0.18), ("dagger", 5, 0.16),
        ("trident", 8, 0.12), ("anchor", 10, 0.10), ("compass", 15, 0.09),
        ("parrot", 20, 0.07), ("diamond", 30, 0.04), ("crown", 50, 0.03),
        ("treasure", 100, 0.01),
    ),
    "line_groups": [{
        "name": "line", "policy": "best_contiguous_anywindow",
        "tiers": _FIVE_BY_THREE_TIERS,
        "lines": [
            [0, 0, 0, 0, 0], [1, 1, 1, 1, 1], [2, 2, 2, 2, 2],
            [0, 0, 1, 2, 2], [2, 2, 1, 0, 0], [0, 1, 0, 1, 0],
            [2, 1, 2, 1, 2], [0, 1, 2, 1, 0], [2, 1, 0, 1, 2],
        ],
        "line_names": [
            "Top Row", "Middle Row", "Bottom Row", "Top-to-Bottom Diagonal",
            "Bottom-to-Top Diagonal", "Top Zigzag", "Bottom Zigzag", "V Shape", "Inverted V",
        ],
    }],
}

EGYPTIAN = {
    "game_id": "egyptian",
    "display_name": "Egyptian Treasures",
    "reels": 5, "rows": 4,
    "symbols": _symbols(
        ("coin", 1, 0.20), ("papyrus", 2, 0.18), ("crystal", 4, 0.16),
        ("camel", 6, 0.14), ("crocodile", 8, 0.10), ("snake", 10, 0.08),
        ("eye", 15, 0.06), ("vase", 20, 0.04), ("ankh", 40, 0.03),
        ("treasure", 70, 0.009), ("pyramid", 100, 0.001),
    ),
    "line_groups": [
        {
            "name": "line", "policy": "contiguous_from_left",
            "tiers": {3: 1, 4: 5, 5: 15},
            "lines": [
                [0, 0, 0, 0, 0], [1, 1, 1, 1, 1], [2, 2, 2, 2, 2], [3, 3, 3, 3, 3],
                [0, 1, 2, 3, None], [3, 2, 1, 0, None],
                [None, 0, 1, 2, 3], [None, 3, 2, 1, 0],
                [0, 1, 3, 1, 0], [3, 2, 0, 2, 3],
                [0, 3, 0, 3, 0], [3, 0, 3, 0, 3],
                [0, 1, 0, 1, 0], [3, 2, 3, 2, 3],
            ],
            "line_names": [
                "Row 1", "Row 2", "Row 3", "Row 4",
                "Diagonal Down", "Diagonal Up", "Late Diagonal Down", "Late Diagonal Up",
                "V", "Inverted V", "W", "M", "Top Zigzag", "Bottom Zigzag",
            ],
        },
        {
            "name": "column", "policy": "majority",
            "tiers": {3: 2, 4: 8}, "columns": True,
        },
    ],
}

CYBER = {
    "game_id": "cyber",
    "display_name": "Cyber Heist",
    "reels": 5, "rows": 4,
    "symbols": _symbols(
        ("floppy", 1, 0.20), ("pager", 2, 0.18), ("cassette", 3, 0.15),
        ("computer", 5, 0.12), ("lock", 8, 0.10), ("power", 12, 0.08),
        ("network", 15, 0.07), ("robot", 25, 0.05), ("invader", 40, 0.03),
        ("satellite", 75, 0.015), ("decrypt", 150, 0.005),
    ),
    "line_groups": [
        {
            "name": "row", "policy": "best_contiguous_anywindow",
            "tiers": {3: 1, 4: 3, 5: 10},
            "lines": [[r] * 5 for r in range(4)],
        },
        {
            "name": "column", "policy": "majority",
            "tiers": {3: 1, 4: 2}, "columns": True,
        },
        {
            "name": "pattern", "policy": "majority",
            "tiers": {1: 1},
            "patterns": [
                {"name": "Firewall Breach", "multiplier": 5, "cells": _rc(
                    [0, 0], [0, 1], [0, 2], [0, 3], [0, 4], [1, 0], [2, 0],
                    [3, 0], [3, 1], [3, 2], [3, 3], [3, 4])},
                {"name": "Mainframe Access", "multiplier": 8, "cells": _rc(
                    [0, 0], [1, 0], [2, 0], [3, 0], [0, 4], [1, 4], [2, 4], [3, 4],
                    [1, 1], [1, 2], [1, 3], [2, 1], [2, 2], [2, 3])},
                {"name": "Network Exploit", "multiplier": 12, "cells": _rc(
                    [0, 0], [0, 4], [3, 0], [3, 4], [1, 1], [1, 3],
                    [2, 1], [2, 3], [1, 2], [2, 2])},
            ],
        },
    ],
    "bonus": {
        "glitch_chance": 0.10,
        "glitch_cells": (1, 3),
        "glitches": [
            {"name": "virus", "kind": "additive", "value": -20},
            {"name": "key", "kind": "additive", "value": 50},
            {"name": "multiplier", "kind": "multiplicative", "value": 2},
            {"name": "refresh", "kind": "respin"},
        ],
        "power_up_chance": 0.03,
        "power_ups": [
            {"name": "overclock", "stage": "power_up", "value": 3, "spins": 3},
            {"name": "firewall", "stage": "power_up", "value": 1, "spins": 5,
             "blocks_glitches": True},
            {"name": "debugger", "stage": "power_up", "value": 1.5, "spins": 2},
        ],
        "debuff_chance": 0.05,
        "debuffs": [
            {"name": "virus", "stage": "debuff", "value": 0.5, "spins": 3},
            {"name": "memory_leak", "stage": "debuff", "value": 1, "spins": 4,
             "drain_per_spin": 5},
            {"name": "kernel_panic", "stage": "debuff", "value": 1, "spins": 2,
             "frozen_cells": 3},
        ],
        "special_mode_chance": 0.01,
        "special_modes": [
            {"name": "backdoor", "stage": "special_mode", "value": 1.5, "spins": 5,
             "free_spins": 5},
            {"name": "root_access", "stage": "special_mode", "value": 1, "spins": 1,
             "guaranteed_pattern": "Network Exploit", "guaranteed_symbol": "robot"},
            {"name": "stealth_mode", "stage": "special_mode", "value": 5, "spins": 3},
        ],
    },
}

LUCKY_CHARM = {
    "game_id": "lucky_charm",
    "display_name": "Lucky Charm",
    "reels": 4, "rows": 1,
    "symbols": _symbols(
        ("clover", 10, 0.25), ("four_leaf_clover", 15, 0.20), ("rainbow", 20, 0.17),
        ("gold_coin", 25, 0.15), ("puzzle", 30, 0.10), ("crystal", 40, 0.08),
        ("money_bag", 50, 0.04), ("hat", 100, 0.01),
    ),
    "line_groups": [{
        "name": "reels", "policy": "majority",
        "tiers": {3: 0.5, 4: 1},
        "patterns": [{"name": "All Reels", "cells": [(0, 0), (1, 0), (2, 0), (3, 0)]}],
    }],
    "bonus": {
        "multiplier_chance": 0.10,
        "multipliers": [
            {"value": 2, "probability": 0.60}, {"value": 3, "probability": 0.25},
            {"value": 5, "probability": 0.10}, {"value": 10, "probability": 0.05},
        ],
    },
}
ATLANTIS = {
    "game_id": "atlantis",
    "display_name": "Atlantis",
    "reels": 5, "rows": 3,
    "symbols": _symbols(
        ("shell", 2, 0.194), ("fish", 3, 0.18), ("crab", 5, 0.15),
        ("octopus", 8, 0.12), ("mermaid", 15, 0.10), ("merman", 15, 0.10),
        ("trident", 20, 0.07), ("zeus", 25, 0.04), ("temple", 30, 0.02),
        ("eye", 40, 0.01), ("amphora", 50, 0.005), ("atlantis", 100, 0.001),
    ),
    "line_groups": [
        {
            "name": "line", "policy": "contiguous_from_left",
            "tiers": {3: 1, 4: 2, 5: 3},
            "lines": [[0, 0, 0, 0, 0], [1, 1, 1, 1, 1], [2, 2, 2, 2, 2]],
            "line_names": ["Top Row", "Middle Row", "Bottom Row"],
        },
        {
            # three cells over the first three reels
            "name": "wave", "policy": "contiguous_from_left",
            "tiers": {3: 1},
            "lines": [[1, 0, 1, None, None], [1, 2, 1, None, None]],
            "line_names": ["Crest", "Trough"],
        },
    ],
    "bonus": {
        # Low Tide, Rising Tide, High Tide, Poseidon's Fury
        "streak": {
            "levels": [1, 2, 3, 5],
            "wins_per_level": 2,
            "loss_drop": 1,
            "symbols": {"trident": 1, "atlantis": 3},
        },
    },
}

HOOD_RICH = {
    "game_id": "hood_rich",
    "display_name": "Hood Rich",
    "reels": 3, "rows": 1,
    "symbols": _symbols(
        ("cash", 10, 0.18), ("gun", 15, 0.22), ("hood", 20, 0.15),
        ("cigarette", 25, 0.12), ("beer", 30, 0.10), ("pills", 40, 0.08),
        ("bling", 50, 0.05), ("crown", 100, 0.02), ("police", 0, 0.08),
    ),
    "line_groups": [{
        # any pair pays a fifth, three of a kind full value
        "name": "line", "policy": "majority",
        "tiers": {2: 0.2, 3: 1},
        "lines": [[0, 0, 0]], "line_names": ["Center"],
    }],
    "bonus": {
        # Cold, Warm, Hot, On Fire, Straight Fire
        "streak": {
            "levels": [1, 1.5, 2, 3, 5],
            "spins_per_level": 10,
            "symbols": {"pills": 1, "bling": 1, "crown": 1, "police": -4},
        },
    },
}

SPECIAL_ED = {
    "game_id": "special_ed",
    "display_name": "Special Ed",
    "reels": 5, "rows": 3,
    "symbols": _symbols(
        ("notebook", 1, 0.20), ("pencil", 2, 0.18), ("puzzle", 4, 0.16),
        ("brain", 6, 0.14), ("teddy", 8, 0.10), ("focus", 10, 0.08),
        ("star", 15, 0.06), ("trophy", 20, 0.04), ("graduation", 40, 0.03),
        ("meds", 50, 0.009), ("rainbow", 100, 0.001),
    ),
    "line_groups": [{
        "name": "line", "policy": "best_contiguous_anywindow",
        "tiers": {3: 1, 4: 2, 5: 3},
        "lines": [[0, 0, 0, 0, 0], [1, 1, 1, 1, 1], [2, 2, 2, 2, 2]],
        "line_names": ["Top Row", "Middle Row", "Bottom Row"],
    }],
    "bonus": {
        "power_ups": [
            {"name": "extra_attempts", "stage": "power_up", "value": 1, "spins": 1,
             "free_spins": 2},
        ],
        "special_modes": [
            {"name": "iep", "stage": "special_mode", "value": 1.5, "spins": 1,
             "guaranteed_pattern": "Middle Row", "guaranteed_symbol": "brain"},
        ],
        "loss_triggers": {4: "extra_attempts", 6: "iep"},
    },
}


VARIANT_SPECS = {
    spec["game_id"]: spec
    for spec in (CLASSIC, ADVANCED, GHOST_PIRATE, EGYPTIAN, CYBER, LUCKY_CHARM,
                 ATLANTIS, HOOD_RICH, SPECIAL_ED)
}
VARIANT_IDS = list(VARIANT_SPECS.keys())

_compiled: dict[str, SlotVariant] = {}


def register_variant(spec: SlotVariantSpec) -> SlotVariant:
    variant = compile_variant(spec)
    _compiled[spec.game_id] = variant
    if spec.game_id not in VARIANT_IDS:
        VARIANT_IDS.append(spec.game_id)
    return variant


def get_variant(game_id: str) -> SlotVariant:
    if game_id in _compiled:
        return _compiled[game_id]
    if game_id not in VARIANT_SPECS:
        raise ValueError(f"Unknown slot variant: {game_id}. Available: {VARIANT_IDS}")
    return register_variant(SlotVariantSpec.model_validate(VARIANT_SPECS[game_id]))


def load_variant_file(path) -> SlotVariant:
    """Load and register a variant from a JSON file."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return register_variant(SlotVariantSpec.model_validate(data))


# ═══════════════════════════════════════════════════════════════
# Cross-variant audit
# ═══════════════════════════════════════════════════════════════

@dataclass
class VariantInconsistency:
    aspect: str
    detail: str
    variants: list[str]

    def to_dict(self) -> dict:
        return {"aspect": self.aspect, "detail": self.detail, "variants": self.variants}


def audit_variants(game_ids: Optional[Iterable[str]] = None) -> list[VariantInconsistency]:
    """Report parameters that differ between variants sharing a grid shape or
    line policy. Each finding is logged as a warning."""
    variants = [get_variant(g) for g in (game_ids or VARIANT_IDS)]
    findings: list[VariantInconsistency] = []

    # Ordered paylines: which tier tables / policies are in use
    tiers_seen: dict[tuple, list[str]] = {}
    policies_by_shape: dict[tuple, dict[str, list[str]]] = {}
    for v in variants:
        for g in v.groups:
            if g.policy is MatchPolicy.MAJORITY:
                continue
            tiers_seen.setdefault(tuple(g.tiers.tiers.items()), []).append(v.game_id)
            shape = (v.reels, v.rows)
            policies_by_shape.setdefault(shape, {}).setdefault(g.policy.value, []).append(v.game_id)
            if g.min_run != 3:
                findings.append(VariantInconsistency(
                    "min_run", f"{v.game_id}/{g.name} pays runs of {g.min_run}", [v.game_id]))

    if len(tiers_seen) > 1:
        for tiers, ids in tiers_seen.items():
            findings.append(VariantInconsistency(
                "tiers", f"line tier table {dict(tiers)}", sorted(set(ids))))

    for shape, policies in policies_by_shape.items():
        if len(policies) > 1:
            detail = ", ".join(f"{p}: {sorted(set(ids))}" for p, ids in policies.items())
            findings.append(VariantInconsistency(
                "policy", f"{shape[0]}x{shape[1]} grids use different policies ({detail})",
                sorted({i for ids in policies.values() for i in ids})))

    for f in findings:
        logger.warning(f"Variant inconsistency [{f.aspect}] {f.detail} ({', '.join(f.variants)})")
    return findings
