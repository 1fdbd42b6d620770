"""
CASINOCORE - Slot Variant Configuration Schema

Every slot variant is data: symbols with value and probability, line groups
(each with its own match policy and tier table) and optional bonus triggers.
The built-in catalogue in sim_engine.paytables is written against this
schema, and extra variants can be loaded from JSON.

Cells are (reel, row) throughout.

Usage:
    from config.game_schema import SlotVariantSpec
    spec = SlotVariantSpec.model_validate_json(path.read_text())
    variant = compile_variant(spec)      # sim_engine.paytables
"""

from __future__ import annotations
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from sim_engine.patterns import MatchPolicy
from sim_engine.payout import EffectKind


# ═══════════════════════════════════════════════════════════════
# Symbols & Lines
# ═══════════════════════════════════════════════════════════════

class SymbolSpec(BaseModel):
    id: str
    value: float = Field(ge=0)
    probability: float = Field(ge=0, le=1)


class PatternSpec(BaseModel):
    """Fixed-shape pattern matched by majority vote."""
    name: str
    cells: list[tuple[int, int]] = Field(min_length=1)
    multiplier: float = Field(1.0, gt=0)


class LineGroupSpec(BaseModel):
    name: str
    policy: MatchPolicy
    tiers: dict[int, float]
    min_run: int = Field(3, ge=1)
    lines: list[list[Optional[int]]] = Field(default_factory=list)   # row index per reel
    line_names: list[str] = Field(default_factory=list)
    columns: bool = False                                               # one line per reel
    patterns: list[PatternSpec] = Field(default_factory=list)

    @field_validator("tiers")
    @classmethod
    def tiers_not_empty(cls, v):
        if not v:
            raise ValueError("tiers must define at least one run length")
        if any(k < 1 or m < 0 for k, m in v.items()):
            raise ValueError("tier run lengths must be >= 1 and multipliers >= 0")
        return v


# ═══════════════════════════════════════════════════════════════
# Bonus triggers
# ═══════════════════════════════════════════════════════════════

class EffectStage(str, Enum):
    POWER_UP = "power_up"
    DEBUFF = "debuff"
    SPECIAL_MODE = "special_mode"


class GlitchSpec(BaseModel):
    """Symbol overlay on a single cell for one draw. The cell cannot match."""
    name: str
    kind: str = "additive"       # additive | multiplicative | respin
    value: float = 0
    weight: float = Field(1.0, gt=0)

    @field_validator("kind")
    @classmethod
    def known_kind(cls, v):
        if v not in ("additive", "multiplicative", "respin"):
            raise ValueError(f"unknown glitch kind '{v}'")
        return v


class EffectSpec(BaseModel):
    """Timed effect (power-up, debuff or hidden mode)."""
    name: str
    stage: EffectStage
    kind: EffectKind = EffectKind.MULTIPLICATIVE
    value: float = 1.0
    spins: int = Field(1, ge=1)
    weight: float = Field(1.0, gt=0)
    blocks_glitches: bool = False
    drain_per_spin: int = Field(0, ge=0)
    frozen_cells: int = Field(0, ge=0)
    free_spins: int = Field(0, ge=0)
    guaranteed_pattern: Optional[str] = None
    guaranteed_symbol: Optional[str] = None


class WeightedMultiplier(BaseModel):
    value: float = Field(gt=0)
    probability: float = Field(ge=0, le=1)


class StreakSpec(BaseModel):
    """Progressive whole-draw multiplier that climbs with play and falls on losses.

    The multiplier of the current level applies to a draw; the level then
    moves once the draw has settled.
    """
    levels: list[float] = Field(min_length=1)       # multiplier per level, level 0 first
    wins_per_level: int = Field(0, ge=0)             # every Nth consecutive win climbs one level
    spins_per_level: int = Field(0, ge=0)            # every Nth spin climbs one level
    loss_drop: int = Field(0, ge=0)                  # levels lost on a losing draw
    symbols: dict[str, int] = Field(default_factory=dict)   # matched symbol -> level change

    @field_validator("levels")
    @classmethod
    def positive_levels(cls, v):
        if any(m <= 0 for m in v):
            raise ValueError("streak multipliers must be > 0")
        return v

    @property
    def top(self) -> int:
        return len(self.levels) - 1


class BonusSpec(BaseModel):
    glitch_chance: float = Field(0.0, ge=0, le=1)
    glitch_cells: tuple[int, int] = (1, 3)
    glitches: list[GlitchSpec] = Field(default_factory=list)

    power_up_chance: float = Field(0.0, ge=0, le=1)
    power_ups: list[EffectSpec] = Field(default_factory=list)

    debuff_chance: float = Field(0.0, ge=0, le=1)
    debuffs: list[EffectSpec] = Field(default_factory=list)

    special_mode_chance: float = Field(0.0, ge=0, le=1)
    special_modes: list[EffectSpec] = Field(default_factory=list)

    # One-shot random multiplier on a winning draw
    multiplier_chance: float = Field(0.0, ge=0, le=1)
    multipliers: list[WeightedMultiplier] = Field(default_factory=list)

    streak: Optional[StreakSpec] = None

    # Consecutive losing draws -> effect activated when the count is reached
    loss_triggers: dict[int, str] = Field(default_factory=dict)

    def all_effects(self) -> list[EffectSpec]:
        return [*self.power_ups, *self.debuffs, *self.special_modes]


# ═══════════════════════════════════════════════════════════════
# Variant
# ═══════════════════════════════════════════════════════════════

class SlotVariantSpec(BaseModel):
    game_id: str
    display_name: str = ""
    reels: int = Field(ge=1, le=10)
    rows: int = Field(ge=1, le=10)
    symbols: list[SymbolSpec] = Field(min_length=1)
    line_groups: list[LineGroupSpec] = Field(min_length=1)
    bonus: BonusSpec = Field(default_factory=BonusSpec)

    @model_validator(mode="after")
    def check_geometry(self):
        ids = [s.id for s in self.symbols]
        if len(ids) != len(set(ids)):
            raise ValueError("symbol ids must be unique")
        for group in self.line_groups:
            for line in group.lines:
                if len(line) != self.reels:
                    raise ValueError(
                        f"{group.name}: line {line} has {len(line)} entries, expected {self.reels}"
                    )
                if any(r is not None and not 0 <= r < self.rows for r in line):
                    raise ValueError(f"{group.name}: line {line} has a row outside 0..{self.rows - 1}")
            for pattern in group.patterns:
                for reel, row in pattern.cells:
                    if not (0 <= reel < self.reels and 0 <= row < self.rows):
                        raise ValueError(f"{pattern.name}: cell {(reel, row)} outside the grid")
        pattern_names = {p.name for g in self.line_groups for p in g.patterns}
        pattern_names |= {n for g in self.line_groups for n in g.line_names}
        effect_names = {e.name for e in self.bonus.all_effects()}
        for effect in self.bonus.all_effects():
            if effect.guaranteed_pattern and effect.guaranteed_pattern not in pattern_names:
                raise ValueError(f"{effect.name}: unknown pattern '{effect.guaranteed_pattern}'")
            if effect.guaranteed_symbol and effect.guaranteed_symbol not in ids:
                raise ValueError(f"{effect.name}: unknown symbol '{effect.guaranteed_symbol}'")
        for losses, name in self.bonus.loss_triggers.items():
            if losses < 1 or name not in effect_names:
                raise ValueError(f"loss trigger {losses} -> '{name}' needs a count >= 1 and a known effect")
        if self.bonus.streak:
            unknown = set(self.bonus.streak.symbols) - set(ids)
            if unknown:
                raise ValueError(f"streak symbols not in the paytable: {sorted(unknown)}")
        return self
