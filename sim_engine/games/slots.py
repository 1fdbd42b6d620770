"""
CASINOCORE - Slot Session

    Idle -> Wagering -> Drawing -> Evaluating -> Settled -> Idle

Wagering debits the stake (skipped on a free spin), Settled credits the
payout when it is positive. A failed debit returns the session to Idle with
the balance untouched, and a draw that fails after the debit refunds the
stake (or hands back the free spin).

Bonus mechanics are driven by the variant's BonusSpec:
  - glitches: 1-3 cells overlaid for this draw; they cannot match and add a
    GLITCH-stage modifier (or re-spin their reel)
  - power-ups / debuffs / hidden modes: timed effects, re-activation resets
    the duration, expiry counted in spins
  - free spins, per-spin credit drain, frozen cells, guaranteed pattern
  - one-shot random multiplier on a winning draw
  - streak level: a whole-draw multiplier that climbs with consecutive wins,
    spin count or matched symbols and drops on losses
  - loss triggers: an effect activated after N losing draws in a row
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from config.game_schema import EffectSpec, GlitchSpec
from ledger.errors import InsufficientFunds, InvalidAmount
from ledger.service import WagerLedger, validate_amount
from sim_engine.errors import InvalidBet
from sim_engine.games.base import BaseGameSession
from sim_engine.outcome import Cell, Grid, OutcomeGenerator, grid_with
from sim_engine.patterns import MatchResult
from sim_engine.paytables import SlotVariant, get_variant
from sim_engine.payout import ActiveEffects, ModifierEffect, ModifierStage, base_amount

logger = logging.getLogger("casinocore.slots")


class SlotState(str, Enum):
    IDLE = "idle"
    WAGERING = "wagering"
    DRAWING = "drawing"
    EVALUATING = "evaluating"
    SETTLED = "settled"


@dataclass
class SpinResult:
    wager: int
    free_spin: bool
    grid: Grid
    matches: list[MatchResult]
    payout: int
    balance: int
    modifiers: list[ModifierEffect] = field(default_factory=list)
    blocked: list[Cell] = field(default_factory=list)
    drained: int = 0
    triggered: list[str] = field(default_factory=list)
    expired: list[str] = field(default_factory=list)
    streak_level: int = 0

    @property
    def won(self) -> bool:
        return self.payout > 0

    def to_dict(self) -> dict:
        return {
            "wager": self.wager,
            "free_spin": self.free_spin,
            "grid": [list(reel) for reel in self.grid],
            "matches": [m.to_dict() for m in self.matches],
            "payout": self.payout,
            "balance": self.balance,
            "modifiers": [m.to_dict() for m in self.modifiers],
            "blocked": [list(c) for c in self.blocked],
            "drained": self.drained,
            "triggered": self.triggered,
            "expired": self.expired,
            "streak_level": self.streak_level,
        }


def effect_from_spec(spec: EffectSpec) -> ModifierEffect:
    return ModifierEffect(
        kind=spec.kind,
        stage=ModifierStage[spec.stage.name],
        value=spec.value,
        name=spec.name,
        spins_remaining=spec.spins,
    )


class SlotSession(BaseGameSession):

    game_type = "slots"
    display_name = "Slots"

    TRANSITIONS = {
        SlotState.IDLE: (SlotState.WAGERING,),
        SlotState.WAGERING: (SlotState.DRAWING, SlotState.IDLE),
        SlotState.DRAWING: (SlotState.EVALUATING,),
        SlotState.EVALUATING: (SlotState.SETTLED,),
        SlotState.SETTLED: (SlotState.IDLE,),
    }

    def __init__(self, ledger: WagerLedger, variant: Union[str, SlotVariant] = "classic",
                 rng: Optional[random.Random] = None, session_id: str = None):
        super().__init__(ledger, rng, session_id)
        self.variant = get_variant(variant) if isinstance(variant, str) else variant
        self.game_type = f"slots:{self.variant.game_id}"
        self.display_name = self.variant.display_name
        self.generator = OutcomeGenerator(self.rng)
        self.effects = ActiveEffects()
        self.free_spins = 0
        self.streak_level = 0
        self.win_streak = 0
        self.loss_streak = 0
        self.spin_count = 0
        self._effect_specs = {e.name: e for e in self.variant.bonus.all_effects()}

    def initial_state(self):
        return SlotState.IDLE

    # ═══════════════════════════════════════════════════════════
    # Spin
    # ═══════════════════════════════════════════════════════════

    def spin(self, wager: int = None) -> SpinResult:
        self._require("spin", SlotState.IDLE)
        wager = validate_amount(self.ledger.default_wager if wager is None else wager)
        if wager < 1:
            raise InvalidAmount("Wager must be at least 1")

        self._transition(SlotState.WAGERING)
        free_spin = self.free_spins > 0
        if free_spin:
            self.free_spins -= 1
        else:
            try:
                self._stake(wager)
            except Exception:
                self._transition(SlotState.IDLE)
                raise

        try:
            return self._play(wager, free_spin)
        except Exception:
            logger.exception(f"[{self.game_type}] spin aborted after wager")
            if self.state is not SlotState.SETTLED:
                if free_spin:
                    self.free_spins += 1
                else:
                    self.ledger.credit(wager, cause=f"{self.game_type}:refund")
            self.state = SlotState.IDLE
            raise

    def _play(self, wager: int, free_spin: bool) -> SpinResult:
        self._transition(SlotState.DRAWING)
        variant = self.variant
        grid = self.generator.draw(variant.paytable, variant.reels, variant.rows)
        grid, glitch_effects, blocked = self._roll_glitches(grid)
        grid, blocked = self._apply_guarantee(grid, blocked)
        blocked |= self._frozen_cells()

        self._transition(SlotState.EVALUATING)
        matches = variant.evaluate(grid, blocked)
        modifiers = glitch_effects + list(self.effects) + self._streak_modifier()
        if base_amount(matches, wager, variant.paytable.value_of, variant.tiers) > 0:
            modifiers += self._roll_multiplier()
        payout = variant.payout(matches, wager, modifiers)

        self._transition(SlotState.SETTLED)
        self._pay(payout)
        drained = self._drain()
        expired = self.effects.tick()
        self._advance_streak(payout, matches)
        triggered = self._roll_triggers() + self._loss_triggers(payout)

        self._record(0 if free_spin else wager, payout, matches=len(matches),
                     free_spin=free_spin, drained=drained, streak_level=self.streak_level)
        self._transition(SlotState.IDLE)
        if payout:
            logger.info(f"[{self.game_type}] {len(matches)} match(es), paid {payout}")
        return SpinResult(
            wager=wager, free_spin=free_spin, grid=grid, matches=matches,
            payout=payout, balance=self.ledger.get_balance(), modifiers=modifiers,
            blocked=sorted(blocked), drained=drained, triggered=triggered, expired=expired,
            streak_level=self.streak_level,
        )

    # ═══════════════════════════════════════════════════════════
    # Effects
    # ═══════════════════════════════════════════════════════════

    def trigger(self, name: str) -> ModifierEffect:
        """Activate a power-up, debuff or hidden mode by name."""
        spec = self._effect_specs.get(name)
        if spec is None:
            raise InvalidBet(f"{self.game_type} has no effect '{name}'. "
                             f"Available: {sorted(self._effect_specs)}")
        effect = effect_from_spec(spec)
        self.effects.activate(effect)
        if spec.free_spins:
            self.free_spins += spec.free_spins
        logger.info(f"[{self.game_type}] effect '{name}' active for {spec.spins} spin(s)")
        return effect

    def _active_specs(self) -> list[EffectSpec]:
        return [self._effect_specs[e.name] for e in self.effects if e.name in self._effect_specs]

    def _all_cells(self) -> list[Cell]:
        return [(reel, row) for reel in range(self.variant.reels) for row in range(self.variant.rows)]

    def _roll_glitches(self, grid: Grid):
        bonus = self.variant.bonus
        if not bonus.glitches or bonus.glitch_chance <= 0:
            return grid, [], set()
        if any(s.blocks_glitches for s in self._active_specs()):
            return grid, [], set()
        if self.rng.random() >= bonus.glitch_chance:
            return grid, [], set()

        cells = self._all_cells()
        lo, hi = bonus.glitch_cells
        count = min(len(cells), self.rng.randint(lo, hi))
        effects, blocked = [], set()
        for cell in self.rng.sample(cells, count):
            glitch: GlitchSpec = self.rng.choices(
                bonus.glitches, weights=[g.weight for g in bonus.glitches])[0]
            blocked.add(cell)
            if glitch.kind == "respin":
                grid = self._respin_reel(grid, cell[0])
            elif glitch.kind == "multiplicative":
                effects.append(ModifierEffect.multiplicative(
                    glitch.value, ModifierStage.GLITCH, glitch.name, cells=(cell,)))
            else:
                effects.append(ModifierEffect.additive(
                    glitch.value, ModifierStage.GLITCH, glitch.name, cells=(cell,)))
                if glitch.value < 0:
                    effects.append(ModifierEffect.floor_at_zero(
                        ModifierStage.GLITCH, glitch.name, cells=(cell,)))
        return grid, effects, blocked

    def _respin_reel(self, grid: Grid, reel: int) -> Grid:
        fresh = self.generator.draw(self.variant.paytable, 1, self.variant.rows)[0]
        return tuple(fresh if i == reel else column for i, column in enumerate(grid))

    def _apply_guarantee(self, grid: Grid, blocked: set):
        for spec in self._active_specs():
            if spec.guaranteed_pattern:
                line = self.variant.pattern(spec.guaranteed_pattern)
                grid = grid_with(grid, line.path, spec.guaranteed_symbol)
                blocked = blocked - set(line.path)
        return grid, blocked

    def _frozen_cells(self) -> set:
        count = sum(s.frozen_cells for s in self._active_specs())
        if not count:
            return set()
        cells = self._all_cells()
        return set(self.rng.sample(cells, min(count, len(cells))))

    def _roll_multiplier(self) -> list[ModifierEffect]:
        bonus = self.variant.bonus
        if not bonus.multipliers or self.rng.random() >= bonus.multiplier_chance:
            return []
        choice = self.rng.choices(bonus.multipliers,
                                  weights=[m.probability for m in bonus.multipliers])[0]
        return [ModifierEffect.multiplicative(choice.value, ModifierStage.SPECIAL_MODE, "multiplier")]

    def _drain(self) -> int:
        total = 0
        for spec in self._active_specs():
            if spec.drain_per_spin:
                amount = min(spec.drain_per_spin, self.ledger.get_balance())
                if not amount:
                    continue
                try:
                    self._stake(amount, what=f"drain:{spec.name}")
                except InsufficientFunds:
                    logger.info(f"[{self.game_type}] drain skipped, balance moved underneath")
                    continue
                total += amount
        return total

    def _roll_triggers(self) -> list[str]:
        bonus = self.variant.bonus
        triggered = []
        for chance, pool in ((bonus.debuff_chance, bonus.debuffs),
                             (bonus.power_up_chance, bonus.power_ups),
                             (bonus.special_mode_chance, bonus.special_modes)):
            if pool and chance > 0 and self.rng.random() < chance:
                spec = self.rng.choices(pool, weights=[e.weight for e in pool])[0]
                self.trigger(spec.name)
                triggered.append(spec.name)
        return triggered

    # ═══════════════════════════════════════════════════════════
    # Streaks
    # ═══════════════════════════════════════════════════════════

    @property
    def streak_multiplier(self) -> float:
        streak = self.variant.bonus.streak
        return streak.levels[self.streak_level] if streak else 1.0

    def _streak_modifier(self) -> list[ModifierEffect]:
        if self.streak_multiplier == 1:
            return []
        return [ModifierEffect.multiplicative(
            self.streak_multiplier, ModifierStage.SPECIAL_MODE, f"streak:{self.streak_level}")]

    def _advance_streak(self, payout: int, matches: list[MatchResult]):
        if payout > 0:
            self.win_streak += 1
            self.loss_streak = 0
        else:
            self.win_streak = 0
            self.loss_streak += 1
        self.spin_count += 1

        streak = self.variant.bonus.streak
        if streak is None:
            return
        level = self.streak_level
        if payout > 0 and streak.wins_per_level and self.win_streak % streak.wins_per_level == 0:
            level += 1
        if payout <= 0:
            level -= streak.loss_drop
        if streak.spins_per_level and self.spin_count % streak.spins_per_level == 0:
            level += 1
        for symbol in {m.symbol_id for m in matches}:
            level += streak.symbols.get(symbol, 0)
        level = max(0, min(level, streak.top))
        if level != self.streak_level:
            logger.info(f"[{self.game_type}] streak level {self.streak_level} -> {level} "
                        f"({streak.levels[level]}x)")
        self.streak_level = level

    def _loss_triggers(self, payout: int) -> list[str]:
        name = self.variant.bonus.loss_triggers.get(self.loss_streak) if payout <= 0 else None
        if name is None:
            return []
        self.trigger(name)
        return [name]

    def get_metadata(self) -> dict:
        meta = super().get_metadata()
        meta.update({
            "variant": self.variant.game_id,
            "free_spins": self.free_spins,
            "effects": self.effects.to_list(),
            "streak_level": self.streak_level,
            "streak_multiplier": self.streak_multiplier,
        })
        return meta
