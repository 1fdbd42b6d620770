#!/usr/bin/env python3
"""
CASINOCORE - Engine Test Suite

Run: python tests.py
     python tests.py -v                  # verbose
     python tests.py TestPatternEvaluator

Test categories:
  TestPaytable          — load-time validation, cumulative selection, catch-all
  TestOutcomeGenerator  — grid shape, immutability, frequency convergence
  TestPatternEvaluator  — contiguous, any-window and majority policies
  TestPayoutCalculator  — tiers, fixed modifier order, clamping
  TestActiveEffects     — expiry and re-activation
  TestVariantCatalogue  — built-in variants, JSON schema, cross-variant audit
"""

import json
import random
import sys
import tempfile
import unittest
from dataclasses import FrozenInstanceError
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from pydantic import ValidationError

from config.game_schema import SlotVariantSpec
from sim_engine.errors import InvalidPaytable
from sim_engine.outcome import OutcomeGenerator, Paytable, PaytableEntry, grid_with
from sim_engine.patterns import LineDefinition, MatchPolicy, MatchResult, evaluate
from sim_engine.paytables import (
    CLASSIC, VARIANT_IDS, audit_variants, compile_variant, get_variant, load_variant_file,
)
from sim_engine.payout import (
    ActiveEffects, DEFAULT_TIERS, ModifierEffect, ModifierStage, TierTable, compute_payout,
)
from tools.paytable_montecarlo import check_frequencies, simulate_variant


def grid_from_rows(rows):
    """Row-major literal -> grid[reel][row]."""
    return tuple(tuple(row[reel] for row in rows) for reel in range(len(rows[0])))


def simple_paytable():
    return Paytable([
        PaytableEntry("A", 5, 0.5),
        PaytableEntry("B", 2, 0.3),
        PaytableEntry("C", 1, 0.2),
    ], name="abc")


# ============================================================
# Paytable
# ============================================================

class TestPaytable(unittest.TestCase):

    def test_probabilities_must_sum_to_one(self):
        """A paytable summing to 0.9 is rejected at load time."""
        with self.assertRaises(InvalidPaytable):
            Paytable([PaytableEntry("A", 1, 0.5), PaytableEntry("B", 1, 0.4)])

    def test_within_tolerance_is_accepted(self):
        pt = Paytable([PaytableEntry("A", 1, 0.5), PaytableEntry("B", 1, 0.4999999995)])
        self.assertEqual(len(pt), 2)

    def test_rejects_duplicates_negatives_and_empty(self):
        with self.assertRaises(InvalidPaytable):
            Paytable([PaytableEntry("A", 1, 0.5), PaytableEntry("A", 1, 0.5)])
        with self.assertRaises(InvalidPaytable):
            Paytable([PaytableEntry("A", 1, 1.5), PaytableEntry("B", 1, -0.5)])
        with self.assertRaises(InvalidPaytable):
            Paytable([])

    def test_pick_uses_cumulative_ranges_in_table_order(self):
        pt = simple_paytable()
        self.assertEqual(pt.pick(0.0), "A")
        self.assertEqual(pt.pick(0.49), "A")
        self.assertEqual(pt.pick(0.5), "B")
        self.assertEqual(pt.pick(0.79), "B")
        self.assertEqual(pt.pick(0.8), "C")

    def test_last_entry_is_catch_all(self):
        """Values above the (rounded-down) cumulative total land on the last entry."""
        pt = Paytable([PaytableEntry("A", 1, 0.5), PaytableEntry("B", 1, 0.4999999995)])
        self.assertEqual(pt.pick(0.9999999999), "B")

    def test_zero_probability_symbol_is_never_picked(self):
        pt = Paytable([PaytableEntry("A", 1, 0.5), PaytableEntry("Z", 1, 0.0),
                       PaytableEntry("B", 1, 0.5)])
        self.assertEqual(pt.pick(0.5), "B")

    def test_value_lookup(self):
        pt = simple_paytable()
        self.assertEqual(pt.value_of("A"), 5)
        self.assertEqual(pt.probability_of("C"), 0.2)


# ============================================================
# Outcome Generator
# ============================================================

class TestOutcomeGenerator(unittest.TestCase):

    def test_grid_shape_is_reels_by_rows(self):
        grid = OutcomeGenerator(random.Random(1)).draw(simple_paytable(), 5, 3)
        self.assertEqual(len(grid), 5)
        self.assertTrue(all(len(reel) == 3 for reel in grid))
        self.assertTrue(all(sym in ("A", "B", "C") for reel in grid for sym in reel))

    def test_grid_is_immutable(self):
        grid = OutcomeGenerator(random.Random(1)).draw(simple_paytable(), 3, 3)
        with self.assertRaises(TypeError):
            grid[0][0] = "Z"

    def test_rejects_empty_grid(self):
        with self.assertRaises(ValueError):
            OutcomeGenerator().draw(simple_paytable(), 0, 3)

    def test_frequencies_converge_at_100k_draws(self):
        """Each symbol lands within ±1% of its probability over 100,000 draws."""
        report = check_frequencies(get_variant("classic").paytable, n_draws=100_000,
                                   tolerance=0.01, seed=2024)
        self.assertTrue(report.passed, report.summary())
        self.assertEqual(sum(s.count for s in report.symbols), 100_000)

    def test_cells_are_drawn_independently(self):
        """Across many 5x1 grids every reel position sees every common symbol."""
        gen = OutcomeGenerator(random.Random(7))
        pt = simple_paytable()
        seen = [set() for _ in range(5)]
        for _ in range(500):
            for reel, column in enumerate(gen.draw(pt, 5, 1)):
                seen[reel].add(column[0])
        self.assertTrue(all(s == {"A", "B", "C"} for s in seen))

    def test_grid_with_replaces_cells(self):
        grid = grid_from_rows([["A", "B"], ["C", "A"]])
        forced = grid_with(grid, [(0, 0), (1, 1)], "C")
        self.assertEqual(forced[0][0], "C")
        self.assertEqual(forced[1][1], "C")
        self.assertEqual(grid[0][0], "A")


# ============================================================
# Pattern Evaluator
# ============================================================

class TestPatternEvaluator(unittest.TestCase):

    def test_top_row_fixture_matches_three_a(self):
        """Rows [[A,A,A],[B,B,B],[C,C,C]] with line row0 -> one match of A x3."""
        grid = grid_from_rows([["A", "A", "A"], ["B", "B", "B"], ["C", "C", "C"]])
        line = LineDefinition.from_rows("top", [0, 0, 0])
        matches = evaluate(grid, [line], MatchPolicy.CONTIGUOUS_FROM_LEFT)
        self.assertEqual(len(matches), 1)
        self.assertEqual(matches[0].symbol_id, "A")
        self.assertEqual(matches[0].run_length, 3)
        self.assertEqual(matches[0].cell_positions, ((0, 0), (1, 0), (2, 0)))

    def test_broken_run_has_no_match(self):
        """A line reading [A,B,A] is broken at position 1."""
        grid = grid_from_rows([["A", "B", "A"]])
        line = LineDefinition.from_rows("top", [0, 0, 0])
        self.assertEqual(evaluate(grid, [line], MatchPolicy.CONTIGUOUS_FROM_LEFT), [])

    def test_contiguous_run_must_start_at_first_reel(self):
        grid = grid_from_rows([["B", "A", "A", "A", "A"]])
        line = LineDefinition.from_rows("l", [0] * 5)
        self.assertEqual(evaluate(grid, [line], MatchPolicy.CONTIGUOUS_FROM_LEFT), [])
        matches = evaluate(grid, [line], MatchPolicy.BEST_CONTIGUOUS_ANYWINDOW)
        self.assertEqual(matches[0].run_length, 4)
        self.assertEqual(matches[0].cell_positions[0], (1, 0))

    def test_anywindow_keeps_longest_run(self):
        """A 3-run at reel 0 loses to a 4-run starting later."""
        grid = grid_from_rows([["A", "A", "A", "B", "B", "B", "B"]])
        line = LineDefinition.from_rows("l", [0] * 7)
        matches = evaluate(grid, [line], MatchPolicy.BEST_CONTIGUOUS_ANYWINDOW)
        self.assertEqual(len(matches), 1)
        self.assertEqual(matches[0].symbol_id, "B")
        self.assertEqual(matches[0].run_length, 4)

    def test_gapped_line_path_skips_reels(self):
        grid = grid_from_rows([["X", "A", "B", "C", "D"],
                               ["Y", "E", "A", "F", "G"],
                               ["Z", "H", "I", "A", "J"],
                               ["W", "K", "L", "M", "A"]])
        line = LineDefinition.from_rows("late-diag", [None, 0, 1, 2, 3])
        matches = evaluate(grid, [line], MatchPolicy.CONTIGUOUS_FROM_LEFT)
        self.assertEqual(matches[0].run_length, 4)

    def test_all_qualifying_lines_are_reported(self):
        grid = grid_from_rows([["A", "A", "A"], ["B", "B", "B"], ["C", "A", "B"]])
        lines = [LineDefinition.from_rows(str(r), [r] * 3) for r in range(3)]
        matches = evaluate(grid, lines, MatchPolicy.CONTIGUOUS_FROM_LEFT)
        self.assertEqual([m.line_id for m in matches], ["0", "1"])

    def test_majority_vote_triggers_at_half(self):
        """Most frequent symbol in at least floor(n/2) cells is reported."""
        grid = grid_from_rows([["A"], ["A"], ["B"], ["C"]])
        column = LineDefinition.column("c1", 0, 4)
        matches = evaluate(grid, [column], MatchPolicy.MAJORITY)
        self.assertEqual(matches[0].symbol_id, "A")
        self.assertEqual(matches[0].run_length, 2)
        self.assertEqual(matches[0].cell_positions, ((0, 0), (0, 1)))

    def test_majority_below_half_does_not_trigger(self):
        grid = grid_from_rows([["A"], ["B"], ["C"], ["D"]])
        column = LineDefinition.column("c1", 0, 4)
        self.assertEqual(evaluate(grid, [column], MatchPolicy.MAJORITY), [])

    def test_pattern_carries_its_multiplier(self):
        grid = grid_from_rows([["A", "A"], ["A", "B"]])
        pattern = LineDefinition.pattern("corner", [(0, 0), (1, 0), (0, 1)], multiplier=8)
        match = evaluate(grid, [pattern], MatchPolicy.MAJORITY)[0]
        self.assertEqual(match.line_multiplier, 8)
        self.assertEqual(match.group, "pattern")

    def test_blocked_cells_break_runs_and_patterns(self):
        grid = grid_from_rows([["A", "A", "A"]])
        line = LineDefinition.from_rows("top", [0, 0, 0])
        self.assertEqual(evaluate(grid, [line], MatchPolicy.CONTIGUOUS_FROM_LEFT,
                                  blocked=[(1, 0)]), [])
        pattern = LineDefinition.pattern("p", [(0, 0), (1, 0), (2, 0)])
        self.assertEqual(evaluate(grid, [pattern], MatchPolicy.MAJORITY, blocked=[(2, 0)]), [])

    def test_match_result_is_frozen(self):
        m = MatchResult("l", "A", 3, ((0, 0),))
        with self.assertRaises(FrozenInstanceError):
            m.run_length = 5


# ============================================================
# Payout Calculator
# ============================================================

def _match(symbol="A", run=4, group="line", mult=1.0):
    return MatchResult("l", symbol, run, tuple((i, 0) for i in range(run)), group, mult)


VALUES = {"A": 5, "B": 2}.__getitem__


class TestPayoutCalculator(unittest.TestCase):

    def test_tier_table_step_function(self):
        self.assertEqual(DEFAULT_TIERS(2), 0)
        self.assertEqual(DEFAULT_TIERS(3), 1)
        self.assertEqual(DEFAULT_TIERS(4), 5)
        self.assertEqual(DEFAULT_TIERS(7), 10)

    def test_worked_example_base(self):
        """wager 10 x value 5 x tier(4)=5 -> 250."""
        self.assertEqual(compute_payout([_match()], 10, VALUES), 250)

    def test_power_up_then_debuff(self):
        mods = [ModifierEffect.multiplicative(2, ModifierStage.POWER_UP),
                ModifierEffect.multiplicative(0.5, ModifierStage.DEBUFF)]
        self.assertEqual(compute_payout([_match()], 10, VALUES, mods), 250)

    def test_stage_order_not_list_order_decides(self):
        """Listing the debuff first changes nothing: the stage order is fixed."""
        mods = [ModifierEffect.multiplicative(0.5, ModifierStage.DEBUFF),
                ModifierEffect.multiplicative(3, ModifierStage.POWER_UP),
                ModifierEffect.additive(100, ModifierStage.GLITCH)]
        self.assertEqual(compute_payout([_match()], 10, VALUES, mods), 525)   # (250+100)*3*0.5

    def test_flat_step_position_changes_result(self):
        early = [ModifierEffect.additive(100, ModifierStage.GLITCH),
                 ModifierEffect.multiplicative(3, ModifierStage.POWER_UP),
                 ModifierEffect.multiplicative(0.5, ModifierStage.DEBUFF)]
        late = [ModifierEffect.multiplicative(3, ModifierStage.POWER_UP),
                ModifierEffect.multiplicative(0.5, ModifierStage.DEBUFF),
                ModifierEffect.additive(100, ModifierStage.SPECIAL_MODE)]
        self.assertEqual(compute_payout([_match()], 10, VALUES, early), 525)
        self.assertEqual(compute_payout([_match()], 10, VALUES, late), 475)

    def test_result_is_clamped_at_zero(self):
        mods = [ModifierEffect.additive(-1000, ModifierStage.GLITCH)]
        self.assertEqual(compute_payout([_match()], 10, VALUES, mods), 0)

    def test_floor_at_zero_mid_chain(self):
        """Virus glitch: -20 then floor, so a later +50 is not eaten by the deficit."""
        mods = [ModifierEffect.additive(-20, ModifierStage.GLITCH),
                ModifierEffect.floor_at_zero(ModifierStage.GLITCH),
                ModifierEffect.additive(50, ModifierStage.SPECIAL_MODE)]
        self.assertEqual(compute_payout([], 10, VALUES, mods), 50)

    def test_payouts_add_across_lines(self):
        matches = [_match("A", 3), _match("B", 5)]
        self.assertEqual(compute_payout(matches, 10, VALUES), 10 * 5 * 1 + 10 * 2 * 10)

    def test_result_is_floored(self):
        mods = [ModifierEffect.multiplicative(0.5, ModifierStage.DEBUFF)]
        self.assertEqual(compute_payout([_match("A", 3)], 5, VALUES, mods), 12)   # 12.5

    def test_per_group_tiers_and_line_multiplier(self):
        tiers = {"line": DEFAULT_TIERS, "pattern": TierTable.flat(1)}
        matches = [_match("B", 6, group="pattern", mult=12)]
        self.assertEqual(compute_payout(matches, 10, VALUES, tiers=tiers), 240)

    def test_missing_group_tier_is_an_error(self):
        with self.assertRaises(ValueError):
            compute_payout([_match(group="other")], 10, VALUES, tiers={"line": DEFAULT_TIERS})


class TestActiveEffects(unittest.TestCase):

    def test_effect_expires_after_its_spins(self):
        effects = ActiveEffects()
        effects.activate(ModifierEffect.multiplicative(3, name="overclock", spins=2))
        self.assertEqual(effects.tick(), [])
        self.assertEqual(effects.get("overclock").spins_remaining, 1)
        self.assertEqual(effects.tick(), ["overclock"])
        self.assertFalse(effects.has("overclock"))

    def test_reactivation_resets_duration(self):
        effects = ActiveEffects()
        effects.activate(ModifierEffect.multiplicative(3, name="overclock", spins=3))
        effects.tick()
        effects.activate(ModifierEffect.multiplicative(3, name="overclock", spins=3))
        self.assertEqual(len(effects), 1)
        self.assertEqual(effects.get("overclock").spins_remaining, 3)

    def test_untimed_effect_stays_until_cleared(self):
        effects = ActiveEffects()
        effects.activate(ModifierEffect.multiplicative(2, name="mode", spins=None))
        for _ in range(10):
            effects.tick()
        self.assertTrue(effects.has("mode"))
        effects.clear("mode")
        self.assertEqual(len(effects), 0)


# ============================================================
# Variant Catalogue
# ============================================================

class TestVariantCatalogue(unittest.TestCase):

    def test_all_builtin_variants_compile(self):
        for game_id in VARIANT_IDS:
            variant = get_variant(game_id)
            self.assertEqual(variant.game_id, game_id)
            self.assertGreater(len(variant.paytable), 0)

    def test_unknown_variant(self):
        with self.assertRaises(ValueError):
            get_variant("nope")

    def test_bad_probabilities_fail_at_compile(self):
        data = json.loads(json.dumps(CLASSIC))
        data["game_id"] = "broken"
        data["symbols"][0]["probability"] = 0.5
        with self.assertRaises(InvalidPaytable):
            compile_variant(SlotVariantSpec.model_validate(data))

    def test_schema_rejects_bad_geometry(self):
        data = json.loads(json.dumps(CLASSIC))
        data["line_groups"][0]["lines"] = [[0, 0]]
        with self.assertRaises(ValidationError):
            SlotVariantSpec.model_validate(data)

    def test_classic_pays_adjacent_pair_a_fifth(self):
        variant = get_variant("classic")
        grid = grid_from_rows([["cherry", "cherry", "lemon"]])
        matches = variant.evaluate(grid)
        self.assertEqual(matches[0].run_length, 2)
        self.assertEqual(variant.payout(matches, 10), 20)

    def test_cyber_network_exploit_pattern(self):
        variant = get_variant("cyber")
        base = grid_from_rows([["floppy", "pager", "cassette", "computer", "lock"],
                               ["power", "network", "floppy", "pager", "cassette"],
                               ["computer", "lock", "power", "network", "floppy"],
                               ["pager", "cassette", "computer", "lock", "power"]])
        line = variant.pattern("Network Exploit")
        grid = grid_with(base, line.path, "robot")
        exploit = [m for m in variant.evaluate(grid) if m.line_id == "pattern:Network Exploit"]
        self.assertEqual(len(exploit), 1)
        self.assertEqual(exploit[0].symbol_id, "robot")
        self.assertEqual(exploit[0].line_multiplier, 12)

    def test_column_majority_below_lowest_tier_is_not_a_match(self):
        variant = get_variant("egyptian")
        grid = grid_from_rows([
            ["coin", "papyrus", "crystal", "camel", "crocodile"],
            ["coin", "papyrus", "crystal", "camel", "crocodile"],
            ["snake", "eye", "vase", "ankh", "treasure"],
            ["eye", "vase", "ankh", "treasure", "pyramid"],
        ])
        columns = variant.groups[1]
        raw = evaluate(grid, columns.lines, columns.policy)
        self.assertEqual({m.run_length for m in raw}, {2})
        self.assertEqual(variant.evaluate(grid), [])
        self.assertEqual(variant.payout(variant.evaluate(grid), 10), 0)

    def test_zero_value_symbol_still_matches(self):
        """hood_rich police pair is reported even though it pays nothing."""
        variant = get_variant("hood_rich")
        matches = variant.evaluate(grid_from_rows([["police", "cash", "police"]]))
        self.assertEqual([(m.symbol_id, m.run_length) for m in matches], [("police", 2)])
        self.assertEqual(variant.payout(matches, 10), 0)

        matches = variant.evaluate(grid_from_rows([["crown", "gun", "crown"]]))
        self.assertEqual(variant.payout(matches, 10), 200)

    def test_atlantis_wave_lines(self):
        variant = get_variant("atlantis")
        grid = grid_from_rows([
            ["shell", "crab", "fish", "octopus", "shell"],
            ["crab", "fish", "crab", "shell", "fish"],
            ["fish", "octopus", "shell", "crab", "octopus"],
        ])
        matches = variant.evaluate(grid)
        self.assertEqual([m.line_id for m in matches], ["wave:Crest"])
        self.assertEqual(variant.payout(matches, 10), 50)

    def test_schema_rejects_unknown_streak_symbol_and_loss_trigger(self):
        data = json.loads(json.dumps(CLASSIC))
        data["bonus"] = {"streak": {"levels": [1, 2], "symbols": {"unicorn": 1}}}
        with self.assertRaises(ValidationError):
            SlotVariantSpec.model_validate(data)
        data["bonus"] = {"loss_triggers": {3: "nope"}}
        with self.assertRaises(ValidationError):
            SlotVariantSpec.model_validate(data)
        data["bonus"] = {"streak": {"levels": [1, 0]}}
        with self.assertRaises(ValidationError):
            SlotVariantSpec.model_validate(data)

    def test_load_variant_from_json(self):
        data = json.loads(json.dumps(CLASSIC))
        data["game_id"] = "classic_json"
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "variant.json"
            path.write_text(json.dumps(data), encoding="utf-8")
            variant = load_variant_file(path)
        self.assertIs(get_variant("classic_json"), variant)

    def test_audit_flags_divergent_tiers_and_policies(self):
        with self.assertLogs("casinocore.engine", level="WARNING"):
            findings = audit_variants(["advanced", "ghost_pirate", "egyptian", "classic"])
        aspects = {f.aspect for f in findings}
        self.assertIn("tiers", aspects)
        self.assertIn("policy", aspects)      # advanced vs ghost_pirate on 5x3
        self.assertIn("min_run", aspects)     # classic pays pairs

    def test_simulated_rtp_is_reported(self):
        result = simulate_variant("advanced", n_spins=2_000, wager=10, seed=3)
        self.assertEqual(result.total_wagered, 20_000)
        self.assertGreaterEqual(result.rtp, 0)
        self.assertIn("line", result.group_hits)


if __name__ == "__main__":
    unittest.main(verbosity=2)
