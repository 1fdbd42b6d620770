#!/usr/bin/env python3
"""
CASINOCORE - Game Session Tests

Run: python tests_games.py
     python -m pytest tests_games.py -v

Test categories:
  TestSlotSession       — state machine, stake/payout through the ledger, bonus effects, streaks
  TestCraps             — come-out, point, seven-out, one-roll bets, hardways, place bets
  TestBlackjack         — naturals, push, bust, dealer draws to 17, double down
  TestRoulette          — pocket settlement, zero, bet parsing
  TestVideoPoker        — hand ranking and dealer comparison
  TestSessionRegistry   — game type lookup
"""

import random
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from ledger import InsufficientFunds, InvalidAmount, WagerLedger
from sim_engine.errors import InvalidBet, InvalidGameState
from sim_engine.games import GAME_TYPES, get_game_session
from sim_engine.games.blackjack import BlackjackSession, BlackjackState, Outcome, hand_value
from sim_engine.games.cards import Card
from sim_engine.games.craps import BetType, CrapsSession, CrapsState, Resolution
from sim_engine.games.roulette import RED_NUMBERS, RouletteBet, RouletteSession, RouletteState, color_of
from sim_engine.games.slots import SlotSession, SlotState
from sim_engine.games.video_poker import HandRank, PokerState, VideoPokerSession, evaluate_hand


def cards(*codes):
    """'AS', '10H', 'KD' -> [Card]."""
    suits = {"S": "spades", "H": "hearts", "D": "diamonds", "C": "clubs"}
    return [Card(code[:-1], suits[code[-1]]) for code in codes]


def stack_deck(session, order):
    """Make the next reshuffle deal `order` front to back."""
    def reshuffle():
        session.deck.cards = list(reversed(order))
    session.deck.reshuffle = reshuffle


def grid_of(*rows):
    """Row-major literal -> grid[reel][row]."""
    return tuple(tuple(row[reel] for row in rows) for reel in range(len(rows[0])))


# 5x4, robots across the second row and nothing else
CYBER_WIN = grid_of(["floppy", "pager", "cassette", "computer", "lock"],
                    ["robot", "robot", "robot", "robot", "robot"],
                    ["power", "network", "floppy", "pager", "cassette"],
                    ["computer", "lock", "power", "network", "satellite"])
CYBER_LOSE = grid_of(["floppy", "pager", "cassette", "computer", "lock"],
                     ["network", "cassette", "lock", "floppy", "decrypt"],
                     ["power", "network", "floppy", "pager", "cassette"],
                     ["computer", "lock", "power", "network", "satellite"])

# three shells from the left on the top row
ATLANTIS_WIN = grid_of(["shell", "shell", "shell", "fish", "crab"],
                       ["crab", "octopus", "fish", "shell", "mermaid"],
                       ["fish", "crab", "octopus", "mermaid", "shell"])
ATLANTIS_LOSE = grid_of(["shell", "fish", "crab", "octopus", "mermaid"],
                        ["fish", "crab", "octopus", "mermaid", "shell"],
                        ["crab", "octopus", "mermaid", "shell", "fish"])

SPECIAL_ED_LOSE = grid_of(["notebook", "pencil", "puzzle", "brain", "teddy"],
                          ["pencil", "puzzle", "brain", "teddy", "focus"],
                          ["puzzle", "brain", "teddy", "focus", "star"])


# ============================================================
# Slots
# ============================================================

class TestSlotSession(unittest.TestCase):

    def setUp(self):
        self.ledger = WagerLedger(balance=1000)

    def session(self, variant="advanced", seed=1):
        return SlotSession(self.ledger, variant, rng=random.Random(seed))

    def test_spin_debits_wager_and_credits_payout(self):
        session = self.session()
        result = session.spin(10)
        self.assertEqual(self.ledger.get_balance(), 1000 - 10 + result.payout)
        self.assertEqual(result.balance, self.ledger.get_balance())
        self.assertIs(session.state, SlotState.IDLE)
        self.assertEqual(len(session.history), 1)
        self.assertEqual(len(result.grid), 5)
        self.assertEqual(len(result.grid[0]), 3)

    def test_many_spins_keep_books_balanced(self):
        session = self.session(seed=9)
        paid = sum(session.spin(10).payout for _ in range(50))
        self.assertEqual(self.ledger.get_balance(), 1000 - 500 + paid)

    def test_default_wager_is_used(self):
        self.ledger.set_default_wager(7)
        result = self.session().spin()
        self.assertEqual(result.wager, 7)
        self.assertEqual(self.ledger.transactions()[0].delta, -7)

    def test_failed_debit_returns_to_idle(self):
        """Wager above balance: InsufficientFunds, Idle, nothing drawn or paid."""
        ledger = WagerLedger(balance=5)
        session = SlotSession(ledger, "classic", rng=random.Random(1))
        with self.assertRaises(InsufficientFunds):
            session.spin(10)
        self.assertIs(session.state, SlotState.IDLE)
        self.assertEqual(ledger.get_balance(), 5)
        self.assertEqual(session.history, [])

    def test_invalid_wager(self):
        session = self.session()
        for bad in (0, -5, 2.5):
            with self.assertRaises(InvalidAmount):
                session.spin(bad)
        self.assertIs(session.state, SlotState.IDLE)

    def test_failure_after_wager_resets_to_idle(self):
        """A draw that blows up after the debit refunds the stake."""
        session = self.session()
        with patch.object(session.generator, "draw", side_effect=RuntimeError("rng failed")):
            with self.assertLogs("casinocore.slots", level="ERROR"):
                with self.assertRaises(RuntimeError):
                    session.spin(10)
        self.assertIs(session.state, SlotState.IDLE)
        self.assertEqual(self.ledger.get_balance(), 1000)
        self.assertEqual([t.delta for t in self.ledger.transactions()], [-10, 10])
        self.assertEqual(self.ledger.transactions()[-1].cause, "slots:advanced:refund")
        self.assertEqual(session.history, [])
        result = session.spin(10)
        self.assertEqual(self.ledger.get_balance(), 990 + result.payout)

    def test_failure_on_free_spin_gives_it_back(self):
        session = self.session("cyber")
        session.trigger("backdoor")
        with patch.object(session.generator, "draw", side_effect=RuntimeError("rng failed")):
            with self.assertLogs("casinocore.slots", level="ERROR"):
                with self.assertRaises(RuntimeError):
                    session.spin(10)
        self.assertEqual(session.free_spins, 5)
        self.assertEqual(self.ledger.get_balance(), 1000)
        self.assertIs(session.state, SlotState.IDLE)
        session.spin(10)

    def test_activate_records_last_game(self):
        self.session("cyber").activate()
        self.assertEqual(self.ledger.last_active_game, "slots:cyber")

    def test_free_spins_skip_the_debit(self):
        session = self.session("cyber")
        with patch.object(session, "_roll_triggers", return_value=[]):
            session.trigger("backdoor")
            self.assertEqual(session.free_spins, 5)
            result = session.spin(10)
        self.assertTrue(result.free_spin)
        self.assertEqual(session.free_spins, 4)
        self.assertEqual(self.ledger.get_balance(), 1000 + result.payout)
        self.assertEqual(session.history[-1].wagered, 0)

    def test_memory_leak_drains_each_spin(self):
        session = self.session("cyber")
        with patch.object(session, "_roll_triggers", return_value=[]):
            session.trigger("memory_leak")
            result = session.spin(10)
        self.assertEqual(result.drained, 5)
        self.assertEqual(self.ledger.get_balance(), 1000 - 10 + result.payout - 5)

    def test_root_access_guarantees_network_exploit(self):
        session = self.session("cyber", seed=4)
        with patch.object(session, "_roll_triggers", return_value=[]):
            session.trigger("root_access")
            result = session.spin(10)
        exploit = [m for m in result.matches if m.line_id == "pattern:Network Exploit"]
        self.assertEqual(len(exploit), 1)
        self.assertEqual(exploit[0].symbol_id, "robot")
        self.assertGreater(result.payout, 0)

    def test_timed_effect_expires(self):
        session = self.session("cyber")
        with patch.object(session, "_roll_triggers", return_value=[]):
            session.trigger("overclock")
            expired = [session.spin(10).expired for _ in range(3)]
        self.assertEqual(expired, [[], [], ["overclock"]])
        self.assertFalse(session.effects.has("overclock"))

    def test_unknown_effect(self):
        with self.assertRaises(InvalidBet):
            self.session("classic").trigger("overclock")

    # ── bonus mechanics, with the draw and the rolls pinned ──

    def glitch(self, session, name):
        return next(g for g in session.variant.bonus.glitches if g.name == name)

    def pinned_glitch(self, session, name, cell):
        """Force exactly one glitch of `name` on `cell` this spin."""
        return (
            patch.object(session.rng, "random", return_value=0.0),
            patch.object(session.rng, "randint", return_value=1),
            patch.object(session.rng, "sample", return_value=[cell]),
            patch.object(session.rng, "choices", return_value=[self.glitch(session, name)]),
            patch.object(session, "_roll_triggers", return_value=[]),
        )

    def spin_with(self, session, grid, patches=(), wager=10):
        with patch.object(session.generator, "draw", return_value=grid):
            for p in patches:
                p.start()
            try:
                return session.spin(wager)
            finally:
                for p in patches:
                    p.stop()

    def test_virus_glitch_blocks_cell_and_subtracts(self):
        session = self.session("cyber")
        # glitch lands on the first robot, the run drops to 4
        result = self.spin_with(session, CYBER_WIN, self.pinned_glitch(session, "virus", (0, 1)))
        self.assertEqual(result.blocked, [(0, 1)])
        self.assertEqual([(m.line_id, m.run_length) for m in result.matches], [("row:2", 4)])
        self.assertEqual(result.payout, 10 * 25 * 3 - 20)
        self.assertIn("virus", [m.name for m in result.modifiers])

    def test_virus_glitch_never_pays_negative(self):
        session = self.session("cyber")
        result = self.spin_with(session, CYBER_LOSE, self.pinned_glitch(session, "virus", (2, 2)))
        self.assertEqual(result.payout, 0)
        self.assertEqual(self.ledger.get_balance(), 990)

    def test_key_glitch_pays_without_a_match(self):
        session = self.session("cyber")
        result = self.spin_with(session, CYBER_LOSE, self.pinned_glitch(session, "key", (2, 2)))
        self.assertEqual(result.matches, [])
        self.assertEqual(result.payout, 50)
        self.assertEqual(self.ledger.get_balance(), 1040)

    def test_multiplier_glitch_doubles(self):
        session = self.session("cyber")
        result = self.spin_with(session, CYBER_WIN, self.pinned_glitch(session, "multiplier", (0, 0)))
        self.assertEqual(result.payout, 10 * 25 * 10 * 2)

    def test_refresh_glitch_redraws_its_reel(self):
        session = self.session("cyber")
        patches = self.pinned_glitch(session, "refresh", (0, 1))
        with patch.object(session.generator, "draw", side_effect=[CYBER_WIN, CYBER_LOSE]):
            for p in patches:
                p.start()
            try:
                result = session.spin(10)
            finally:
                for p in patches:
                    p.stop()
        self.assertEqual(result.grid[0], CYBER_LOSE[0])
        self.assertEqual(result.grid[1:], CYBER_WIN[1:])
        self.assertEqual(result.payout, 10 * 25 * 3)

    def test_firewall_keeps_glitches_out(self):
        session = self.session("cyber")
        session.trigger("firewall")
        patches = self.pinned_glitch(session, "virus", (0, 1))
        result = self.spin_with(session, CYBER_WIN, patches)
        self.assertEqual(result.blocked, [])
        self.assertEqual(result.payout, 10 * 25 * 10)

    def test_kernel_panic_freezes_cells(self):
        session = self.session("cyber")
        session.trigger("kernel_panic")
        frozen = [(1, 1), (2, 1), (3, 1)]
        patches = (
            patch.object(session.rng, "random", return_value=0.99),
            patch.object(session.rng, "sample", return_value=frozen),
            patch.object(session, "_roll_triggers", return_value=[]),
        )
        result = self.spin_with(session, CYBER_WIN, patches)
        self.assertEqual(result.blocked, frozen)
        self.assertEqual(result.matches, [])
        self.assertEqual(result.payout, 0)

    def test_triggers_roll_after_settlement(self):
        session = self.session("cyber")
        patches = (
            # glitch roll misses, then debuff, power-up and hidden mode all hit
            patch.object(session.rng, "random", side_effect=[0.99, 0.0, 0.0, 0.0]),
            patch.object(session.rng, "choices", side_effect=lambda pool, weights: [pool[0]]),
        )
        result = self.spin_with(session, CYBER_LOSE, patches)
        self.assertEqual(result.triggered, ["virus", "overclock", "backdoor"])
        self.assertEqual(session.free_spins, 5)
        self.assertTrue(session.effects.has("overclock"))
        self.assertEqual(result.payout, 0)

    def test_lucky_charm_wheel_on_a_win(self):
        session = self.session("lucky_charm")
        ten_x = session.variant.bonus.multipliers[-1]
        patches = (
            patch.object(session.rng, "random", return_value=0.0),
            patch.object(session.rng, "choices", return_value=[ten_x]),
        )
        result = self.spin_with(session, (("hat",),) * 4, patches)
        self.assertEqual(result.payout, 10 * 100 * 10)
        self.assertIn("multiplier", [m.name for m in result.modifiers])

    def test_lucky_charm_wheel_skips_non_paying_draws(self):
        session = self.session("lucky_charm")
        pair = (("hat",), ("hat",), ("clover",), ("rainbow",))
        with patch.object(session.rng, "choices") as choices:
            result = self.spin_with(session, pair,
                                    (patch.object(session.rng, "random", return_value=0.0),))
        choices.assert_not_called()
        self.assertEqual(result.matches, [])
        self.assertEqual(result.modifiers, [])
        self.assertEqual(result.payout, 0)

    # ── streaks ──

    def test_atlantis_tide_rises_on_second_win_and_recedes_on_loss(self):
        session = self.session("atlantis")
        results = [self.spin_with(session, grid)
                   for grid in (ATLANTIS_WIN, ATLANTIS_WIN, ATLANTIS_WIN, ATLANTIS_LOSE)]
        self.assertEqual([r.payout for r in results], [20, 20, 40, 0])
        self.assertEqual([r.streak_level for r in results], [0, 1, 1, 0])
        self.assertEqual(self.ledger.get_balance(), 1000 - 40 + 80)

    def test_atlantis_symbol_floods_to_top_level(self):
        session = self.session("atlantis")
        jackpot = grid_of(["atlantis", "atlantis", "atlantis", "fish", "crab"],
                          ["crab", "octopus", "fish", "shell", "mermaid"],
                          ["fish", "crab", "octopus", "mermaid", "shell"])
        first = self.spin_with(session, jackpot)
        self.assertEqual((first.payout, first.streak_level), (1000, 3))
        self.assertEqual(session.get_metadata()["streak_multiplier"], 5)
        self.assertEqual(self.spin_with(session, ATLANTIS_WIN).payout, 100)

    def test_hood_rich_heat_builds_with_spins_and_police_resets_it(self):
        session = self.session("hood_rich")
        cold = grid_of(["cash", "gun", "hood"])
        for _ in range(10):
            result = self.spin_with(session, cold)
        self.assertEqual(result.streak_level, 1)

        crowns = self.spin_with(session, grid_of(["crown", "gun", "crown"]))
        self.assertEqual(crowns.payout, 300)          # 10 * 100 * 0.2 * 1.5
        self.assertEqual(crowns.streak_level, 2)

        busted = self.spin_with(session, grid_of(["police", "cash", "police"]))
        self.assertEqual(busted.payout, 0)
        self.assertEqual(busted.streak_level, 0)

    def test_special_ed_losing_run_grants_attempts_then_a_win(self):
        session = self.session("special_ed")
        results = [self.spin_with(session, SPECIAL_ED_LOSE) for _ in range(7)]
        self.assertEqual(results[3].triggered, ["extra_attempts"])
        self.assertEqual([r.free_spin for r in results[4:6]], [True, True])
        self.assertEqual(results[5].triggered, ["iep"])

        last = results[6]
        self.assertEqual([m.line_id for m in last.matches], ["line:Middle Row"])
        self.assertEqual(last.matches[0].symbol_id, "brain")
        self.assertEqual(last.payout, 270)            # 10 * 6 * 3 * 1.5
        self.assertEqual(session.loss_streak, 0)
        self.assertEqual(self.ledger.get_balance(), 1000 - 50 + 270)


# ============================================================
# Craps
# ============================================================

class TestCraps(unittest.TestCase):

    def setUp(self):
        self.ledger = WagerLedger(balance=1000)
        self.craps = CrapsSession(self.ledger, rng=random.Random(1))

    def test_come_out_seven(self):
        """Pass wins even money, don't pass loses, still on the come-out."""
        self.craps.place_bet("pass_line", 10)
        self.craps.place_bet("dont_pass", 10)
        result = self.craps.roll((3, 4))
        self.assertIs(result.settlement(BetType.PASS_LINE).resolution, Resolution.WIN)
        self.assertEqual(result.settlement(BetType.PASS_LINE).returned, 20)
        self.assertIs(result.settlement(BetType.DONT_PASS).resolution, Resolution.LOSE)
        self.assertIs(self.craps.state, CrapsState.COME_OUT)
        self.assertIsNone(self.craps.point)
        self.assertEqual(self.ledger.get_balance(), 1000)

    def test_come_out_craps(self):
        self.craps.place_bet("pass_line", 10)
        self.craps.place_bet("dont_pass", 10)
        result = self.craps.roll((1, 2))
        self.assertIs(result.settlement(BetType.PASS_LINE).resolution, Resolution.LOSE)
        self.assertIs(result.settlement(BetType.DONT_PASS).resolution, Resolution.WIN)

    def test_come_out_twelve_pushes_dont_pass(self):
        self.craps.place_bet("pass_line", 10)
        self.craps.place_bet("dont_pass", 10)
        result = self.craps.roll((6, 6))
        self.assertIs(result.settlement(BetType.DONT_PASS).resolution, Resolution.PUSH)
        self.assertEqual(self.ledger.get_balance(), 990)

    def test_point_made(self):
        self.craps.place_bet("pass_line", 10)
        self.craps.roll((2, 2))
        self.assertIs(self.craps.state, CrapsState.POINT)
        self.assertEqual(self.craps.point, 4)
        result = self.craps.roll((1, 3))
        self.assertIs(result.settlement(BetType.PASS_LINE).resolution, Resolution.WIN)
        self.assertIs(self.craps.state, CrapsState.COME_OUT)
        self.assertEqual(self.ledger.get_balance(), 1010)

    def test_seven_out(self):
        self.craps.place_bet("pass_line", 10)
        self.craps.place_bet("dont_pass", 10)
        self.craps.roll((3, 3))
        result = self.craps.roll((5, 2))
        self.assertIs(result.settlement(BetType.PASS_LINE).resolution, Resolution.LOSE)
        self.assertIs(result.settlement(BetType.DONT_PASS).resolution, Resolution.WIN)
        self.assertIs(self.craps.state, CrapsState.COME_OUT)

    def test_other_totals_during_point_leave_line_bets_up(self):
        self.craps.place_bet("pass_line", 10)
        self.craps.roll((3, 3))
        result = self.craps.roll((4, 5))
        self.assertIsNone(result.settlement(BetType.PASS_LINE))
        self.assertEqual(self.craps.bets[BetType.PASS_LINE], 10)

    def test_field_pays_double_on_two(self):
        self.craps.place_bet("field", 10)
        self.assertEqual(self.craps.roll((1, 1)).returned, 30)
        self.craps.place_bet("field", 10)
        self.assertEqual(self.craps.roll((2, 3)).returned, 0)

    def test_any_seven(self):
        self.craps.place_bet("any_7", 10)
        self.assertEqual(self.craps.roll((3, 4)).returned, 50)

    def test_hardways(self):
        self.craps.place_bet("hard_8", 10)
        self.assertEqual(self.craps.roll((4, 4)).returned, 100)
        self.craps.place_bet("hard_8", 10)
        result = self.craps.roll((5, 3))
        self.assertIs(result.settlement(BetType.HARD_8).resolution, Resolution.LOSE)

    def test_place_six_pays_seven_to_six(self):
        self.craps.roll((2, 2))
        self.craps.place_bet("place_6", 12)
        self.assertEqual(self.craps.roll((3, 3)).returned, 26)

    def test_place_bets_lose_on_seven(self):
        self.craps.roll((2, 2))
        self.craps.place_bet("place_9", 10)
        result = self.craps.roll((3, 4))
        self.assertIs(result.settlement(BetType.PLACE_9).resolution, Resolution.LOSE)

    def test_contract_bets_are_locked_during_point(self):
        self.craps.place_bet("pass_line", 10)
        self.craps.roll((2, 2))
        with self.assertRaises(InvalidBet):
            self.craps.remove_bet("pass_line")
        with self.assertRaises(InvalidBet):
            self.craps.place_bet("dont_pass", 10)

    def test_remove_bet_refunds(self):
        self.craps.place_bet("field", 10)
        self.assertEqual(self.craps.remove_bet("field"), 10)
        self.assertEqual(self.ledger.get_balance(), 1000)

    def test_invalid_input(self):
        with self.assertRaises(InvalidBet):
            self.craps.place_bet("buy_4", 10)
        with self.assertRaises(InvalidBet):
            self.craps.roll((0, 7))
        with self.assertRaises(InsufficientFunds):
            self.craps.place_bet("pass_line", 5000)


# ============================================================
# Blackjack
# ============================================================

class TestBlackjack(unittest.TestCase):

    def setUp(self):
        self.ledger = WagerLedger(balance=1000)
        self.bj = BlackjackSession(self.ledger, rng=random.Random(1))

    def deal(self, order, bet=10):
        stack_deck(self.bj, cards(*order))
        return self.bj.deal(bet)

    def test_hand_values(self):
        self.assertEqual(hand_value(cards("AS", "AH", "9D")), 21)
        self.assertEqual(hand_value(cards("AS", "KH", "5D")), 16)
        self.assertEqual(hand_value(cards("AS", "KH")), 21)

    def test_natural_pays_three_to_two(self):
        view = self.deal(["AS", "KH", "9D", "7C"])
        self.assertEqual(view["outcome"], Outcome.BLACKJACK.value)
        self.assertEqual(view["returned"], 25)
        self.assertEqual(self.ledger.get_balance(), 1015)
        self.assertIs(self.bj.state, BlackjackState.RESOLVED)

    def test_natural_payout_is_floored(self):
        self.deal(["AS", "KH", "9D", "7C"], bet=5)
        self.assertEqual(self.bj.returned, 12)

    def test_both_naturals_push(self):
        view = self.deal(["AS", "KH", "AD", "QC"])
        self.assertEqual(view["outcome"], Outcome.PUSH.value)
        self.assertEqual(self.ledger.get_balance(), 1000)

    def test_dealer_draws_to_seventeen(self):
        self.deal(["10S", "9H", "10D", "6C", "5H"])
        view = self.bj.stand()
        self.assertEqual(view["dealer_value"], 21)
        self.assertEqual(view["outcome"], Outcome.LOSE.value)
        self.assertEqual(self.ledger.get_balance(), 990)

    def test_equal_totals_push(self):
        self.deal(["10S", "8H", "10D", "8C"])
        self.assertEqual(self.bj.stand()["outcome"], Outcome.PUSH.value)

    def test_player_bust(self):
        self.deal(["10S", "6H", "10D", "7C", "KH"])
        view = self.bj.hit()
        self.assertEqual(view["outcome"], Outcome.BUST.value)
        self.assertEqual(view["returned"], 0)
        self.assertIs(self.bj.state, BlackjackState.RESOLVED)

    def test_double_down(self):
        self.deal(["5S", "6H", "10D", "7C", "10H"])
        view = self.bj.double_down()
        self.assertEqual(view["bet"], 20)
        self.assertEqual(view["outcome"], Outcome.WIN.value)
        self.assertEqual(self.ledger.get_balance(), 1020)

    def test_double_only_on_first_two_cards(self):
        self.deal(["2S", "3H", "10D", "7C", "4H"])
        self.bj.hit()
        with self.assertRaises(InvalidBet):
            self.bj.double_down()

    def test_actions_out_of_turn(self):
        with self.assertRaises(InvalidGameState):
            self.bj.hit()
        self.deal(["AS", "KH", "9D", "7C"])
        with self.assertRaises(InvalidGameState):
            self.bj.deal(10)
        self.bj.new_round()
        self.assertIs(self.bj.state, BlackjackState.BETTING)


# ============================================================
# Roulette
# ============================================================

class TestRoulette(unittest.TestCase):

    def setUp(self):
        self.ledger = WagerLedger(balance=1000)
        self.wheel = RouletteSession(self.ledger, rng=random.Random(1))

    def test_wheel_colors(self):
        self.assertEqual(len(RED_NUMBERS), 18)
        self.assertEqual(color_of(0), "green")
        self.assertEqual(color_of(32), "red")
        self.assertEqual(color_of(15), "black")

    def test_settles_every_bet_on_one_pocket(self):
        for key in ("red", "straight:32", "dozen:3", "odd"):
            self.wheel.place_bet(key, 10)
        outcome = self.wheel.spin(32)
        self.assertEqual(outcome.settlements, {
            "red": 20, "straight:32": 360, "dozen:3": 30, "odd": 0,
        })
        self.assertEqual(self.ledger.get_balance(), 1000 - 40 + 410)
        self.assertIs(self.wheel.state, RouletteState.RESOLVED)

    def test_zero_loses_outside_bets(self):
        for key in ("red", "black", "even", "low", "dozen:1"):
            self.wheel.place_bet(key, 10)
        self.wheel.place_bet("straight:0", 10)
        outcome = self.wheel.spin(0)
        self.assertEqual(outcome.returned, 360)

    def test_round_cycle(self):
        self.wheel.place_bet("high", 10)
        self.wheel.spin(20)
        with self.assertRaises(InvalidGameState):
            self.wheel.place_bet("high", 10)
        self.wheel.next_round()
        self.wheel.place_bet("high", 10)

    def test_clear_bets_refunds(self):
        self.wheel.place_bet("red", 10)
        self.wheel.place_bet("red", 5)
        self.assertEqual(self.wheel.clear_bets(), 15)
        self.assertEqual(self.ledger.get_balance(), 1000)

    def test_bad_bets(self):
        for key in ("purple", "straight:37", "dozen:4", "straight:x", "red:1"):
            with self.assertRaises(InvalidBet):
                RouletteBet.parse(key)
        with self.assertRaises(InvalidBet):
            self.wheel.spin()


# ============================================================
# Video poker
# ============================================================

class TestVideoPoker(unittest.TestCase):

    def test_hand_rankings(self):
        cases = {
            ("10S", "JS", "QS", "KS", "AS"): HandRank.ROYAL_FLUSH,
            ("AH", "2H", "3H", "4H", "5H"): HandRank.STRAIGHT_FLUSH,
            ("9S", "9H", "9D", "9C", "2S"): HandRank.FOUR_OF_A_KIND,
            ("9S", "9H", "9D", "2C", "2S"): HandRank.FULL_HOUSE,
            ("2H", "7H", "9H", "JH", "KH"): HandRank.FLUSH,
            ("AS", "2H", "3D", "4C", "5S"): HandRank.STRAIGHT,
            ("7S", "7H", "7D", "2C", "KS"): HandRank.THREE_OF_A_KIND,
            ("KS", "KH", "4D", "4C", "9S"): HandRank.TWO_PAIR,
            ("JS", "JH", "4D", "6C", "9S"): HandRank.JACKS_OR_BETTER,
            ("10S", "10H", "4D", "6C", "9S"): HandRank.LOW_PAIR,
            ("2S", "5H", "7D", "9C", "JS"): HandRank.HIGH_CARD,
        }
        for hand, rank in cases.items():
            with self.subTest(hand=hand):
                self.assertIs(evaluate_hand(cards(*hand)), rank)

    def _session(self, order):
        ledger = WagerLedger(balance=1000)
        session = VideoPokerSession(ledger, rng=random.Random(1))
        stack_deck(session, cards(*order))
        return ledger, session

    def test_two_pair_beats_dealer_high_card(self):
        ledger, session = self._session(
            ["KS", "KH", "4S", "4H", "9C", "2S", "5H", "7D", "9S", "JC"])
        session.deal(10)
        view = session.draw(hold=[0, 1, 2, 3, 4])
        self.assertTrue(view["result"]["won"])
        self.assertEqual(view["result"]["returned"], 20)
        self.assertEqual(ledger.get_balance(), 1010)
        self.assertIs(session.state, PokerState.RESOLVED)

    def test_low_pair_pays_nothing(self):
        ledger, session = self._session(
            ["4S", "4H", "8S", "10H", "9C", "2S", "5H", "7D", "9S", "JC"])
        session.deal(10)
        view = session.draw(hold=[0, 1, 2, 3, 4])
        self.assertTrue(view["result"]["won"])
        self.assertEqual(view["result"]["returned"], 0)
        self.assertEqual(ledger.get_balance(), 990)

    def test_draw_settles_once(self):
        """A second draw on a resolved hand is refused and credits nothing."""
        ledger, session = self._session(
            ["AS", "AH", "AD", "AC", "9C", "2S", "5H", "7D", "9S", "JC"])
        session.deal(10)
        view = session.draw(hold=[0, 1, 2, 3, 4])
        self.assertEqual(view["result"]["player_rank"], "Four Of A Kind")
        self.assertEqual(ledger.get_balance(), 1000 - 10 + 250)
        self.assertEqual(session.history[-1].returned, 250)
        self.assertTrue(session.history[-1].detail["won"])

        with self.assertRaises(InvalidGameState):
            session.draw(hold=[0, 1, 2, 3, 4])
        self.assertEqual(ledger.get_balance(), 1240)
        self.assertEqual(len(session.history), 1)

    def test_bad_hold_positions(self):
        _, session = self._session(
            ["KS", "KH", "4S", "4H", "9C", "2S", "5H", "7D", "9S", "JC"])
        session.deal(10)
        with self.assertRaises(InvalidBet):
            session.draw(hold=[5])


class TestSessionRegistry(unittest.TestCase):

    def test_every_game_type_builds(self):
        ledger = WagerLedger(balance=100)
        for game_type in GAME_TYPES:
            self.assertEqual(get_game_session(game_type, ledger).ledger, ledger)

    def test_slot_variant_kwarg(self):
        session = get_game_session("slots", WagerLedger(balance=100), variant="lucky_charm")
        self.assertEqual(session.game_type, "slots:lucky_charm")

    def test_unknown_game(self):
        with self.assertRaises(ValueError):
            get_game_session("baccarat", WagerLedger(balance=100))


if __name__ == "__main__":
    unittest.main(verbosity=2)
