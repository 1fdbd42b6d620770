#!/usr/bin/env python3
"""
CASINOCORE - API & CLI Tests

Run: python tests_api.py
     python -m pytest tests_api.py -v

Test categories:
  TestCasinoAPI   — Flask routes, error mapping to status codes
  TestCasinoCLI   — argparse commands against a temp database
"""

import sys
import tempfile
import unittest
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.settings import LedgerConfig
from ledger import StateStore, WagerLedger
from ledger.models import BALANCE_KEY
from sim_engine.paytables import VARIANT_IDS
from tools.casino_cli import build_parser, main
from web_app import create_app


# ============================================================
# API
# ============================================================

class TestCasinoAPI(unittest.TestCase):

    def setUp(self):
        self.ledger = WagerLedger(balance=1000)
        app = create_app(ledger=self.ledger)
        app.config["TESTING"] = True
        self.client = app.test_client()

    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["balance"], 1000)

    def test_balance_and_credit(self):
        self.assertEqual(self.client.get("/api/casino/balance").get_json()["balance"], 1000)
        resp = self.client.post("/api/casino/credit", json={"amount": 500})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["balance"], 1500)
        self.assertEqual(resp.get_json()["transaction"]["cause"], "free_credits")

        txs = self.client.get("/api/casino/transactions?limit=5").get_json()["transactions"]
        self.assertEqual(txs[-1]["delta"], 500)

    def test_negative_credit_is_bad_request(self):
        resp = self.client.post("/api/casino/credit", json={"amount": -5})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(self.ledger.get_balance(), 1000)

    def test_default_wager(self):
        resp = self.client.post("/api/casino/default-wager", json={"amount": 25})
        self.assertEqual(resp.get_json()["default_wager"], 25)
        resp = self.client.post("/api/casino/default-wager", json={"amount": 0})
        self.assertEqual(resp.status_code, 400)

    def test_variants(self):
        variants = self.client.get("/api/casino/variants").get_json()["variants"]
        self.assertGreaterEqual(len(variants), 6)
        self.assertEqual({v["game_id"] for v in variants}, set(VARIANT_IDS))

    def test_slot_spin(self):
        resp = self.client.post("/api/casino/slots/advanced/spin", json={"wager": 10})
        self.assertEqual(resp.status_code, 200)
        data = resp.get_json()
        self.assertEqual(len(data["grid"]), 5)
        self.assertEqual(data["balance"], 1000 - 10 + data["payout"])
        self.assertEqual(self.ledger.last_active_game, "slots:advanced")

    def test_slot_spin_insufficient_funds(self):
        resp = self.client.post("/api/casino/slots/classic/spin", json={"wager": 10 ** 9})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.get_json()["balance"], 1000)

    def test_unknown_variant(self):
        resp = self.client.post("/api/casino/slots/nope/spin", json={"wager": 10})
        self.assertEqual(resp.status_code, 404)

    def test_slot_effect_trigger(self):
        resp = self.client.post("/api/casino/slots/cyber/effects", json={"name": "backdoor"})
        self.assertEqual(resp.get_json()["free_spins"], 5)
        resp = self.client.post("/api/casino/slots/cyber/effects", json={"name": "nope"})
        self.assertEqual(resp.status_code, 400)

    def test_roulette_flow(self):
        resp = self.client.post("/api/casino/roulette/bet", json={"bet": "red", "amount": 10})
        self.assertEqual(resp.get_json()["bets"], {"red": 10})
        resp = self.client.post("/api/casino/roulette/spin")
        self.assertEqual(resp.status_code, 200)
        self.assertIn(resp.get_json()["number"], range(37))
        # next bet opens a new round
        resp = self.client.post("/api/casino/roulette/bet", json={"bet": "odd", "amount": 10})
        self.assertEqual(resp.status_code, 200)

    def test_roulette_bad_bet(self):
        resp = self.client.post("/api/casino/roulette/bet", json={"bet": "purple", "amount": 10})
        self.assertEqual(resp.status_code, 400)

    def test_craps_flow(self):
        resp = self.client.post("/api/casino/craps/bet", json={"bet": "pass_line", "amount": 10})
        self.assertEqual(resp.get_json()["bets"], {"pass_line": 10})
        resp = self.client.post("/api/casino/craps/roll")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["total"], sum(resp.get_json()["dice"]))

    def test_blackjack_out_of_turn_is_conflict(self):
        resp = self.client.post("/api/casino/blackjack/hit")
        self.assertEqual(resp.status_code, 409)
        resp = self.client.post("/api/casino/blackjack/split")
        self.assertEqual(resp.status_code, 404)

    def test_blackjack_deal(self):
        resp = self.client.post("/api/casino/blackjack/deal", json={"bet": 10})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.get_json()["player"]), 2)

    def test_poker_round(self):
        self.client.post("/api/casino/poker/deal", json={"bet": 10})
        resp = self.client.post("/api/casino/poker/draw", json={"hold": [0, 1]})
        self.assertEqual(resp.get_json()["state"], "resolved")
        self.assertEqual(self.client.post("/api/casino/poker/new").status_code, 200)


# ============================================================
# CLI
# ============================================================

class TestCasinoCLI(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = str(Path(self._tmp.name) / "casino.db")

    def tearDown(self):
        self._tmp.cleanup()

    def test_parser(self):
        args = build_parser().parse_args(["spin", "cyber", "--wager", "20", "--count", "3"])
        self.assertEqual((args.variant, args.wager, args.count), ("cyber", 20, 3))
        with self.assertRaises(SystemExit):
            build_parser().parse_args(["spin", "nope"])

    def test_credit_persists(self):
        main(["--db", self.db_path, "credit", "50"])
        stored = StateStore(self.db_path).read(BALANCE_KEY)
        self.assertEqual(int(stored.value), LedgerConfig.DEFAULT_BALANCE + 50)

    def test_spin_and_history(self):
        main(["--db", self.db_path, "spin", "classic", "--wager", "5", "--count", "2"])
        txs = StateStore(self.db_path).recent_transactions(10)
        self.assertEqual([t.delta for t in txs if t.cause.endswith(":wager")], [-5, -5])
        main(["--db", self.db_path, "history", "--limit", "5"])

    def test_audit_and_simulate(self):
        main(["audit"])
        main(["simulate", "lucky_charm", "--spins", "500", "--seed", "1"])
        main(["frequencies", "classic", "--draws", "2000", "--seed", "1"])


if __name__ == "__main__":
    unittest.main(verbosity=2)
