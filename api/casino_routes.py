"""
CASINOCORE - Casino API Blueprint

JSON endpoints over the shared ledger and the game sessions.
Registered by web_app.create_app() at /api/casino.

    GET  /api/casino/balance
    GET  /api/casino/transactions?limit=50
    POST /api/casino/credit                    {"amount": 1000}
    POST /api/casino/default-wager             {"amount": 25}
    GET  /api/casino/variants
    POST /api/casino/slots/<variant>/spin      {"wager": 10}
    POST /api/casino/slots/<variant>/effects   {"name": "overclock"}
    POST /api/casino/roulette/bet              {"bet": "red", "amount": 10}
    POST /api/casino/roulette/spin
    POST /api/casino/craps/bet                 {"bet": "pass_line", "amount": 10}
    POST /api/casino/craps/roll
    POST /api/casino/blackjack/<action>        deal | hit | stand | double | new
    POST /api/casino/poker/<action>            deal | draw | new
"""

import logging
import threading

from flask import Blueprint, current_app, jsonify, request

from ledger.errors import InsufficientFunds, InvalidAmount
from sim_engine.errors import InvalidBet, InvalidGameState, InvalidPaytable
from sim_engine.games import get_game_session
from sim_engine.paytables import VARIANT_IDS, get_variant

logger = logging.getLogger("casinocore.api")

casino_bp = Blueprint("casino", __name__, url_prefix="/api/casino")


class CasinoRuntime:
    """Ledger + one lazily created session per game, stored on the app."""

    def __init__(self, ledger):
        self.ledger = ledger
        self.sessions = {}
        self.lock = threading.RLock()

    def session(self, game_type: str, variant: str = None):
        key = (game_type, variant)
        with self.lock:
            if key not in self.sessions:
                kwargs = {"variant": variant} if variant else {}
                self.sessions[key] = get_game_session(game_type, self.ledger, **kwargs)
            session = self.sessions[key]
        session.activate()
        return session


def _runtime() -> CasinoRuntime:
    return current_app.extensions["casino"]


def _body() -> dict:
    return request.get_json(silent=True) or {}


# ═══════════════════════════════════════════════
# Error mapping
# ═══════════════════════════════════════════════

@casino_bp.errorhandler(InsufficientFunds)
def _insufficient(e):
    return jsonify({"error": str(e), "balance": e.available}), 409


@casino_bp.errorhandler(InvalidGameState)
def _bad_state(e):
    return jsonify({"error": str(e)}), 409


@casino_bp.errorhandler(InvalidAmount)
@casino_bp.errorhandler(InvalidBet)
def _bad_request(e):
    return jsonify({"error": str(e)}), 400


@casino_bp.errorhandler(InvalidPaytable)
def _bad_paytable(e):
    logger.error(f"Paytable rejected: {e}")
    return jsonify({"error": str(e)}), 503


# ═══════════════════════════════════════════════
# Ledger
# ═══════════════════════════════════════════════

@casino_bp.route("/balance")
def api_balance():
    ledger = _runtime().ledger
    return jsonify({
        "balance": ledger.get_balance(),
        "default_wager": ledger.default_wager,
        "last_active_game": ledger.last_active_game,
    })


@casino_bp.route("/transactions")
def api_transactions():
    limit = request.args.get("limit", 50, type=int)
    ledger = _runtime().ledger
    return jsonify({"transactions": [tx.to_dict() for tx in ledger.transactions(limit)]})


@casino_bp.route("/credit", methods=["POST"])
def api_credit():
    ledger = _runtime().ledger
    tx = ledger.credit(_body().get("amount", 1000), cause="free_credits")
    return jsonify({"balance": ledger.get_balance(), "transaction": tx.to_dict()})


@casino_bp.route("/default-wager", methods=["POST"])
def api_default_wager():
    ledger = _runtime().ledger
    ledger.set_default_wager(_body().get("amount"))
    return jsonify({"default_wager": ledger.default_wager})


# ═══════════════════════════════════════════════
# Slots
# ═══════════════════════════════════════════════

@casino_bp.route("/variants")
def api_variants():
    return jsonify({"variants": [get_variant(v).to_dict() for v in VARIANT_IDS]})


def _slot_session(variant: str):
    if variant not in VARIANT_IDS:
        return None
    return _runtime().session("slots", variant)


@casino_bp.route("/slots/<variant>/spin", methods=["POST"])
def api_slot_spin(variant):
    session = _slot_session(variant)
    if session is None:
        return jsonify({"error": f"Unknown slot variant: {variant}"}), 404
    with _runtime().lock:
        result = session.spin(_body().get("wager"))
    return jsonify(result.to_dict())


@casino_bp.route("/slots/<variant>/effects", methods=["POST"])
def api_slot_effect(variant):
    session = _slot_session(variant)
    if session is None:
        return jsonify({"error": f"Unknown slot variant: {variant}"}), 404
    name = _body().get("name", "")
    with _runtime().lock:
        session.trigger(name)
    return jsonify(session.get_metadata())


# ═══════════════════════════════════════════════
# Table games
# ═══════════════════════════════════════════════

@casino_bp.route("/roulette/bet", methods=["POST"])
def api_roulette_bet():
    data = _body()
    session = _runtime().session("roulette")
    with _runtime().lock:
        if session.state.value == "resolved":
            session.next_round()
        session.place_bet(data.get("bet", ""), data.get("amount", 0))
    return jsonify(session.view())


@casino_bp.route("/roulette/spin", methods=["POST"])
def api_roulette_spin():
    session = _runtime().session("roulette")
    with _runtime().lock:
        outcome = session.spin()
    return jsonify({**outcome.to_dict(), "balance": _runtime().ledger.get_balance()})


@casino_bp.route("/craps/bet", methods=["POST"])
def api_craps_bet():
    data = _body()
    session = _runtime().session("craps")
    with _runtime().lock:
        session.place_bet(data.get("bet", ""), data.get("amount", 0))
    return jsonify(session.view())


@casino_bp.route("/craps/roll", methods=["POST"])
def api_craps_roll():
    session = _runtime().session("craps")
    with _runtime().lock:
        result = session.roll()
    return jsonify({**result.to_dict(), "balance": _runtime().ledger.get_balance()})


@casino_bp.route("/blackjack/<action>", methods=["POST"])
def api_blackjack(action):
    session = _runtime().session("blackjack")
    with _runtime().lock:
        if action == "deal":
            view = session.deal(_body().get("bet", 0))
        elif action == "hit":
            view = session.hit()
        elif action == "stand":
            view = session.stand()
        elif action == "double":
            view = session.double_down()
        elif action == "new":
            session.new_round()
            view = session.view()
        else:
            return jsonify({"error": f"Unknown blackjack action: {action}"}), 404
    return jsonify(view)


@casino_bp.route("/poker/<action>", methods=["POST"])
def api_poker(action):
    session = _runtime().session("video_poker")
    with _runtime().lock:
        if action == "deal":
            view = session.deal(_body().get("bet", 0))
        elif action == "draw":
            view = session.draw(_body().get("hold", []))
        elif action == "new":
            session.new_round()
            view = session.view()
        else:
            return jsonify({"error": f"Unknown poker action: {action}"}), 404
    return jsonify(view)
