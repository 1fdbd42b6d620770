#!/usr/bin/env python3
"""
CASINOCORE - Web App

Flask app serving the casino JSON API. One WagerLedger is created per app
and shared by every game session; a ReconcileLoop keeps it in step with
writes made by other processes against the same database.

Usage:
    python web_app.py
    flask --app web_app:create_app run
"""

import logging
import os

from flask import Flask, jsonify

from api.casino_routes import CasinoRuntime, casino_bp
from config.settings import EngineConfig, LedgerConfig
from ledger import ReconcileLoop, StateStore, WagerLedger

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("casinocore.web")


def create_app(ledger: WagerLedger = None, reconcile: bool = None) -> Flask:
    app = Flask(__name__)

    if ledger is None:
        ledger = WagerLedger.load(StateStore(LedgerConfig.DB_PATH))
        reconcile = True if reconcile is None else reconcile
    app.extensions["casino"] = CasinoRuntime(ledger)
    app.register_blueprint(casino_bp)

    if reconcile and ledger.store is not None:
        loop = ReconcileLoop(ledger)
        loop.start()
        app.extensions["casino_reconcile"] = loop
        logger.info(f"Reconcile loop every {loop.interval}s")

    @app.route("/health")
    def health():
        return jsonify({
            "ok": True,
            "balance": ledger.get_balance(),
            "ledger": LedgerConfig.summary(),
            "engine": EngineConfig.summary(),
        })

    return app


if __name__ == "__main__":
    port = int(os.getenv("PORT", "5000"))
    create_app().run(host="0.0.0.0", port=port, debug=False)
