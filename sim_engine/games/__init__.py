"""
CASINOCORE - Game Sessions

One session per active game. Every session takes the shared WagerLedger
as a constructor argument.

Usage:
    from sim_engine.games import get_game_session
    session = get_game_session("craps", ledger)
    session.place_bet("pass_line", 10)
    result = session.roll()
"""

from sim_engine.games.blackjack import BlackjackSession
from sim_engine.games.craps import CrapsSession
from sim_engine.games.roulette import RouletteSession
from sim_engine.games.slots import SlotSession
from sim_engine.games.video_poker import VideoPokerSession

GAME_SESSIONS = {
    "slots": SlotSession,
    "blackjack": BlackjackSession,
    "craps": CrapsSession,
    "roulette": RouletteSession,
    "video_poker": VideoPokerSession,
}

GAME_TYPES = list(GAME_SESSIONS.keys())


def get_game_session(game_type: str, ledger, **kwargs):
    """Create a session for a game type. Slot variants: get_game_session("slots", ledger, variant="cyber")."""
    cls = GAME_SESSIONS.get(game_type.lower())
    if cls is None:
        raise ValueError(f"Unknown game type: {game_type}. Available: {GAME_TYPES}")
    return cls(ledger, **kwargs)
