"""
CASINOCORE - Engine Errors
"""

from ledger.errors import CasinoError


class InvalidPaytable(CasinoError):
    """Paytable failed load-time validation. The game must not be playable."""


class InvalidGameState(CasinoError):
    """Operation attempted in a state that does not allow it."""

    def __init__(self, game_type: str, state, action: str):
        self.game_type = game_type
        self.state = state
        self.action = action
        state_name = getattr(state, "value", state)
        super().__init__(f"{game_type}: cannot {action} while in state '{state_name}'")


class InvalidBet(CasinoError):
    """Unknown bet type or selection."""
