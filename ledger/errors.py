"""
CASINOCORE - Ledger Errors

Every balance-affecting failure is local and recoverable: a failed wager
leaves the balance untouched.
"""


class CasinoError(Exception):
    """Base class for all casino errors."""


class InsufficientFunds(CasinoError):
    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient balance: requested {requested}, available {available}"
        )


class InvalidAmount(CasinoError):
    """Negative, non-integral or non-finite amount passed to the ledger."""


class PersistenceFailure(CasinoError):
    def __init__(self, key: str, attempts: int, cause: Exception = None):
        self.key = key
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Persisting '{key}' failed after {attempts} attempt(s): {cause}")


class CorruptedPersistedState(CasinoError):
    def __init__(self, key: str, raw_value):
        self.key = key
        self.raw_value = raw_value
        super().__init__(f"Stored value for '{key}' is unreadable: {raw_value!r}")
