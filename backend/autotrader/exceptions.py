"""
Domain exceptions for the trading engine.

Gateway adapters raise these instead of transport-level exceptions so the
orchestrator can decide, per error class, whether a failure is isolated to
one instrument/position or fatal for the whole cycle.
"""


class EngineError(Exception):
    """Base engine error."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(EngineError):
    """Missing or invalid configuration (fatal, raised before any work)."""


class GatewayError(EngineError):
    """Execution venue call failed."""


class GatewayTimeoutError(GatewayError):
    """Execution venue did not answer in time."""


class GatewayRejectedError(GatewayError):
    """Execution venue rejected the request (bad order, unknown position)."""


class GatewayUnavailableError(GatewayError):
    """Execution venue unreachable or failing server-side."""


class AccountUnavailableError(EngineError):
    """Account state could not be read (fatal for the cycle)."""

    def __init__(self, message: str = "Could not fetch account information"):
        super().__init__(message)


class InsufficientDataError(EngineError):
    """Not enough price bars for analysis (informational skip)."""

    def __init__(self, instrument: str, got: int, required: int):
        self.instrument = instrument
        self.got = got
        self.required = required
        super().__init__(f"Insufficient data for {instrument}: got {got} bars, need {required}")


class AccountBusyError(EngineError):
    """Another cycle already holds the lease on this account."""

    def __init__(self, account_ref: str):
        self.account_ref = account_ref
        super().__init__(f"Cycle already running for account {account_ref}")


class LedgerError(EngineError):
    """Trade ledger read/write failed."""
