"""
Error taxonomy for CrashPilot.

Everything raised at an I/O boundary is one of these. The loops catch them,
report them, back off and carry on. Only ConfigurationError is fatal, and
only at startup.
"""

from typing import Optional


class CrashPilotError(Exception):
    """Base class for all CrashPilot errors."""


class ConfigurationError(CrashPilotError):
    """Missing or malformed identity / address settings."""


class TransientReadError(CrashPilotError):
    """Network or RPC hiccup while reading ledger state. Safe to retry."""


class InvalidRoundDataError(CrashPilotError):
    """A round record came back with an unexpected shape."""


class SubmissionError(CrashPilotError):
    """A transaction was rejected or never confirmed."""

    def __init__(self, message: str, function_id: str = "",
                 tx_hash: Optional[str] = None):
        super().__init__(message)
        self.function_id = function_id
        self.tx_hash = tx_hash


class RoundTransitionTimeout(CrashPilotError):
    """The round id did not advance within the retry budget."""

    def __init__(self, round_id: int, attempts: int):
        super().__init__(
            f"Round {round_id} did not transition after {attempts} attempts"
        )
        self.round_id = round_id
        self.attempts = attempts
