"""
Error taxonomy for the arbitrage pipeline.

Callers branch on the class, never on the message:
- ConfigurationError      → fatal at startup, process refuses to run
- TransientProviderError  → log, drop the candidate (or the pass), keep scanning
- DivideByZero / Uint256Overflow → arithmetic on unusable input, drop the candidate
- InvalidTransition       → ledger state machine violated (a bug, not market noise)

Guard rejections and bundle outcomes are NOT exceptions — see
risk.gate.RejectionReason and execution.bundle.BundleOutcome.
"""


class FlashArbError(Exception):
    """Base class for every error raised by flasharb."""


class ConfigurationError(FlashArbError):
    """Missing or malformed required setting."""


class TransientProviderError(FlashArbError):
    """RPC / network failure. Safe to retry on a later tick."""


class PoolUnavailable(TransientProviderError):
    """No pool for the pair, or the reserve read reverted."""


class EstimationFailed(TransientProviderError):
    """Gas estimation failed. Cost is UNKNOWN, which is not the same as zero."""


class RelayError(TransientProviderError):
    """Relay rejected the request or could not be reached."""


class DivideByZero(FlashArbError, ZeroDivisionError):
    """Division by a zero reserve or zero divisor."""


class Uint256Overflow(FlashArbError, OverflowError):
    """Value left the 256-bit range."""


class InvalidTransition(FlashArbError):
    """Bundle outcome would move backwards or out of a terminal state."""
