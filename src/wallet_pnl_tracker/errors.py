"""Exception hierarchy for the wallet tracker."""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for tracker failures."""


class ConfigurationError(TrackerError):
    """Raised when the configuration cannot support a run (e.g. no wallets)."""


class SourceConnectionError(TrackerError):
    """Raised when the transaction stream cannot be (re)established.

    Retryable from the caller's point of view; ledger state is unaffected.
    """


class PricerError(TrackerError):
    """Internal pricer transport failure. Never escapes the public pricer API."""


__all__ = ["TrackerError", "ConfigurationError", "SourceConnectionError", "PricerError"]
