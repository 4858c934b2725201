"""Console, session-log and text rendering for tracked wallets."""

from .console import ConsoleReporter
from .formatter import format_performance, format_trade
from .session_log import SessionLog

__all__ = ["ConsoleReporter", "SessionLog", "format_performance", "format_trade"]
