"""Console presentation driven by recorded trades."""

from __future__ import annotations

import sys
import threading
from typing import Optional, Sequence, TextIO

from ..analytics.performance import PerformanceReporter
from ..config.settings import ReportingConfig, get_app_config
from ..monitoring.logger import get_logger
from ..processing.pipeline import ProcessOutcome
from .formatter import format_performance, format_trade, truncate_address
from .session_log import SessionLog


class ConsoleReporter:
    """Trade listener that prints each trade and a periodic dashboard.

    Every ``trades_between_dashboards`` recorded trades the dashboard of the
    wallet that crossed the threshold is printed. Listeners run on that
    wallet's worker thread, so other wallets are only rendered once the
    dispatcher is idle, by an explicit :meth:`print_dashboards`. Everything
    printed is mirrored to the session log when one is attached.
    """

    def __init__(
        self,
        reporter: PerformanceReporter,
        *,
        config: Optional[ReportingConfig] = None,
        session_log: Optional[SessionLog] = None,
        stream: Optional[TextIO] = None,
    ) -> None:
        self._reporter = reporter
        self._config = config or get_app_config().reporting
        self._session_log = session_log
        self._stream = stream or sys.stdout
        self._lock = threading.Lock()
        self._trades_seen = 0
        self._logger = get_logger(__name__)

    @property
    def trades_seen(self) -> int:
        return self._trades_seen

    def __call__(self, outcome: ProcessOutcome) -> None:
        if not outcome.trades:
            return
        with self._lock:
            for trade in outcome.trades:
                self._emit(format_trade(trade, outcome.wallet, event=outcome.event))
            before = self._trades_seen
            self._trades_seen += len(outcome.trades)
            every = self._config.trades_between_dashboards
            if self._trades_seen // every > before // every:
                self.print_dashboards([outcome.wallet])

    def print_dashboards(self, wallets: Optional[Sequence[str]] = None) -> None:
        performances = self._reporter.get_all_performances()
        for wallet in performances if wallets is None else wallets:
            performance = performances.get(wallet)
            if performance is None or not performance.trades:
                continue
            self._emit(
                format_performance(
                    performance,
                    top_positions=self._reporter.get_top_positions(wallet, self._config.top_positions),
                    recent_trades=self._reporter.get_recent_trades(wallet, self._config.recent_trades),
                )
            )

    def print_startup(self, wallets: Sequence[str]) -> None:
        lines = ["WALLET P&L TRACKER", f"Tracking {len(wallets)} wallet(s):"]
        lines += [f"  {index}. {truncate_address(wallet)}" for index, wallet in enumerate(wallets, 1)]
        if self._session_log is not None:
            lines.append(f"Session log: {self._session_log.path}")
        self._emit("\n".join(lines))

    def _emit(self, text: str) -> None:
        print(text, file=self._stream, flush=True)
        if self._session_log is not None:
            self._session_log.write(text)


__all__ = ["ConsoleReporter"]
