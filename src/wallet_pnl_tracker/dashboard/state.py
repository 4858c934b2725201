"""Shared dashboard state and data access helpers."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..analytics.performance import PerformanceReporter, position_to_dict, trade_to_dict
from ..config.settings import AppConfig
from ..monitoring.event_bus import EVENT_BUS, EventBus
from ..monitoring.metrics import METRICS, MetricsRegistry


class DashboardState:
    """Read-only wrapper around the performance reporter, metrics and event bus."""

    def __init__(
        self,
        *,
        config: AppConfig,
        reporter: PerformanceReporter,
        metrics: MetricsRegistry = METRICS,
        event_bus: EventBus = EVENT_BUS,
    ) -> None:
        self.config = config
        self.reporter = reporter
        self.metrics = metrics
        self.event_bus = event_bus

    def wallets(self) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for wallet in self.reporter.get_all_performances():
            summary = self.reporter.summary(wallet, top_positions=0, recent_trades=0)
            if summary is None:
                continue
            summary.pop("top_positions", None)
            summary.pop("recent_trades", None)
            rows.append(summary)
        return rows

    def wallet(self, wallet: str) -> Optional[Dict[str, Any]]:
        reporting = self.config.reporting
        return self.reporter.summary(
            wallet,
            top_positions=reporting.top_positions,
            recent_trades=reporting.recent_trades,
        )

    def positions(self, wallet: str, limit: int) -> Optional[List[Dict[str, Any]]]:
        if self.reporter.get_performance(wallet) is None:
            return None
        return [position_to_dict(item) for item in self.reporter.get_top_positions(wallet, limit)]

    def trades(self, wallet: str, limit: int) -> Optional[List[Dict[str, Any]]]:
        if self.reporter.get_performance(wallet) is None:
            return None
        return [trade_to_dict(item) for item in self.reporter.get_recent_trades(wallet, limit)]

    def event_history(self, limit: int = 200) -> List[Dict[str, Any]]:
        return [event.to_dict() for event in self.event_bus.history(limit)]

    def prometheus(self) -> str:
        return self.metrics.export_prometheus()


__all__ = ["DashboardState"]
