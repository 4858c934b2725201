"""Monitoring package exports and helpers."""

from __future__ import annotations

from typing import Optional

from ..config.settings import AppConfig, get_app_config
from .event_bus import EVENT_BUS, Event, EventSeverity, EventType
from .logger import configure_logging, correlation_scope, get_logger
from .metrics import METRICS


def bootstrap_observability(config: Optional[AppConfig] = None) -> None:
    """Configure logging and wire the metrics registry into the event bus."""

    app_config = config or get_app_config()
    configure_logging(app_config.monitoring)
    EVENT_BUS.attach_metrics(METRICS)


__all__ = [
    "EVENT_BUS",
    "METRICS",
    "Event",
    "EventSeverity",
    "EventType",
    "bootstrap_observability",
    "configure_logging",
    "correlation_scope",
    "get_logger",
]
