"""In-process bus for trade records and ledger diagnostics."""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Union

from .metrics import MetricsRegistry


class EventType(str, Enum):
    TRADE = "trade"
    UNTRACKED_SELL = "untracked_sell"
    PARTIAL_SELL = "partial_sell"
    PRICE_UNAVAILABLE = "price_unavailable"
    HEALTH = "health"


class EventSeverity(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass(slots=True)
class Event:
    """One published fact. ``correlation_id`` is the transaction signature when there is one."""

    type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    severity: EventSeverity = EventSeverity.INFO
    correlation_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
            "correlation_id": self.correlation_id,
            "payload": self.payload,
        }


def _coerce_type(event_type: Union[EventType, str]) -> EventType:
    if isinstance(event_type, EventType):
        return event_type
    try:
        return EventType(event_type)
    except ValueError as exc:
        raise ValueError(f"Unsupported event type: {event_type}") from exc


class EventBus:
    """Queue events from any thread and deliver them on a single daemon thread.

    Delivery order per bus is publish order. Delivered events land in a
    bounded history that the dashboard reads, and feed the metrics hook.
    """

    def __init__(self, history_size: int = 500) -> None:
        self._pending: "queue.Queue[Event]" = queue.Queue()
        self._lock = threading.RLock()
        self._history: Deque[Event] = deque(maxlen=history_size)
        self._metrics: Optional[MetricsRegistry] = None
        self._logger = logging.getLogger(__name__)
        self._thread: Optional[threading.Thread] = None

    def attach_metrics(self, registry: Optional[MetricsRegistry]) -> None:
        self._metrics = registry

    def publish(
        self,
        event_type: Union[EventType, str],
        payload: Optional[Dict[str, Any]] = None,
        *,
        severity: EventSeverity = EventSeverity.INFO,
        correlation_id: Optional[str] = None,
    ) -> None:
        event = Event(
            type=_coerce_type(event_type),
            payload=dict(payload or {}),
            severity=severity,
            correlation_id=correlation_id,
        )
        self._ensure_worker()
        self._pending.put(event)

    def history(self, limit: int = 100, *, event_type: Optional[EventType] = None) -> List[Event]:
        """Most recent events, oldest first."""

        if limit <= 0:
            return []
        with self._lock:
            events = [item for item in self._history if event_type is None or item.type == event_type]
        return events[-limit:]

    def flush(self, timeout: float = 1.0) -> bool:
        """Wait up to ``timeout`` seconds for queued events to be delivered."""

        deadline = time.monotonic() + timeout
        while self._pending.unfinished_tasks:
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.005)
        return True

    def reset(self) -> None:
        self.flush()
        with self._lock:
            self._history.clear()
        self._metrics = None

    def _ensure_worker(self) -> None:
        if self._thread is not None:
            return
        with self._lock:
            if self._thread is None:
                self._thread = threading.Thread(target=self._drain, name="event-bus", daemon=True)
                self._thread.start()

    def _drain(self) -> None:
        while True:
            event = self._pending.get()
            try:
                self._deliver(event)
            except Exception:  # noqa: BLE001
                self._logger.exception("Dropped %s event", event.type.value)
            finally:
                self._pending.task_done()

    def _deliver(self, event: Event) -> None:
        with self._lock:
            self._history.append(event)
        if self._metrics is not None:
            _record_metrics(self._metrics, event)


def _record_metrics(registry: MetricsRegistry, event: Event) -> None:
    registry.increment(f"events.{event.type.value}")
    if event.type == EventType.TRADE and event.payload.get("usd_value") is not None:
        registry.observe("trade_usd_value", float(event.payload["usd_value"]))
    elif event.type == EventType.HEALTH and "queue_depth" in event.payload:
        registry.gauge("dispatcher_queue_depth", float(event.payload["queue_depth"]))


EVENT_BUS = EventBus()


__all__ = [
    "EVENT_BUS",
    "Event",
    "EventBus",
    "EventSeverity",
    "EventType",
]
