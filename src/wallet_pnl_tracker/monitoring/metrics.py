"""Process-wide metrics with a Prometheus text exporter."""

from __future__ import annotations

import math
import re
import threading
from collections import deque
from statistics import mean
from typing import Deque, Dict, List, Sequence

_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9_:]")
_QUANTILES = (("0.5", 0.5, "p50"), ("0.9", 0.9, "p90"), ("0.99", 0.99, "p99"))


def _sanitize_metric_name(name: str) -> str:
    cleaned = _INVALID_CHARS.sub("_", name) or "_"
    return f"_{cleaned}" if cleaned[0].isdigit() else cleaned


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


class MetricsRegistry:
    """Counters, gauges, sampled histograms and labelled gauges.

    Updated from the event loop, the dispatcher threads and the event bus
    thread, so every access holds the registry lock.
    """

    def __init__(self, *, max_hist_samples: int = 1024) -> None:
        self._lock = threading.RLock()
        self._max_samples = max_hist_samples
        self._counters: Dict[str, float] = {}
        self._gauges: Dict[str, float] = {}
        self._samples: Dict[str, Deque[float]] = {}
        self._labelled: Dict[str, Dict[str, float]] = {}

    def increment(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0.0) + amount

    def get(self, name: str) -> float:
        with self._lock:
            return self._counters.get(name, 0.0)

    def gauge(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[name] = float(value)

    def get_gauge(self, name: str) -> float:
        with self._lock:
            return self._gauges.get(name, 0.0)

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            samples = self._samples.get(name)
            if samples is None:
                samples = self._samples[name] = deque(maxlen=self._max_samples)
            samples.append(float(value))

    def set_labelled(self, name: str, key: str, value: float) -> None:
        """Set one member of a gauge family, e.g. P&L per wallet."""

        with self._lock:
            self._labelled.setdefault(name, {})[key] = float(value)

    def get_labelled(self, name: str, key: str) -> float:
        with self._lock:
            return self._labelled.get(name, {}).get(key, 0.0)

    def export_prometheus(self) -> str:
        with self._lock:
            counters = dict(self._counters)
            gauges = dict(self._gauges)
            samples = {name: list(values) for name, values in self._samples.items()}
            labelled = {name: dict(values) for name, values in self._labelled.items()}

        lines: List[str] = []
        for name, value in counters.items():
            metric = _sanitize_metric_name(name)
            lines += [f"# TYPE {metric} counter", f"{metric} {value}"]
        for name, value in gauges.items():
            metric = _sanitize_metric_name(name)
            lines += [f"# TYPE {metric} gauge", f"{metric} {value}"]
        for name, values in samples.items():
            stats = _summarize(values)
            if not stats:
                continue
            metric = _sanitize_metric_name(name)
            lines.append(f"# TYPE {metric} summary")
            for label, _, key in _QUANTILES:
                lines.append(f'{metric}{{quantile="{label}"}} {stats[key]}')
            lines.append(f"{metric}_count {stats['count']}")
        for name, family in labelled.items():
            metric = _sanitize_metric_name(name)
            lines.append(f"# TYPE {metric} gauge")
            for key, value in family.items():
                lines.append(f'{metric}{{key="{_escape_label(key)}"}} {value}')
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._samples.clear()
            self._labelled.clear()


def _summarize(values: Sequence[float]) -> Dict[str, float]:
    if not values:
        return {}
    ordered = sorted(values)
    stats = {"count": float(len(ordered)), "avg": mean(ordered)}
    for _, quantile, key in _QUANTILES:
        stats[key] = _percentile(ordered, quantile)
    return stats


def _percentile(ordered: Sequence[float], quantile: float) -> float:
    # Nearest-rank on an already sorted sample.
    rank = max(math.ceil(quantile * len(ordered)) - 1, 0)
    return float(ordered[min(rank, len(ordered) - 1)])


METRICS = MetricsRegistry()


__all__ = ["METRICS", "MetricsRegistry"]
