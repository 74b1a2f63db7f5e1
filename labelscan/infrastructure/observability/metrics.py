"""Simple in-process metrics collection for labelscan.

Lightweight counters and histograms for tracking decode outcomes without an
external metrics backend. Values live in memory and are exported through the
``/metrics`` endpoint in Prometheus text format.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Mapping

LabelKey = tuple[tuple[str, str | None], ...]


def _labels_to_key(labels: Mapping[str, str | None] | None) -> LabelKey:
    if labels is None:
        return ()
    return tuple(sorted(labels.items()))


def _format_labels(key: LabelKey) -> str:
    return ",".join(f'{k}="{v}"' for k, v in key)


# ---------------------------------------------------------------------------
# Metric storage
# ---------------------------------------------------------------------------


@dataclass
class Counter:
    """A monotonically increasing counter."""

    name: str
    help_text: str = ""
    _values: dict[LabelKey, float] = field(default_factory=lambda: defaultdict(float))
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def inc(
        self, value: float = 1.0, labels: Mapping[str, str | None] | None = None
    ) -> None:
        """Increment the counter by the given value."""
        key = _labels_to_key(labels)
        with self._lock:
            self._values[key] += value

    def get(self, labels: Mapping[str, str | None] | None = None) -> float:
        """Get the current counter value."""
        key = _labels_to_key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def snapshot(self) -> dict[LabelKey, float]:
        with self._lock:
            return dict(self._values)


@dataclass
class Histogram:
    """Distribution of observed values, summarised as count/sum/avg."""

    name: str
    help_text: str = ""
    _observations: dict[LabelKey, list[float]] = field(
        default_factory=lambda: defaultdict(list)
    )
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def observe(
        self, value: float, labels: Mapping[str, str | None] | None = None
    ) -> None:
        """Record an observation."""
        key = _labels_to_key(labels)
        with self._lock:
            self._observations[key].append(value)

    def get_stats(
        self, labels: Mapping[str, str | None] | None = None
    ) -> dict[str, float]:
        """Get summary statistics for one label set."""
        key = _labels_to_key(labels)
        with self._lock:
            return self._stats(self._observations.get(key, []))

    def snapshot(self) -> dict[LabelKey, dict[str, float]]:
        with self._lock:
            return {key: self._stats(values) for key, values in self._observations.items()}

    @staticmethod
    def _stats(values: list[float]) -> dict[str, float]:
        if not values:
            return {"count": 0, "sum": 0.0, "avg": 0.0}
        total = sum(values)
        return {"count": len(values), "sum": total, "avg": total / len(values)}


class MetricRegistry:
    """Registry holding every counter and histogram by name."""

    def __init__(self) -> None:
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, help_text: str = "") -> Counter:
        """Get or create a counter."""
        with self._lock:
            if name not in self._counters:
                self._counters[name] = Counter(name=name, help_text=help_text)
            return self._counters[name]

    def histogram(self, name: str, help_text: str = "") -> Histogram:
        """Get or create a histogram."""
        with self._lock:
            if name not in self._histograms:
                self._histograms[name] = Histogram(name=name, help_text=help_text)
            return self._histograms[name]

    def all_counters(self) -> dict[str, Counter]:
        with self._lock:
            return dict(self._counters)

    def all_histograms(self) -> dict[str, Histogram]:
        with self._lock:
            return dict(self._histograms)

    def reset(self) -> None:
        """Drop every metric. Intended for tests."""
        with self._lock:
            self._counters.clear()
            self._histograms.clear()


_registry = MetricRegistry()


def get_registry() -> MetricRegistry:
    return _registry


# ---------------------------------------------------------------------------
# Convenience functions
# ---------------------------------------------------------------------------


def increment_counter(
    name: str,
    value: float = 1.0,
    labels: Mapping[str, str | None] | None = None,
    help_text: str = "",
) -> None:
    """Increment a counter by name, creating it if needed."""
    _registry.counter(name, help_text).inc(value, labels)


def observe_histogram(
    name: str,
    value: float,
    labels: Mapping[str, str | None] | None = None,
    help_text: str = "",
) -> None:
    """Record an observation in a histogram, creating it if needed."""
    _registry.histogram(name, help_text).observe(value, labels)


# ---------------------------------------------------------------------------
# Decode pipeline metrics
# ---------------------------------------------------------------------------

DECODES = "label_decodes_total"
DECODE_DURATION = "label_decode_duration_seconds"
SYMBOL_ATTEMPTS = "symbol_attempts_total"
OCR_REQUESTS = "ocr_requests_total"
OCR_REQUEST_DURATION = "ocr_request_duration_seconds"


def record_decode(
    strategy: str | None, outcome: str, error_kind: str | None, duration: float
) -> None:
    """Record a finished decode request.

    Args:
        strategy: 'symbol' or 'ocr' on success, None on failure.
        outcome: 'success' or 'failure'.
        error_kind: ErrorKind value on failure.
        duration: Wall-clock time in seconds.
    """
    increment_counter(
        DECODES,
        labels={"strategy": strategy, "outcome": outcome, "error_kind": error_kind},
        help_text="Total label decode requests",
    )
    observe_histogram(
        DECODE_DURATION,
        duration,
        labels={"outcome": outcome},
        help_text="Label decode duration in seconds",
    )


def record_symbol_attempt(angle: int, found: bool) -> None:
    """Record one barcode read attempt at a given orientation."""
    increment_counter(
        SYMBOL_ATTEMPTS,
        labels={"angle": str(angle), "found": "true" if found else "false"},
        help_text="Barcode read attempts per orientation",
    )


def record_ocr_request(status: str, duration: float) -> None:
    """Record an OCR fallback request ('success' or 'failed')."""
    increment_counter(
        OCR_REQUESTS,
        labels={"status": status},
        help_text="Total OCR fallback requests",
    )
    observe_histogram(
        OCR_REQUEST_DURATION,
        duration,
        labels={"status": status},
        help_text="OCR fallback request duration in seconds",
    )


# ---------------------------------------------------------------------------
# Export utilities
# ---------------------------------------------------------------------------


def format_prometheus() -> str:
    """Format metrics in Prometheus text exposition format."""
    lines: list[str] = []

    for name, counter in _registry.all_counters().items():
        if counter.help_text:
            lines.append(f"# HELP {name} {counter.help_text}")
        lines.append(f"# TYPE {name} counter")
        for key, value in counter.snapshot().items():
            if key:
                lines.append(f"{name}{{{_format_labels(key)}}} {value}")
            else:
                lines.append(f"{name} {value}")

    for name, histogram in _registry.all_histograms().items():
        if histogram.help_text:
            lines.append(f"# HELP {name} {histogram.help_text}")
        lines.append(f"# TYPE {name} summary")
        for key, stats in histogram.snapshot().items():
            suffix = f"{{{_format_labels(key)}}}" if key else ""
            lines.append(f"{name}_count{suffix} {stats['count']}")
            lines.append(f"{name}_sum{suffix} {stats['sum']}")

    return "\n".join(lines)
