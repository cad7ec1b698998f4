"""
Metrics Collector: Prometheus-Compatible In-Process Registry

Counters for operation outcomes, gauges for in-flight transfers, and
histograms for latency. Every metric is internally locked, so concurrent
store operations can record without coordination.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from typing import Any, Iterator, Optional, Sequence

LabelKey = tuple[tuple[str, str], ...]


class _Metric:
    """Shared label handling for all metric kinds."""

    __slots__ = ("_name", "_help", "_label_names", "_lock")

    kind = "untyped"

    def __init__(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
    ) -> None:
        self._name = name
        self._help = help_text
        self._label_names = tuple(label_names)
        self._lock = threading.Lock()

    def _key(self, labels: dict[str, str]) -> LabelKey:
        return tuple(sorted((k, str(labels.get(k, ""))) for k in self._label_names))

    @property
    def name(self) -> str:
        return self._name

    @property
    def help_text(self) -> str:
        return self._help


class Counter(_Metric):
    """
    Monotonically increasing counter metric.

    Usage:
        ops = Counter("fileshare_operations_total", ["operation", "outcome"])
        ops.inc(operation="store", outcome="ok")
    """

    __slots__ = ("_values",)

    kind = "counter"

    def __init__(self, name: str, label_names: Sequence[str] = (), help_text: str = "") -> None:
        super().__init__(name, label_names, help_text)
        self._values: dict[LabelKey, float] = defaultdict(float)

    def inc(self, value: float = 1.0, **labels: str) -> None:
        if value < 0:
            raise ValueError("Counter can only increase")
        key = self._key(labels)
        with self._lock:
            self._values[key] += value

    def get(self, **labels: str) -> float:
        key = self._key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def collect(self) -> Iterator[tuple[dict[str, str], float]]:
        with self._lock:
            items = list(self._values.items())
        for key, value in items:
            yield dict(key), value


class Gauge(_Metric):
    """Gauge metric that can go up and down."""

    __slots__ = ("_values",)

    kind = "gauge"

    def __init__(self, name: str, label_names: Sequence[str] = (), help_text: str = "") -> None:
        super().__init__(name, label_names, help_text)
        self._values: dict[LabelKey, float] = {}

    def set(self, value: float, **labels: str) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = value

    def inc(self, value: float = 1.0, **labels: str) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + value

    def dec(self, value: float = 1.0, **labels: str) -> None:
        self.inc(-value, **labels)

    def get(self, **labels: str) -> float:
        key = self._key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def collect(self) -> Iterator[tuple[dict[str, str], float]]:
        with self._lock:
            items = list(self._values.items())
        for key, value in items:
            yield dict(key), value


class Histogram(_Metric):
    """
    Histogram with cumulative buckets, sum and count.

    Usage:
        latency = Histogram("fileshare_operation_duration_seconds", ["operation"])
        with latency.time(operation="get_hash"):
            ...
    """

    __slots__ = ("_buckets", "_bucket_counts", "_sums", "_counts")

    kind = "histogram"

    DEFAULT_BUCKETS = (
        0.001, 0.005, 0.01, 0.025, 0.05, 0.1,
        0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf"),
    )

    def __init__(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
        buckets: Optional[Sequence[float]] = None,
    ) -> None:
        super().__init__(name, label_names, help_text)
        bounds = tuple(sorted(buckets or self.DEFAULT_BUCKETS))
        if bounds[-1] != float("inf"):
            bounds = bounds + (float("inf"),)
        self._buckets = bounds
        self._bucket_counts: dict[LabelKey, list[int]] = {}
        self._sums: dict[LabelKey, float] = defaultdict(float)
        self._counts: dict[LabelKey, int] = defaultdict(int)

    def observe(self, value: float, **labels: str) -> None:
        key = self._key(labels)
        with self._lock:
            counts = self._bucket_counts.setdefault(key, [0] * len(self._buckets))
            for i, bound in enumerate(self._buckets):
                if value <= bound:
                    counts[i] += 1
            self._sums[key] += value
            self._counts[key] += 1

    def count(self, **labels: str) -> int:
        key = self._key(labels)
        with self._lock:
            return self._counts.get(key, 0)

    def time(self, **labels: str) -> HistogramTimer:
        """Context manager for timing operations."""
        return HistogramTimer(self, labels)

    def collect(self) -> Iterator[dict[str, Any]]:
        with self._lock:
            snapshot = [
                (key, list(counts), self._sums[key], self._counts[key])
                for key, counts in self._bucket_counts.items()
            ]
        for key, counts, total, count in snapshot:
            yield {
                "labels": dict(key),
                "buckets": list(zip(self._buckets, counts)),
                "sum": total,
                "count": count,
            }


class HistogramTimer:
    """Context manager for histogram timing."""

    __slots__ = ("_histogram", "_labels", "_start")

    def __init__(self, histogram: Histogram, labels: dict[str, str]) -> None:
        self._histogram = histogram
        self._labels = labels
        self._start = 0.0

    def __enter__(self) -> HistogramTimer:
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self._histogram.observe(time.perf_counter() - self._start, **self._labels)


class MetricsCollector:
    """
    Central registry for all metrics.

    Usage:
        collector = MetricsCollector()
        ops = collector.counter("fileshare_operations_total", ["operation"])
        output = collector.export_prometheus()
    """

    __slots__ = ("_metrics", "_lock")

    _instance: Optional[MetricsCollector] = None

    def __init__(self) -> None:
        self._metrics: dict[str, _Metric] = {}
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> MetricsCollector:
        """Get process-wide instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _get_or_create(self, factory: type, name: str, *args: Any) -> Any:
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = factory(name, *args)
                self._metrics[name] = metric
            elif not isinstance(metric, factory):
                raise ValueError(f"Metric {name!r} already registered as {metric.kind}")
            return metric

    def counter(self, name: str, label_names: Sequence[str] = (), help_text: str = "") -> Counter:
        return self._get_or_create(Counter, name, label_names, help_text)

    def gauge(self, name: str, label_names: Sequence[str] = (), help_text: str = "") -> Gauge:
        return self._get_or_create(Gauge, name, label_names, help_text)

    def histogram(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
        buckets: Optional[Sequence[float]] = None,
    ) -> Histogram:
        return self._get_or_create(Histogram, name, label_names, help_text, buckets)

    def export_prometheus(self) -> str:
        """Export all metrics in Prometheus text format."""
        lines: list[str] = []

        with self._lock:
            metrics = list(self._metrics.values())

        for metric in metrics:
            if metric.help_text:
                lines.append(f"# HELP {metric.name} {metric.help_text}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")

            if isinstance(metric, Histogram):
                for data in metric.collect():
                    labels = data["labels"]
                    for bound, count in data["buckets"]:
                        le = "+Inf" if bound == float("inf") else str(bound)
                        lines.append(
                            f"{metric.name}_bucket{_format_labels({**labels, 'le': le})} {count}"
                        )
                    lines.append(f"{metric.name}_sum{_format_labels(labels)} {data['sum']}")
                    lines.append(f"{metric.name}_count{_format_labels(labels)} {data['count']}")
            else:
                for labels, value in metric.collect():
                    lines.append(f"{metric.name}{_format_labels(labels)} {value}")

        return "\n".join(lines)


def _format_labels(labels: dict[str, str]) -> str:
    """Format labels as Prometheus label string."""
    if not labels:
        return ""
    pairs = [f'{k}="{v}"' for k, v in sorted(labels.items())]
    return "{" + ",".join(pairs) + "}"
