"""
Instrumentation Registry
========================

Process-wide counters and histograms for request and ticket activity.

A single MetricsRegistry is created at startup, stored on ``app.state`` and
passed to whatever records observations (HTTP middleware, ticket service).
The registry is read by ``GET /metrics`` and pushed to Grafana by the
OTLP exporter.
"""

import threading
from bisect import bisect_left
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

LabelKey = Tuple[Tuple[str, str], ...]

DEFAULT_HTTP_BUCKETS = (0.01, 0.05, 0.1, 0.5, 1, 2, 5, 10)
TICKET_RESPONSE_BUCKETS = (1, 5, 10, 30, 60, 300, 600, 1800)


def _label_key(label_names: Sequence[str], labels: Dict[str, str]) -> LabelKey:
    unknown = set(labels) - set(label_names)
    if unknown:
        raise ValueError(f"Unknown labels: {sorted(unknown)}")
    return tuple((name, str(labels.get(name, ""))) for name in label_names)


class Counter:
    """Monotonic counter with optional labels."""

    def __init__(self, name: str, description: str, label_names: Sequence[str] = ()):
        self.name = name
        self.description = description
        self.label_names = tuple(label_names)
        self._values: Dict[LabelKey, float] = {}
        self._lock = threading.Lock()

    def inc(self, amount: float = 1.0, **labels: str) -> None:
        if amount < 0:
            raise ValueError("Counters can only increase")
        key = _label_key(self.label_names, labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + amount

    def value(self, **labels: str) -> float:
        return self._values.get(_label_key(self.label_names, labels), 0.0)

    def samples(self) -> List[dict]:
        with self._lock:
            return [
                {"labels": dict(key), "value": value}
                for key, value in self._values.items()
            ]


@dataclass
class _HistogramSeries:
    bucket_counts: List[int]
    count: int = 0
    total: float = 0.0


@dataclass
class HistogramSnapshot:
    """Point-in-time copy of one labelled histogram series."""
    labels: Dict[str, str]
    buckets: Dict[str, int]
    count: int
    sum: float = field(default=0.0)


class Histogram:
    """Cumulative-bucket histogram with optional labels."""

    def __init__(
        self,
        name: str,
        description: str,
        buckets: Sequence[float],
        label_names: Sequence[str] = ()
    ):
        self.name = name
        self.description = description
        self.buckets = tuple(sorted(buckets))
        self.label_names = tuple(label_names)
        self._series: Dict[LabelKey, _HistogramSeries] = {}
        self._lock = threading.Lock()

    def observe(self, value: float, **labels: str) -> None:
        key = _label_key(self.label_names, labels)
        index = bisect_left(self.buckets, value)
        with self._lock:
            series = self._series.get(key)
            if series is None:
                series = _HistogramSeries(bucket_counts=[0] * len(self.buckets))
                self._series[key] = series
            # Cumulative: every bucket whose bound is >= value
            for i in range(index, len(self.buckets)):
                series.bucket_counts[i] += 1
            series.count += 1
            series.total += value

    def snapshot(self) -> List[HistogramSnapshot]:
        with self._lock:
            return [
                HistogramSnapshot(
                    labels=dict(key),
                    buckets={
                        str(bound): count
                        for bound, count in zip(self.buckets, series.bucket_counts)
                    },
                    count=series.count,
                    sum=series.total,
                )
                for key, series in self._series.items()
            ]


class MetricsRegistry:
    """
    Holds the service's instruments.

    Instruments are attributes so callers depend on a concrete name rather
    than looking metrics up by string.
    """

    def __init__(self):
        self.tickets_total = Counter(
            "tickets_total",
            "Tickets created or moved to a status",
            label_names=("status",),
        )
        self.ticket_response_time = Histogram(
            "ticket_response_time_seconds",
            "Time spent handling ticket creation",
            buckets=TICKET_RESPONSE_BUCKETS,
        )
        self.http_requests_total = Counter(
            "http_requests_total",
            "HTTP requests served",
            label_names=("method", "path", "status_code"),
        )
        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            buckets=DEFAULT_HTTP_BUCKETS,
            label_names=("method", "path", "status_code"),
        )

    @property
    def counters(self) -> List[Counter]:
        return [self.tickets_total, self.http_requests_total]

    @property
    def histograms(self) -> List[Histogram]:
        return [self.ticket_response_time, self.http_request_duration]

    def snapshot(self) -> dict:
        """Serializable view of every instrument."""
        data = {}
        for counter in self.counters:
            data[counter.name] = {
                "type": "counter",
                "description": counter.description,
                "samples": counter.samples(),
            }
        for histogram in self.histograms:
            data[histogram.name] = {
                "type": "histogram",
                "description": histogram.description,
                "samples": [
                    {
                        "labels": s.labels,
                        "buckets": s.buckets,
                        "count": s.count,
                        "sum": round(s.sum, 6),
                    }
                    for s in histogram.snapshot()
                ],
            }
        return data
