"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Invocation metrics: counters for outcomes, fallbacks and queue events, plus
latency observations per operation kind.

Names emitted by the runtime:

- ``invocations_total{kind,outcome}``, ``cache_hits_total{kind}``,
  ``fallbacks_total{kind,reason}``, ``errors_total{kind,error}``
- ``queue_completed_total``, ``queue_rejected_total``,
  ``queue_retried_total{kind}``, ``queue_retries_exhausted_total{kind}``,
  ``queue_failed_total{kind}``
- ``invocation_latency_seconds{kind,outcome}``, ``queue_wait_seconds``,
  ``queue_retry_delay_seconds{kind}``
"""

from __future__ import annotations

import math
from collections import defaultdict, deque
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

# Remote inference latencies range from tens of milliseconds to the 30s timeout.
LATENCY_BUCKETS_S = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)

_TagKey = tuple[tuple[str, str], ...]


def _tag_key(tags: Mapping[str, str] | None) -> _TagKey:
    return tuple(sorted((str(k), str(v)) for k, v in (tags or {}).items()))


class MetricsSink(Protocol):
    """Metrics interface used by the orchestrator and request queue."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        """Increment a counter metric."""

    def observe(
        self, name: str, value_s: float, *, tags: Mapping[str, str] | None = None
    ) -> None:
        """Record one duration sample in seconds."""


class NoOpMetrics:
    """Default sink when no metrics backend is provided."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        _ = (name, value, tags)

    def observe(
        self, name: str, value_s: float, *, tags: Mapping[str, str] | None = None
    ) -> None:
        _ = (name, value_s, tags)


@dataclass(frozen=True, slots=True)
class LatencySummary:
    """Aggregate of the retained duration samples for one label value."""

    count: int
    mean_s: float
    p95_s: float
    max_s: float


class InMemoryMetrics:
    """
    Process-local aggregation backing status dashboards.

    Counters are kept exactly; duration samples are kept per series up to
    ``max_samples`` (oldest dropped first).
    """

    def __init__(self, *, max_samples: int = 1000) -> None:
        if max_samples < 1:
            raise ValueError("max_samples must be >= 1")
        self._max_samples = max_samples
        self._counters: dict[tuple[str, _TagKey], int] = defaultdict(int)
        self._samples: dict[tuple[str, _TagKey], deque[float]] = {}

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        self._counters[(name, _tag_key(tags))] += value

    def observe(
        self, name: str, value_s: float, *, tags: Mapping[str, str] | None = None
    ) -> None:
        key = (name, _tag_key(tags))
        series = self._samples.get(key)
        if series is None:
            series = self._samples[key] = deque(maxlen=self._max_samples)
        series.append(max(0.0, value_s))

    def count(self, name: str, **tags: str) -> int:
        """Sum of every series of `name` whose labels include `tags`."""
        wanted = set(tags.items())
        return sum(
            value
            for (series, labels), value in self._counters.items()
            if series == name and wanted <= set(labels)
        )

    def breakdown(self, name: str, tag: str) -> dict[str, int]:
        """Counter totals of `name` grouped by the value of label `tag`."""
        out: dict[str, int] = defaultdict(int)
        for (series, labels), value in self._counters.items():
            if series != name:
                continue
            label = dict(labels).get(tag)
            if label is not None:
                out[label] += value
        return dict(out)

    def error_breakdown(self) -> dict[str, int]:
        """Remote failures grouped by error kind (network, timeout, ...)."""
        return self.breakdown("errors_total", "error")

    def latency_by(
        self, name: str = "invocation_latency_seconds", tag: str = "kind"
    ) -> dict[str, LatencySummary]:
        grouped: dict[str, list[float]] = defaultdict(list)
        for (series, labels), samples in self._samples.items():
            if series != name:
                continue
            label = dict(labels).get(tag)
            if label is not None:
                grouped[label].extend(samples)
        return {label: _summarize(values) for label, values in grouped.items()}


def _summarize(values: list[float]) -> LatencySummary:
    ordered = sorted(values)
    rank = max(0, math.ceil(0.95 * len(ordered)) - 1)
    return LatencySummary(
        count=len(ordered),
        mean_s=sum(ordered) / len(ordered),
        p95_s=ordered[rank],
        max_s=ordered[-1],
    )


class PrometheusMetrics:
    """
    Prometheus-backed sink: counters for `incr`, histograms for `observe`.

    Requires `prometheus_client` package. Series are created lazily per
    name and label set under ``namespace``.
    """

    def __init__(
        self,
        *,
        namespace: str = "tether",
        registry=None,
        buckets: tuple[float, ...] = LATENCY_BUCKETS_S,
    ) -> None:
        try:
            from prometheus_client import Counter, Histogram
        except ModuleNotFoundError as exc:  # pragma: no cover
            raise RuntimeError(
                "PrometheusMetrics requires `prometheus_client` to be installed."
            ) from exc

        self._Counter = Counter
        self._Histogram = Histogram
        self._namespace = namespace
        self._registry = registry
        self._buckets = buckets
        self._series: dict[str, object] = {}

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        self._child(self._Counter, name, tags).inc(value)

    def observe(
        self, name: str, value_s: float, *, tags: Mapping[str, str] | None = None
    ) -> None:
        self._child(self._Histogram, name, tags).observe(max(0.0, value_s))

    def _child(self, factory, name: str, tags: Mapping[str, str] | None):
        labels = _tag_key(tags)
        label_names = tuple(label for label, _ in labels)
        key = f"{name}|{','.join(label_names)}"
        metric = self._series.get(key)
        if metric is None:
            kwargs = {}
            if self._registry is not None:
                kwargs["registry"] = self._registry
            if factory is self._Histogram:
                kwargs["buckets"] = self._buckets
            metric = factory(
                name=name,
                documentation=f"tether {name.replace('_', ' ')}",
                namespace=self._namespace,
                labelnames=label_names,
                **kwargs,
            )
            self._series[key] = metric
        if label_names:
            return metric.labels(*(value for _, value in labels))
        return metric
