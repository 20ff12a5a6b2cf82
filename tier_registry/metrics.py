"""Lightweight metrics registry for registry operations."""

from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, MutableMapping, Tuple

MetricKey = Tuple[str, Tuple[Tuple[str, str], ...]]


@dataclass
class HistogramSummary:
    """Running aggregate of observed values; individual samples are not kept."""

    count: int = 0
    total: float = 0.0
    maximum: float = 0.0

    def add(self, value: float) -> None:
        self.maximum = value if self.count == 0 else max(self.maximum, value)
        self.count += 1
        self.total += value


@dataclass
class MetricRegistry:
    """A minimal Prometheus-style collector used for in-process accounting."""

    counters: MutableMapping[MetricKey, float] = field(default_factory=lambda: defaultdict(float))
    histograms: MutableMapping[MetricKey, HistogramSummary] = field(
        default_factory=lambda: defaultdict(HistogramSummary)
    )

    def inc(self, name: str, *, labels: Mapping[str, str] | None = None, amount: float = 1.0) -> None:
        key = self._key(name, labels)
        self.counters[key] += amount

    def observe(self, name: str, value: float, *, labels: Mapping[str, str] | None = None) -> None:
        key = self._key(name, labels)
        self.histograms[key].add(value)

    def counter(self, name: str, *, labels: Mapping[str, str] | None = None) -> float:
        return self.counters.get(self._key(name, labels), 0.0)

    def snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        """Return counters and histogram summaries as JSON-compatible rows."""

        counters = [
            {"name": name, "labels": dict(labels), "value": value}
            for (name, labels), value in sorted(self.counters.items())
        ]
        histograms = [
            {
                "name": name,
                "labels": dict(labels),
                "count": summary.count,
                "sum": summary.total,
                "max": summary.maximum,
            }
            for (name, labels), summary in sorted(self.histograms.items(), key=lambda item: item[0])
            if summary.count
        ]
        return {"counters": counters, "histograms": histograms}

    def _key(self, name: str, labels: Mapping[str, str] | None) -> MetricKey:
        sorted_labels = tuple(sorted((labels or {}).items()))
        return name, sorted_labels


class Timer:
    """Context manager to record elapsed time into a histogram."""

    def __init__(self, registry: MetricRegistry, name: str, *, labels: Mapping[str, str] | None = None) -> None:
        self._registry = registry
        self._name = name
        self._labels = labels
        self._start: float | None = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._start is None:
            return
        duration = time.perf_counter() - self._start
        self._registry.observe(self._name, duration, labels=self._labels)
