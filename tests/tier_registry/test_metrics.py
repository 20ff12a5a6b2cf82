import pytest

from tier_registry.metrics import MetricRegistry, Timer


def test_histogram_keeps_aggregates_only():
    metrics = MetricRegistry()
    for value in range(1, 10_001):
        metrics.observe("latency", float(value), labels={"operation": "get_score"})

    summary = metrics.histograms[("latency", (("operation", "get_score"),))]

    assert summary.count == 10_000
    assert summary.total == pytest.approx(50_005_000.0)
    assert summary.maximum == 10_000.0
    assert not hasattr(summary, "values")


def test_snapshot_reports_counters_and_histogram_summaries():
    metrics = MetricRegistry()
    metrics.inc("calls", labels={"operation": "assess"})
    metrics.inc("calls", labels={"operation": "assess"})
    metrics.observe("latency", 0.5)
    metrics.observe("latency", 0.25)

    snapshot = metrics.snapshot()

    assert snapshot["counters"] == [{"name": "calls", "labels": {"operation": "assess"}, "value": 2.0}]
    assert snapshot["histograms"] == [{"name": "latency", "labels": {}, "count": 2, "sum": 0.75, "max": 0.5}]


def test_timer_records_one_observation():
    metrics = MetricRegistry()

    with Timer(metrics, "latency", labels={"operation": "set_risk_tier"}):
        pass

    (row,) = metrics.snapshot()["histograms"]
    assert row["count"] == 1
    assert row["max"] >= 0.0
