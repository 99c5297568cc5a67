"""Tests for execution records, window statistics and MetricsAggregator."""
from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from aumos_agent_telemetry.alerts.models import AlertLevel
from aumos_agent_telemetry.metrics.aggregator import MetricsAggregator, MetricThresholds
from aumos_agent_telemetry.metrics.health import collect_system_health, process_usage
from aumos_agent_telemetry.metrics.records import ExecutionInput, ExecutionRecord, window_stats


def _ok(duration_ms: float = 100.0, cost: float = 0.0) -> ExecutionInput:
    return ExecutionInput(duration_ms=duration_ms, cost=cost)


def _err() -> ExecutionInput:
    return ExecutionInput(duration_ms=100.0, status="error")


# ---------------------------------------------------------------------------
# window_stats
# ---------------------------------------------------------------------------


class TestWindowStats:
    def test_empty_is_all_zero(self) -> None:
        stats = window_stats([])
        assert stats.count == 0
        assert stats.error_rate == 0.0
        assert stats.avg_duration_ms == 0.0

    def test_failed_and_error_count_as_errors(self, base_time: datetime) -> None:
        records = [
            ExecutionRecord(timestamp=base_time, duration_ms=100.0, status="error", cost=0.5, tokens_used=10),
            ExecutionRecord(timestamp=base_time, duration_ms=300.0, status="failed", cost=0.5, tokens_used=10),
            ExecutionRecord(timestamp=base_time, duration_ms=200.0, status="timeout"),
            ExecutionRecord(timestamp=base_time, duration_ms=200.0, status="completed"),
        ]
        stats = window_stats(records)
        assert stats.count == 4
        assert stats.errors == 2
        assert stats.error_rate == pytest.approx(0.5)
        assert stats.avg_duration_ms == pytest.approx(200.0)
        assert stats.total_cost == pytest.approx(1.0)
        assert stats.total_tokens == 20


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------


@pytest.fixture()
def aggregator(sink) -> MetricsAggregator:
    return MetricsAggregator(alert_sink=sink, include_health=False)


class TestTrackExecution:
    def test_first_execution_creates_agent(self, aggregator: MetricsAggregator, base_time: datetime) -> None:
        snapshot = aggregator.track_execution("qualifier", _ok(250.0), now=base_time)
        assert snapshot.executions == 1
        assert snapshot.avg_duration_ms == pytest.approx(250.0)
        assert snapshot.last_execution == base_time
        assert all(w.count == 1 for w in snapshot.windows.values())

    def test_errors_never_exceed_executions(self, aggregator: MetricsAggregator, base_time: datetime) -> None:
        for i in range(20):
            aggregator.track_execution("a", _err() if i % 3 else _ok(), now=base_time)
        snapshot = aggregator.get_agent_metrics("a", now=base_time)
        assert snapshot is not None
        assert 0 <= snapshot.errors <= snapshot.executions
        assert 0.0 <= snapshot.error_rate <= 1.0

    def test_unknown_agent_returns_none(self, aggregator: MetricsAggregator) -> None:
        assert aggregator.get_agent_metrics("ghost") is None

    def test_window_eviction(self, aggregator: MetricsAggregator, base_time: datetime) -> None:
        aggregator.track_execution("a", _ok(), now=base_time)
        later = base_time + timedelta(hours=2)
        snapshot = aggregator.track_execution("a", _ok(), now=later)
        assert snapshot.windows["1h"].count == 1
        assert snapshot.windows["24h"].count == 2
        assert snapshot.windows["7d"].count == 2
        assert snapshot.executions == 2

    def test_record_at_exact_span_is_dropped(self, aggregator: MetricsAggregator, base_time: datetime) -> None:
        aggregator.track_execution("a", _ok(), now=base_time)
        snapshot = aggregator.track_execution("a", _ok(), now=base_time + timedelta(hours=1))
        assert snapshot.windows["1h"].count == 1

    def test_sweep_covers_idle_agents(self, aggregator: MetricsAggregator, base_time: datetime) -> None:
        aggregator.track_execution("idle", _ok(), now=base_time)
        aggregator.track_execution("busy", _ok(), now=base_time + timedelta(days=8))
        idle = aggregator.get_agent_metrics("idle", now=base_time + timedelta(days=8))
        assert idle is not None
        assert idle.windows["7d"].count == 0
        assert idle.executions == 1

    def test_reads_exclude_expired_records(self, aggregator: MetricsAggregator, base_time: datetime) -> None:
        aggregator.track_execution("a", _ok(), now=base_time)
        snapshot = aggregator.get_agent_metrics("a", now=base_time + timedelta(hours=3))
        assert snapshot is not None
        assert snapshot.windows["1h"].count == 0


# ---------------------------------------------------------------------------
# System metrics
# ---------------------------------------------------------------------------


class TestSystemMetrics:
    def test_system_totals(self, aggregator: MetricsAggregator, base_time: datetime) -> None:
        aggregator.track_execution("a", _ok(100.0, cost=0.25), now=base_time)
        aggregator.track_execution("b", _err(), now=base_time)
        system = aggregator.get_system_metrics(now=base_time)
        assert system.total_executions == 2
        assert system.total_errors == 1
        assert system.error_rate == pytest.approx(0.5)
        assert system.total_cost == pytest.approx(0.25)
        assert system.executions_per_hour == 2
        assert system.agent_count == 2
        assert system.health is None

    def test_get_all_metrics_shape(self, aggregator: MetricsAggregator, base_time: datetime) -> None:
        aggregator.track_execution("a", _ok(), now=base_time)
        everything = aggregator.get_all_metrics(now=base_time)
        assert set(everything) == {"system", "agents", "timestamp"}
        assert [a.name for a in everything["agents"]] == ["a"]  # type: ignore[attr-defined]

    def test_health_snapshot(self) -> None:
        health = collect_system_health()
        assert health.cpu_count >= 0
        assert process_usage().rss_bytes >= 0


# ---------------------------------------------------------------------------
# Threshold alerts
# ---------------------------------------------------------------------------


class TestThresholdAlerts:
    def test_eleven_executions_three_errors_raise_one_critical(
        self, aggregator: MetricsAggregator, sink, base_time: datetime
    ) -> None:
        for i in range(10):
            aggregator.track_execution("a", _err() if i < 3 else _ok(), now=base_time)
        assert sink.of_type("error_rate") == []

        aggregator.track_execution("a", _ok(), now=base_time)
        alerts = sink.of_type("error_rate")
        assert len(alerts) == 1
        assert alerts[0].level == AlertLevel.CRITICAL
        assert alerts[0].message == "Agent a error rate is 27.3% (critical threshold: 25%)"

    def test_warning_band(self, aggregator: MetricsAggregator, sink, base_time: datetime) -> None:
        for i in range(11):
            aggregator.track_execution("a", _err() if i < 2 else _ok(), now=base_time)
        alerts = sink.of_type("error_rate")
        assert len(alerts) == 1
        assert alerts[0].level == AlertLevel.WARNING

    def test_latency_warning(self, aggregator: MetricsAggregator, sink, base_time: datetime) -> None:
        aggregator.track_execution("slow", _ok(45_000.0), now=base_time)
        alerts = sink.of_type("response_time")
        assert len(alerts) == 1
        assert alerts[0].level == AlertLevel.WARNING
        assert alerts[0].message == "Agent slow avg response time is 45.0s (threshold: 30s)"

    def test_daily_budget_once_per_day(self, aggregator: MetricsAggregator, sink, base_time: datetime) -> None:
        aggregator.track_execution("a", _ok(cost=60.0), now=base_time)
        aggregator.track_execution("a", _ok(cost=60.0), now=base_time)
        aggregator.track_execution("a", _ok(cost=60.0), now=base_time)
        alerts = sink.of_type("daily_budget")
        assert len(alerts) == 1
        assert alerts[0].level == AlertLevel.CRITICAL
        assert alerts[0].message == "Daily cost $120.00 exceeds budget $100.00"

    def test_set_thresholds(self, aggregator: MetricsAggregator, sink, base_time: datetime) -> None:
        aggregator.set_thresholds(response_time_warning_ms=50.0)
        aggregator.track_execution("a", _ok(100.0), now=base_time)
        assert len(sink.of_type("response_time")) == 1

    def test_set_unknown_threshold_rejected(self, aggregator: MetricsAggregator) -> None:
        with pytest.raises(AttributeError):
            aggregator.set_thresholds(bogus=1.0)

    def test_custom_thresholds(self, sink, base_time: datetime) -> None:
        aggregator = MetricsAggregator(
            alert_sink=sink, thresholds=MetricThresholds(daily_budget_usd=None), include_health=False
        )
        aggregator.track_execution("a", _ok(cost=500.0), now=base_time)
        assert sink.of_type("daily_budget") == []

    def test_sink_failure_does_not_raise(self, base_time: datetime) -> None:
        class Exploding:
            def add_alert(self, candidate: object) -> None:
                raise RuntimeError("boom")

        aggregator = MetricsAggregator(alert_sink=Exploding(), include_health=False)
        snapshot = aggregator.track_execution("a", _ok(90_000.0), now=base_time)
        assert snapshot.executions == 1


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class TestAggregatorSnapshot:
    def test_restore_lifetime_counters_only(self, aggregator: MetricsAggregator, base_time: datetime) -> None:
        aggregator.track_execution("a", _ok(200.0, cost=1.5), now=base_time)
        aggregator.track_execution("a", _err(), now=base_time)
        state = aggregator.export_state(now=base_time)

        restored = MetricsAggregator(include_health=False)
        assert restored.restore_state(state) == 1
        snapshot = restored.get_agent_metrics("a", now=base_time)
        assert snapshot is not None
        assert snapshot.executions == 2
        assert snapshot.errors == 1
        assert snapshot.avg_duration_ms == pytest.approx(150.0)
        assert snapshot.total_cost == pytest.approx(1.5)
        assert snapshot.windows["24h"].count == 0
        assert restored.get_system_metrics(now=base_time).total_executions == 2

    def test_restore_skips_malformed(self) -> None:
        restored = MetricsAggregator(include_health=False)
        assert restored.restore_state({"agents": [{"executions": "x"}, 7]}) == 0
