"""Execution metrics package: rolling windows, aggregation and host health."""
from __future__ import annotations

from aumos_agent_telemetry.metrics.aggregator import (
    AgentMetricsSnapshot,
    MetricsAggregator,
    MetricThresholds,
    SystemMetricsSnapshot,
)
from aumos_agent_telemetry.metrics.health import SystemHealth, collect_system_health
from aumos_agent_telemetry.metrics.records import ExecutionInput, ExecutionRecord, WindowStats, window_stats

__all__ = [
    "AgentMetricsSnapshot",
    "ExecutionInput",
    "ExecutionRecord",
    "MetricThresholds",
    "MetricsAggregator",
    "SystemHealth",
    "SystemMetricsSnapshot",
    "WindowStats",
    "collect_system_health",
    "window_stats",
]
