"""aumos-agent-telemetry — Runtime telemetry for fleets of AI agents.

Tracks per-execution cost and performance, aggregates metrics over rolling
1h/24h/7d windows, and raises deduplicated, escalating alerts when error
rate, latency or budget thresholds are crossed.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import aumos_agent_telemetry as telemetry
>>> telemetry.__version__
'0.1.0'
>>> table = telemetry.PricingTable()
>>> table.calculate_cost("claude-3-opus", input_tokens=1_000_000, output_tokens=1_000_000)
90.0
"""
from __future__ import annotations

__version__: str = "0.1.0"

from aumos_agent_telemetry.convenience import AgentTelemetry

# ---------------------------------------------------------------------------
# Cost
# ---------------------------------------------------------------------------
from aumos_agent_telemetry.cost.pricing import ModelTier, PricingTable
from aumos_agent_telemetry.cost.budget import BudgetCrossing, DepartmentBudgets
from aumos_agent_telemetry.cost.ledger import (
    AgentCostEntry,
    CostInput,
    CostLedger,
    CostOptimization,
    CostResult,
)
from aumos_agent_telemetry.cost.reporter import CostReporter

# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------
from aumos_agent_telemetry.metrics.aggregator import (
    AgentMetricsSnapshot,
    MetricsAggregator,
    MetricThresholds,
    SystemMetricsSnapshot,
)
from aumos_agent_telemetry.metrics.records import ExecutionInput, ExecutionRecord, WindowStats, window_stats

# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------
from aumos_agent_telemetry.alerts.models import Alert, AlertCandidate, AlertLevel, AlertRule
from aumos_agent_telemetry.alerts.manager import AlertManager, AlertStats
from aumos_agent_telemetry.alerts.channels import (
    ConsoleChannel,
    DashboardChannel,
    EmailChannel,
    WebhookChannel,
)
from aumos_agent_telemetry.alerts.escalation import EscalationMonitor

# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------
from aumos_agent_telemetry.execution.wrapper import ExecutionResult, ExecutionSummary, ExecutionWrapper

# ---------------------------------------------------------------------------
# Persistence and config
# ---------------------------------------------------------------------------
from aumos_agent_telemetry.persistence.store import FileSnapshotStore, InMemorySnapshotStore
from aumos_agent_telemetry.persistence.snapshots import SnapshotScheduler
from aumos_agent_telemetry.config.loader import ConfigLoader, TelemetryConfig

# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------
from aumos_agent_telemetry.dashboard.renderer import DashboardData, DashboardRenderer

AgentWrapper = ExecutionWrapper

__all__ = [
    "__version__",
    "AgentTelemetry",
    # Cost
    "AgentCostEntry",
    "BudgetCrossing",
    "CostInput",
    "CostLedger",
    "CostOptimization",
    "CostReporter",
    "CostResult",
    "DepartmentBudgets",
    "ModelTier",
    "PricingTable",
    # Metrics
    "AgentMetricsSnapshot",
    "ExecutionInput",
    "ExecutionRecord",
    "MetricThresholds",
    "MetricsAggregator",
    "SystemMetricsSnapshot",
    "WindowStats",
    "window_stats",
    # Alerts
    "Alert",
    "AlertCandidate",
    "AlertLevel",
    "AlertManager",
    "AlertRule",
    "AlertStats",
    "ConsoleChannel",
    "DashboardChannel",
    "EmailChannel",
    "EscalationMonitor",
    "WebhookChannel",
    # Execution
    "AgentWrapper",
    "ExecutionResult",
    "ExecutionSummary",
    "ExecutionWrapper",
    # Persistence and config
    "ConfigLoader",
    "FileSnapshotStore",
    "InMemorySnapshotStore",
    "SnapshotScheduler",
    "TelemetryConfig",
    # Dashboard
    "DashboardData",
    "DashboardRenderer",
]
