"""Alerting package for aumos-agent-telemetry.

Provides the alert model, notification channels, rules, the alert manager
with deduplication and escalation, and the scheduled escalation sweep.
"""
from __future__ import annotations

from aumos_agent_telemetry.alerts.channels import (
    AlertChannel,
    ConsoleChannel,
    DashboardChannel,
    DashboardNotification,
    EmailChannel,
    EmailMessage,
    WebhookChannel,
)
from aumos_agent_telemetry.alerts.escalation import EscalationMonitor
from aumos_agent_telemetry.alerts.manager import AlertManager, AlertStats
from aumos_agent_telemetry.alerts.models import (
    Alert,
    AlertCandidate,
    AlertLevel,
    AlertRule,
    AlertSink,
    EscalationEntry,
)
from aumos_agent_telemetry.alerts.rules import default_rules

__all__ = [
    "Alert",
    "AlertCandidate",
    "AlertChannel",
    "AlertLevel",
    "AlertManager",
    "AlertRule",
    "AlertSink",
    "AlertStats",
    "ConsoleChannel",
    "DashboardChannel",
    "DashboardNotification",
    "EmailChannel",
    "EmailMessage",
    "EscalationEntry",
    "EscalationMonitor",
    "WebhookChannel",
    "default_rules",
]
