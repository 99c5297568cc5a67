"""Built-in alert rules.

Each default rule matches one (level, type) pair and logs an operator-facing
call to action.  Callers add their own rules with
:meth:`~aumos_agent_telemetry.alerts.manager.AlertManager.add_rule`.
"""
from __future__ import annotations

import logging
from typing import Callable

from aumos_agent_telemetry.alerts.models import Alert, AlertLevel, AlertRule

logger = logging.getLogger(__name__)


def _log_action(level: int, text: str) -> Callable[[Alert], None]:
    def action(alert: Alert) -> None:
        logger.log(level, "%s: %s", text, alert.message)

    return action


def default_rules() -> list[AlertRule]:
    """Return fresh instances of the built-in rules, in evaluation order."""
    return [
        AlertRule(
            name="critical_error_rate",
            level=AlertLevel.CRITICAL,
            type="error_rate",
            action=_log_action(logging.CRITICAL, "CRITICAL ERROR RATE - immediate escalation required"),
        ),
        AlertRule(
            name="budget_exceeded",
            level=AlertLevel.CRITICAL,
            type="budget_exceeded",
            action=_log_action(logging.CRITICAL, "BUDGET EXCEEDED - review spending immediately"),
        ),
        AlertRule(
            name="high_response_time",
            level=AlertLevel.WARNING,
            type="response_time",
            action=_log_action(logging.WARNING, "HIGH RESPONSE TIME - performance degradation detected"),
        ),
    ]
