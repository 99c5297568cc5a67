"""Alert data model.

An :class:`Alert` is created by the :class:`~aumos_agent_telemetry.alerts.manager.AlertManager`
from an :class:`AlertCandidate` (or a plain dict) supplied by a threshold
check.  Once accepted into history only ``acknowledged``, ``acknowledged_at``
and ``escalated`` change.

Example
-------
>>> candidate = AlertCandidate(level=AlertLevel.WARNING, type="error_rate", message="high")
>>> candidate.level.value
'warning'
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Protocol


class AlertLevel(str, Enum):
    """Alert severity."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


ESCALATING_LEVELS: frozenset[AlertLevel] = frozenset({AlertLevel.WARNING, AlertLevel.CRITICAL})


@dataclass
class AlertCandidate:
    """An alert proposed by a threshold check, before normalisation.

    Attributes
    ----------
    message:
        Human-readable description.  Together with ``type`` it forms the
        deduplication key.
    level:
        Severity (default: ``info``).
    type:
        Machine-readable category such as ``"error_rate"``.
    data:
        Arbitrary JSON-serialisable context.
    escalated_from:
        Id of the alert this one escalates, if any.
    """

    message: str
    level: AlertLevel = AlertLevel.INFO
    type: str = "general"
    data: dict[str, object] = field(default_factory=dict)
    escalated_from: str | None = None
    acknowledged: bool = False
    escalated: bool = False


@dataclass
class Alert:
    """An alert accepted into the manager's history."""

    id: str
    timestamp: datetime
    level: AlertLevel
    type: str
    message: str
    data: dict[str, object] = field(default_factory=dict)
    acknowledged: bool = False
    escalated: bool = False
    acknowledged_at: datetime | None = None
    escalated_from: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly representation."""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "type": self.type,
            "message": self.message,
            "data": dict(self.data),
            "acknowledged": self.acknowledged,
            "escalated": self.escalated,
            "acknowledged_at": self.acknowledged_at.isoformat() if self.acknowledged_at else None,
            "escalated_from": self.escalated_from,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, object]) -> Alert:
        """Rebuild an alert from :meth:`to_dict` output.

        Raises
        ------
        KeyError, ValueError
            When required fields are missing or malformed.
        """
        acknowledged_at = raw.get("acknowledged_at")
        data = raw.get("data") or {}
        return cls(
            id=str(raw["id"]),
            timestamp=datetime.fromisoformat(str(raw["timestamp"])),
            level=AlertLevel(str(raw.get("level", AlertLevel.INFO.value))),
            type=str(raw.get("type", "general")),
            message=str(raw.get("message", "")),
            data=dict(data) if isinstance(data, dict) else {},
            acknowledged=bool(raw.get("acknowledged", False)),
            escalated=bool(raw.get("escalated", False)),
            acknowledged_at=datetime.fromisoformat(str(acknowledged_at)) if acknowledged_at else None,
            escalated_from=str(raw["escalated_from"]) if raw.get("escalated_from") else None,
        )


@dataclass
class AlertRule:
    """A side-effecting rule evaluated against every accepted alert.

    A rule matches when every configured filter matches: ``level`` and
    ``type`` by equality, ``condition`` by returning ``True``.
    """

    name: str
    action: Callable[[Alert], None]
    level: AlertLevel | None = None
    type: str | None = None
    condition: Callable[[Alert], bool] | None = None

    def matches(self, alert: Alert) -> bool:
        if self.level is not None and alert.level != self.level:
            return False
        if self.type is not None and alert.type != self.type:
            return False
        if self.condition is not None and not self.condition(alert):
            return False
        return True


@dataclass
class EscalationEntry:
    """A pending escalation for the latest alert of one ``type_level`` key."""

    alert: Alert
    created_at: datetime
    escalate_at: datetime


class AlertSink(Protocol):
    """Anything that accepts alert candidates.

    The cost ledger and metrics aggregator depend on this protocol rather
    than on the concrete manager.
    """

    def add_alert(self, candidate: AlertCandidate | dict[str, object]) -> Alert | None: ...
