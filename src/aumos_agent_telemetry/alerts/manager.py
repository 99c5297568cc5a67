"""Central alert manager: deduplication, rules, dispatch, history and escalation.

Every alert raised by the telemetry core flows through
:meth:`AlertManager.add_alert`:

1. Normalise the candidate (fresh id and timestamp, defaults for level,
   type and data).
2. Reject it when an unacknowledged alert with the same ``(type, message)``
   was accepted within the deduplication window.
3. Prepend it to the bounded history.
4. Run matching rules in declaration order.
5. Dispatch it to every enabled channel (critical-only channels see only
   critical alerts).
6. For warning and critical alerts, register a pending escalation keyed by
   ``"<type>_<level>"``.  A newer alert with the same key replaces the
   pending entry.
7. Persist it through the background writer.

No step after acceptance can raise back to the caller: rule, channel and
persistence failures are logged and swallowed.

Example
-------
>>> manager = AlertManager()
>>> alert = manager.add_alert({"level": "warning", "type": "error_rate", "message": "12% errors"})
>>> alert.level.value
'warning'
>>> manager.add_alert({"level": "warning", "type": "error_rate", "message": "12% errors"}) is None
True
"""
from __future__ import annotations

import dataclasses
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

from aumos_agent_telemetry.alerts.channels import AlertChannel, ConsoleChannel, DashboardChannel
from aumos_agent_telemetry.alerts.models import (
    ESCALATING_LEVELS,
    Alert,
    AlertCandidate,
    AlertLevel,
    AlertRule,
    EscalationEntry,
)
from aumos_agent_telemetry.alerts.rules import default_rules
from aumos_agent_telemetry.persistence.store import SnapshotStore
from aumos_agent_telemetry.persistence.writer import BackgroundWriter

logger = logging.getLogger(__name__)

STATS_PERIODS: dict[str, timedelta] = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
}

_CANDIDATE_FIELDS = frozenset({"level", "type", "message", "data", "escalated_from", "acknowledged", "escalated"})
_ASSIGNED_FIELDS = frozenset({"id", "timestamp"})


@dataclass
class AlertStats:
    """Alert counts within a sliding period."""

    period: str
    total: int = 0
    info: int = 0
    warning: int = 0
    critical: int = 0
    unacknowledged: int = 0
    by_type: dict[str, int] = field(default_factory=dict)


class AlertManager:
    """Thread-safe alert history with deduplication and escalation.

    Parameters
    ----------
    channels:
        Notification channels.  Defaults to a console and a dashboard
        channel.
    rules:
        Initial rules.  ``None`` installs :func:`default_rules`.
    max_alerts:
        Maximum number of alerts retained in history.
    dedup_window_seconds:
        Span during which an identical unacknowledged alert is suppressed.
    escalation_window_seconds:
        Delay after which an unacknowledged warning/critical alert escalates.
    store:
        Optional persistence adapter for alert history.
    writer:
        Executor for persistence writes.  A background writer is created
        when a store is supplied and no writer is given.
    """

    def __init__(
        self,
        channels: list[AlertChannel] | None = None,
        rules: list[AlertRule] | None = None,
        max_alerts: int = 500,
        dedup_window_seconds: float = 3600.0,
        escalation_window_seconds: float = 3600.0,
        store: SnapshotStore | None = None,
        writer: BackgroundWriter | None = None,
    ) -> None:
        self._channels: list[AlertChannel] = (
            list(channels) if channels is not None else [ConsoleChannel(), DashboardChannel()]
        )
        self._rules: list[AlertRule] = list(rules) if rules is not None else default_rules()
        self._max_alerts = max_alerts
        self._dedup_window = timedelta(seconds=dedup_window_seconds)
        self._escalation_window = timedelta(seconds=escalation_window_seconds)
        self._store = store
        self._writer = writer if writer is not None else (BackgroundWriter() if store is not None else None)
        self._alerts: list[Alert] = []
        self._escalations: dict[str, EscalationEntry] = {}
        # Rule actions may call back into add_alert.
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Write API
    # ------------------------------------------------------------------

    def add_alert(
        self,
        candidate: AlertCandidate | dict[str, object],
        now: datetime | None = None,
    ) -> Alert | None:
        """Normalise, deduplicate, record and dispatch an alert.

        Parameters
        ----------
        candidate:
            The proposed alert.  Dict keys other than the alert fields are
            merged into ``data``; ``id`` and ``timestamp`` are always
            assigned here.
        now:
            Override the current UTC time (for testing).

        Returns
        -------
        Alert | None
            The accepted alert, or ``None`` when it was deduplicated.
        """
        moment = now or datetime.now(tz=timezone.utc)
        alert = self._normalize(candidate, moment)

        with self._lock:
            if self._is_duplicate(alert, moment):
                logger.debug("Alert deduplicated: %s", alert.message)
                return None
            self._alerts.insert(0, alert)
            del self._alerts[self._max_alerts:]
            if alert.level in ESCALATING_LEVELS:
                self._escalations[f"{alert.type}_{alert.level.value}"] = EscalationEntry(
                    alert=alert,
                    created_at=alert.timestamp,
                    escalate_at=alert.timestamp + self._escalation_window,
                )

        self._process_rules(alert)
        self._dispatch(alert)
        self._persist(alert)
        return alert

    def acknowledge_alert(self, alert_id: str, now: datetime | None = None) -> bool:
        """Mark an alert acknowledged.

        Acknowledging an already-acknowledged alert is a no-op that keeps
        the original ``acknowledged_at``.

        Returns
        -------
        bool
            ``True`` when an alert with this id exists.
        """
        with self._lock:
            alert = self._find(alert_id)
            if alert is None:
                return False
            if not alert.acknowledged:
                alert.acknowledged = True
                alert.acknowledged_at = now or datetime.now(tz=timezone.utc)
            return True

    def check_escalations(self, now: datetime | None = None) -> list[Alert]:
        """Escalate pending alerts whose escalation time has passed.

        Entries whose alert was acknowledged are dropped.  An overdue
        warning produces a new critical ``[ESCALATED]`` alert through
        :meth:`add_alert`; an overdue critical alert is re-sent to the
        critical-only channels.

        Returns
        -------
        list[Alert]
            The original alerts escalated in this sweep.
        """
        moment = now or datetime.now(tz=timezone.utc)
        due: list[Alert] = []

        with self._lock:
            for key, entry in list(self._escalations.items()):
                if entry.alert.acknowledged:
                    del self._escalations[key]
                    continue
                if moment >= entry.escalate_at and not entry.alert.escalated:
                    entry.alert.escalated = True
                    due.append(entry.alert)

        for alert in due:
            if alert.level == AlertLevel.WARNING:
                logger.warning("Escalating unacknowledged alert %s to critical", alert.id)
                self.add_alert(
                    AlertCandidate(
                        level=AlertLevel.CRITICAL,
                        type=alert.type,
                        message=f"[ESCALATED] {alert.message}",
                        data=dict(alert.data),
                        escalated_from=alert.id,
                    ),
                    now=moment,
                )
            elif alert.level == AlertLevel.CRITICAL:
                logger.warning("Re-notifying unacknowledged critical alert %s", alert.id)
                self._dispatch(alert, critical_only=True)

        return due

    def add_rule(
        self,
        rule: AlertRule | None = None,
        *,
        name: str | None = None,
        action: Callable[[Alert], None] | None = None,
        level: AlertLevel | str | None = None,
        type: str | None = None,  # noqa: A002
        condition: Callable[[Alert], bool] | None = None,
    ) -> AlertRule:
        """Append a rule, either prebuilt or from keyword arguments.

        Raises
        ------
        ValueError
            When neither a rule nor ``name`` and ``action`` are supplied.
        """
        if rule is None:
            if name is None or action is None:
                raise ValueError("add_rule requires a rule or both name and action.")
            rule = AlertRule(
                name=name,
                action=action,
                level=AlertLevel(level) if level is not None else None,
                type=type,
                condition=condition,
            )
        with self._lock:
            self._rules.append(rule)
        return rule

    def add_channel(self, channel: AlertChannel) -> None:
        """Register an additional notification channel."""
        with self._lock:
            self._channels.append(channel)

    def set_channel(self, name: str, enabled: bool) -> bool:
        """Enable or disable every channel with this name.

        Returns
        -------
        bool
            ``True`` when at least one channel matched.
        """
        matched = False
        with self._lock:
            for channel in self._channels:
                if channel.name == name:
                    channel.enabled = enabled
                    matched = True
        return matched

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def get_alerts(
        self,
        level: AlertLevel | str | None = None,
        type: str | None = None,  # noqa: A002
        acknowledged: bool | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[Alert]:
        """Return alerts, newest first, matching every supplied filter."""
        wanted_level = AlertLevel(level) if level is not None else None
        with self._lock:
            results = [
                _snapshot(a)
                for a in self._alerts
                if (wanted_level is None or a.level == wanted_level)
                and (type is None or a.type == type)
                and (acknowledged is None or a.acknowledged == acknowledged)
                and (since is None or a.timestamp >= since)
            ]
        return results[:limit] if limit else results

    def get_alert(self, alert_id: str) -> Alert | None:
        with self._lock:
            alert = self._find(alert_id)
            return _snapshot(alert) if alert is not None else None

    def get_alert_stats(self, period: str = "24h", now: datetime | None = None) -> AlertStats:
        """Count alerts by level and type within ``1h``, ``24h`` or ``7d``.

        Unknown periods fall back to ``24h``.
        """
        effective = period if period in STATS_PERIODS else "24h"
        cutoff = (now or datetime.now(tz=timezone.utc)) - STATS_PERIODS[effective]
        stats = AlertStats(period=effective)
        with self._lock:
            for alert in self._alerts:
                if alert.timestamp < cutoff:
                    continue
                stats.total += 1
                setattr(stats, alert.level.value, getattr(stats, alert.level.value) + 1)
                if not alert.acknowledged:
                    stats.unacknowledged += 1
                stats.by_type[alert.type] = stats.by_type.get(alert.type, 0) + 1
        return stats

    def pending_escalations(self) -> dict[str, EscalationEntry]:
        """Return a copy of the pending escalation table."""
        with self._lock:
            return dict(self._escalations)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load_history(self, days: int = 7) -> int:
        """Warm-start history from the store's most recent alert files.

        Returns
        -------
        int
            Number of alerts in history after loading.
        """
        if self._store is None:
            return 0
        try:
            raw_alerts = self._store.load_recent_alerts(days)
        except Exception:
            logger.exception("Failed to load alert history.")
            return len(self._alerts)

        loaded: list[Alert] = []
        for raw in raw_alerts:
            try:
                loaded.append(Alert.from_dict(raw))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed stored alert: %r", raw)

        with self._lock:
            known = {a.id for a in self._alerts}
            self._alerts.extend(a for a in loaded if a.id not in known)
            self._alerts.sort(key=lambda a: a.timestamp, reverse=True)
            del self._alerts[self._max_alerts:]
            count = len(self._alerts)
        logger.info("Loaded %d alerts from history", count)
        return count

    def clear_old_alerts(self, days: int = 30) -> int:
        """Delete stored alert files older than ``days``; returns files removed."""
        if self._store is None:
            return 0
        try:
            return self._store.clear_old_alerts(days)
        except Exception:
            logger.exception("Failed to clear old alert files.")
            return 0

    def flush(self, timeout: float | None = 5.0) -> bool:
        """Wait for pending persistence writes."""
        return self._writer.flush(timeout) if self._writer is not None else True

    def close(self) -> None:
        """Drain pending writes."""
        if self._writer is not None:
            self._writer.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _normalize(self, candidate: AlertCandidate | dict[str, object], moment: datetime) -> Alert:
        if isinstance(candidate, AlertCandidate):
            fields: dict[str, object] = dataclasses.asdict(candidate)
        else:
            fields = {k: v for k, v in candidate.items() if k in _CANDIDATE_FIELDS}
            extras = {
                k: v for k, v in candidate.items() if k not in _CANDIDATE_FIELDS and k not in _ASSIGNED_FIELDS
            }
            if extras:
                merged = dict(fields.get("data") or {})  # type: ignore[call-overload]
                merged.update(extras)
                fields["data"] = merged

        data = fields.get("data")
        escalated_from = fields.get("escalated_from")
        return Alert(
            id=self._generate_id(moment),
            timestamp=moment,
            level=AlertLevel(fields.get("level") or AlertLevel.INFO),
            type=str(fields.get("type") or "general"),
            message=str(fields.get("message") or ""),
            data=dict(data) if isinstance(data, dict) else {},
            acknowledged=bool(fields.get("acknowledged", False)),
            escalated=bool(fields.get("escalated", False)),
            escalated_from=str(escalated_from) if escalated_from else None,
        )

    @staticmethod
    def _generate_id(moment: datetime) -> str:
        return f"alert_{int(moment.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"

    def _is_duplicate(self, alert: Alert, moment: datetime) -> bool:
        cutoff = moment - self._dedup_window
        return any(
            existing.timestamp > cutoff
            and existing.type == alert.type
            and existing.message == alert.message
            and not existing.acknowledged
            for existing in self._alerts
        )

    def _find(self, alert_id: str) -> Alert | None:
        return next((a for a in self._alerts if a.id == alert_id), None)

    def _process_rules(self, alert: Alert) -> None:
        with self._lock:
            rules = list(self._rules)
        for rule in rules:
            try:
                if rule.matches(alert):
                    rule.action(alert)
            except Exception:
                logger.exception("Alert rule %r failed for alert %s", rule.name, alert.id)

    def _dispatch(self, alert: Alert, critical_only: bool = False) -> None:
        with self._lock:
            channels = list(self._channels)
        for channel in channels:
            if not channel.enabled:
                continue
            if critical_only and not channel.critical_only:
                continue
            if channel.critical_only and alert.level != AlertLevel.CRITICAL:
                continue
            try:
                channel.send(alert)
            except Exception:
                logger.exception("Failed to deliver alert %s via %s channel", alert.id, channel.name)

    def _persist(self, alert: Alert) -> None:
        if self._store is None or self._writer is None:
            return
        self._writer.submit(self._store.append_alert, alert.to_dict())

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def channels(self) -> list[AlertChannel]:
        with self._lock:
            return list(self._channels)

    @property
    def rules(self) -> list[AlertRule]:
        with self._lock:
            return list(self._rules)

    @property
    def max_alerts(self) -> int:
        return self._max_alerts


def _snapshot(alert: Alert) -> Alert:
    return dataclasses.replace(alert, data=dict(alert.data))
