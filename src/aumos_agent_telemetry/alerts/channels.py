"""Alert notification channels.

The alert manager depends only on the :class:`AlertChannel` protocol.  Four
channels ship with the package:

- :class:`ConsoleChannel`   — writes every alert through :mod:`logging`.
- :class:`EmailChannel`     — critical-only; formats an e-mail for a human
  recipient and hands it to a sender callable (logs it when none is set).
- :class:`DashboardChannel` — keeps recent notifications in memory for a
  presentation layer and forwards them to an optional callback.
- :class:`WebhookChannel`   — POSTs a JSON payload (Slack or generic format).

Example
-------
>>> channel = DashboardChannel()
>>> channel.enabled
True
"""
from __future__ import annotations

import json
import logging
import threading
import urllib.request
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Protocol

from aumos_agent_telemetry.alerts.models import Alert, AlertLevel

logger = logging.getLogger(__name__)

_LOG_LEVELS: dict[AlertLevel, int] = {
    AlertLevel.INFO: logging.INFO,
    AlertLevel.WARNING: logging.WARNING,
    AlertLevel.CRITICAL: logging.CRITICAL,
}


class AlertChannel(Protocol):
    """A notification target for accepted alerts."""

    name: str
    enabled: bool
    critical_only: bool

    def send(self, alert: Alert) -> None: ...


# ---------------------------------------------------------------------------
# Console
# ---------------------------------------------------------------------------


class ConsoleChannel:
    """Logs each alert at a logging level matching its severity."""

    critical_only = False

    def __init__(self, enabled: bool = True, channel_logger: logging.Logger | None = None) -> None:
        self.name = "console"
        self.enabled = enabled
        self._logger = channel_logger or logger

    def send(self, alert: Alert) -> None:
        self._logger.log(
            _LOG_LEVELS.get(alert.level, logging.INFO),
            "[%s] %s (type=%s, id=%s)%s",
            alert.level.value.upper(),
            alert.message,
            alert.type,
            alert.id,
            f" data={json.dumps(alert.data, default=str)}" if alert.data else "",
        )


# ---------------------------------------------------------------------------
# E-mail
# ---------------------------------------------------------------------------


@dataclass
class EmailMessage:
    """A rendered alert e-mail."""

    sender: str
    recipient: str
    subject: str
    body: str


class EmailChannel:
    """Critical-only channel that notifies a human by e-mail.

    Parameters
    ----------
    recipient:
        Address that receives critical alerts.
    sender:
        From address.
    deliver:
        Callable performing the actual delivery.  When omitted the
        rendered message is logged instead.
    enabled:
        Channel starts disabled unless explicitly enabled.
    """

    critical_only = True

    def __init__(
        self,
        recipient: str = "ops@example.com",
        sender: str = "alerts@example.com",
        deliver: Callable[[EmailMessage], None] | None = None,
        enabled: bool = False,
    ) -> None:
        self.name = "email"
        self.enabled = enabled
        self.recipient = recipient
        self.sender = sender
        self._deliver = deliver

    def send(self, alert: Alert) -> None:
        message = self.render(alert)
        if self._deliver is None:
            logger.warning("EMAIL ALERT to %s: %s", message.recipient, message.subject)
            return
        self._deliver(message)

    def render(self, alert: Alert) -> EmailMessage:
        """Build the e-mail for an alert."""
        lines = [
            f"Time: {alert.timestamp.isoformat()}",
            f"Level: {alert.level.value}",
            f"Type: {alert.type}",
            f"Message: {alert.message}",
        ]
        if alert.escalated_from:
            lines.append(f"Escalated from: {alert.escalated_from}")
        if alert.data:
            lines.append("")
            lines.append("Details:")
            lines.append(json.dumps(alert.data, indent=2, default=str))
        return EmailMessage(
            sender=self.sender,
            recipient=self.recipient,
            subject=f"[{alert.level.value.upper()}] {alert.message}",
            body="\n".join(lines),
        )


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


@dataclass
class DashboardNotification:
    """A notification as shown by a dashboard."""

    title: str
    message: str
    level: str
    alert_id: str
    created_at: datetime
    link: str | None = None


class DashboardChannel:
    """Buffers recent alerts as dashboard notifications.

    Parameters
    ----------
    max_notifications:
        Size of the in-memory ring buffer.
    on_notification:
        Optional callable receiving each :class:`DashboardNotification`,
        e.g. to write it to a database owned by the UI layer.
    """

    critical_only = False

    def __init__(
        self,
        max_notifications: int = 100,
        on_notification: Callable[[DashboardNotification], None] | None = None,
        enabled: bool = True,
    ) -> None:
        self.name = "dashboard"
        self.enabled = enabled
        self._notifications: deque[DashboardNotification] = deque(maxlen=max_notifications)
        self._callback = on_notification
        self._lock = threading.Lock()

    def send(self, alert: Alert) -> None:
        link = alert.data.get("link")
        notification = DashboardNotification(
            title=f"[{alert.level.value.upper()}] {alert.type}",
            message=alert.message,
            level=alert.level.value,
            alert_id=alert.id,
            created_at=alert.timestamp,
            link=str(link) if link else None,
        )
        with self._lock:
            self._notifications.appendleft(notification)
        if self._callback is not None:
            self._callback(notification)

    def notifications(self) -> list[DashboardNotification]:
        """Return buffered notifications, newest first."""
        with self._lock:
            return list(self._notifications)


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


class WebhookChannel:
    """POSTs alerts to an HTTP endpoint.

    Parameters
    ----------
    url:
        Endpoint receiving the JSON payload.
    webhook_format:
        ``"slack"`` or ``"generic"`` (default).
    critical_only:
        Only forward critical alerts.
    timeout_seconds:
        HTTP request timeout.
    """

    def __init__(
        self,
        url: str,
        webhook_format: str = "generic",
        critical_only: bool = False,
        timeout_seconds: float = 5.0,
        enabled: bool = True,
    ) -> None:
        self.name = "webhook"
        self.enabled = enabled
        self.critical_only = critical_only
        self._url = url
        self._format = webhook_format.lower()
        self._timeout = timeout_seconds

    def send(self, alert: Alert) -> None:
        payload = self.build_payload(alert)
        req = urllib.request.Request(
            self._url,
            data=payload.encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        with urllib.request.urlopen(req, timeout=self._timeout):  # noqa: S310
            pass

    def build_payload(self, alert: Alert) -> str:
        """Render the request body for an alert."""
        if self._format == "slack":
            return json.dumps(_slack_body(alert))
        return json.dumps(alert.to_dict(), default=str)


def _slack_body(alert: Alert) -> dict[str, object]:
    title = f"[{alert.level.value.upper()}] {alert.type}"
    return {
        "text": title,
        "blocks": [
            {"type": "section", "text": {"type": "mrkdwn", "text": f"*{title}*\n{alert.message}"}},
            {
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"Alert {alert.id} at {alert.timestamp.isoformat()}"}],
            },
        ],
    }
