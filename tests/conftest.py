"""Shared fixtures for the aumos-agent-telemetry test suite."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from aumos_agent_telemetry.alerts.models import AlertCandidate


class RecordingSink:
    """Alert sink that keeps every candidate it receives."""

    def __init__(self) -> None:
        self.received: list[AlertCandidate] = []

    def add_alert(self, candidate: AlertCandidate) -> None:
        self.received.append(candidate)

    def of_type(self, alert_type: str) -> list[AlertCandidate]:
        return [c for c in self.received if c.type == alert_type]


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def base_time() -> datetime:
    return datetime(2024, 3, 14, 12, 0, 0, tzinfo=timezone.utc)
