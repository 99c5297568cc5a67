"""Persistence package: snapshot stores, background writes and scheduled snapshots."""
from __future__ import annotations

from aumos_agent_telemetry.persistence.snapshots import SnapshotScheduler
from aumos_agent_telemetry.persistence.store import FileSnapshotStore, InMemorySnapshotStore, SnapshotStore
from aumos_agent_telemetry.persistence.writer import BackgroundWriter

__all__ = [
    "BackgroundWriter",
    "FileSnapshotStore",
    "InMemorySnapshotStore",
    "SnapshotScheduler",
    "SnapshotStore",
]
