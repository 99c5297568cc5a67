"""Best-effort snapshot and alert-history storage.

The telemetry core never treats these stores as a source of truth: they
exist so a restarted process can warm-start its in-memory state.  Core
components depend only on the :class:`SnapshotStore` protocol; tests inject
:class:`InMemorySnapshotStore`.

:class:`FileSnapshotStore` lays files out under one data directory::

    <data_dir>/metrics/snapshot-<YYYY-MM-DDTHH-MM-SS>.json   full snapshots
    <data_dir>/alerts/alerts-<YYYY-MM-DD>.jsonl             one alert per line
    <data_dir>/costs/daily-cost-<YYYY-MM-DD>.json           daily cost reports

Example
-------
>>> from pathlib import Path
>>> store = FileSnapshotStore(Path("/tmp/telemetry"))
>>> store.append_alert({"id": "a1", "timestamp": "2025-01-01T00:00:00+00:00"})
>>> len(store.load_recent_alerts())
1
"""
from __future__ import annotations

import json
import logging
import threading
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, Protocol

logger = logging.getLogger(__name__)

_SNAPSHOT_PREFIX: str = "snapshot-"
_ALERT_PREFIX: str = "alerts-"
_COST_REPORT_PREFIX: str = "daily-cost-"


class SnapshotStore(Protocol):
    """Persistence adapter used by the telemetry core."""

    def save_snapshot(self, snapshot: dict[str, object], taken_at: datetime | None = None) -> str: ...

    def load_latest_snapshot(self) -> dict[str, object] | None: ...

    def append_alert(self, alert: dict[str, object]) -> None: ...

    def load_recent_alerts(self, days: int = 7) -> list[dict[str, object]]: ...

    def save_cost_report(self, report: dict[str, object]) -> str: ...

    def clear_old_alerts(self, days: int = 30, today: date | None = None) -> int: ...


def _alert_day(alert: dict[str, object]) -> str:
    """Return the ``YYYY-MM-DD`` day an alert belongs to."""
    raw = alert.get("timestamp")
    if isinstance(raw, str) and len(raw) >= 10:
        return raw[:10]
    return datetime.now(tz=timezone.utc).strftime("%Y-%m-%d")


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class InMemorySnapshotStore:
    """Dict-backed :class:`SnapshotStore` for tests and ephemeral processes."""

    def __init__(self) -> None:
        self.snapshots: list[dict[str, object]] = []
        self.alerts_by_day: dict[str, list[dict[str, object]]] = {}
        self.cost_reports: dict[str, dict[str, object]] = {}
        self._lock = threading.Lock()

    def save_snapshot(self, snapshot: dict[str, object], taken_at: datetime | None = None) -> str:
        with self._lock:
            self.snapshots.append(json.loads(json.dumps(snapshot, default=str)))
            return f"memory://snapshot/{len(self.snapshots)}"

    def load_latest_snapshot(self) -> dict[str, object] | None:
        with self._lock:
            return self.snapshots[-1] if self.snapshots else None

    def append_alert(self, alert: dict[str, object]) -> None:
        with self._lock:
            self.alerts_by_day.setdefault(_alert_day(alert), []).append(dict(alert))

    def load_recent_alerts(self, days: int = 7) -> list[dict[str, object]]:
        with self._lock:
            recent_days = sorted(self.alerts_by_day, reverse=True)[:days]
            return [dict(a) for day in recent_days for a in self.alerts_by_day[day]]

    def save_cost_report(self, report: dict[str, object]) -> str:
        key = str(report.get("date", "unknown"))
        with self._lock:
            self.cost_reports[key] = dict(report)
        return f"memory://costs/{key}"

    def clear_old_alerts(self, days: int = 30, today: date | None = None) -> int:
        cutoff = ((today or date.today()) - timedelta(days=days)).isoformat()
        with self._lock:
            stale = [day for day in self.alerts_by_day if day < cutoff]
            for day in stale:
                del self.alerts_by_day[day]
            return len(stale)


# ---------------------------------------------------------------------------
# File store
# ---------------------------------------------------------------------------


class FileSnapshotStore:
    """Flat-file :class:`SnapshotStore`.

    Parameters
    ----------
    data_dir:
        Root directory.  Sub-directories are created on first write.
    max_snapshots:
        Number of snapshot files kept; older ones are deleted after each
        save (default: 168, one week of hourly snapshots).
    """

    def __init__(self, data_dir: Path, max_snapshots: int = 168) -> None:
        self._data_dir = data_dir
        self._max_snapshots = max_snapshots
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def save_snapshot(self, snapshot: dict[str, object], taken_at: datetime | None = None) -> str:
        """Write a snapshot file and prune old ones.

        Returns
        -------
        str
            Path of the written file.
        """
        moment = taken_at or datetime.now(tz=timezone.utc)
        filename = f"{_SNAPSHOT_PREFIX}{moment.strftime('%Y-%m-%dT%H-%M-%S')}.json"
        target = self.metrics_dir / filename
        with self._lock:
            self.metrics_dir.mkdir(parents=True, exist_ok=True)
            target.write_text(json.dumps(snapshot, indent=2, default=str), encoding="utf-8")
            self._prune_snapshots()
        return str(target)

    def load_latest_snapshot(self) -> dict[str, object] | None:
        """Return the newest readable snapshot, or ``None``."""
        for path in self.snapshot_files():
            try:
                loaded = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError):
                logger.warning("Skipping unreadable snapshot %s", path)
                continue
            if isinstance(loaded, dict):
                logger.info("Loaded snapshot from %s", path.name)
                return loaded
        return None

    def snapshot_files(self) -> list[Path]:
        """Snapshot files, newest first."""
        if not self.metrics_dir.exists():
            return []
        return sorted(self.metrics_dir.glob(f"{_SNAPSHOT_PREFIX}*.json"), reverse=True)

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def append_alert(self, alert: dict[str, object]) -> None:
        """Append one alert to its day's JSONL file."""
        target = self.alerts_dir / f"{_ALERT_PREFIX}{_alert_day(alert)}.jsonl"
        with self._lock:
            self.alerts_dir.mkdir(parents=True, exist_ok=True)
            with target.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(alert, default=str) + "\n")

    def load_recent_alerts(self, days: int = 7) -> list[dict[str, object]]:
        """Return alerts from the ``days`` most recent alert files."""
        if not self.alerts_dir.exists():
            return []
        files = sorted(self.alerts_dir.glob(f"{_ALERT_PREFIX}*.jsonl"), reverse=True)[:days]
        alerts: list[dict[str, object]] = []
        for path in files:
            alerts.extend(self._iter_jsonl(path))
        return alerts

    def clear_old_alerts(self, days: int = 30, today: date | None = None) -> int:
        """Delete alert files older than ``days`` days.

        Returns
        -------
        int
            Number of files removed.
        """
        if not self.alerts_dir.exists():
            return 0
        cutoff = ((today or date.today()) - timedelta(days=days)).isoformat()
        removed = 0
        for path in self.alerts_dir.glob(f"{_ALERT_PREFIX}*.jsonl"):
            day = path.stem[len(_ALERT_PREFIX):]
            if day < cutoff:
                path.unlink()
                removed += 1
                logger.info("Removed old alert file %s", path.name)
        return removed

    # ------------------------------------------------------------------
    # Cost reports
    # ------------------------------------------------------------------

    def save_cost_report(self, report: dict[str, object]) -> str:
        """Write a daily cost report, replacing any report for that day."""
        day = str(report.get("date", datetime.now(tz=timezone.utc).strftime("%Y-%m-%d")))
        target = self.costs_dir / f"{_COST_REPORT_PREFIX}{day}.json"
        with self._lock:
            self.costs_dir.mkdir(parents=True, exist_ok=True)
            target.write_text(json.dumps(report, indent=2, default=str), encoding="utf-8")
        return str(target)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _prune_snapshots(self) -> None:
        stale = sorted(self.metrics_dir.glob(f"{_SNAPSHOT_PREFIX}*.json"), reverse=True)[self._max_snapshots:]
        for path in stale:
            path.unlink()

    def _iter_jsonl(self, path: Path) -> Iterator[dict[str, object]]:
        with self._lock:
            with path.open("r", encoding="utf-8") as fh:
                for line in fh:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        record = json.loads(line)
                    except json.JSONDecodeError:
                        continue  # Skip malformed lines.
                    if isinstance(record, dict):
                        yield record

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    @property
    def metrics_dir(self) -> Path:
        return self._data_dir / "metrics"

    @property
    def alerts_dir(self) -> Path:
        return self._data_dir / "alerts"

    @property
    def costs_dir(self) -> Path:
        return self._data_dir / "costs"
