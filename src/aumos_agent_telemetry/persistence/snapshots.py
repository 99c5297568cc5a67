"""Periodic full-state snapshots.

SnapshotScheduler calls a snapshot producer on an APScheduler interval job
(default: hourly) and writes the result to a
:class:`~aumos_agent_telemetry.persistence.store.SnapshotStore`.  Write
failures are logged and never propagate.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore[import-untyped]

from aumos_agent_telemetry.persistence.store import SnapshotStore

logger = logging.getLogger(__name__)

_JOB_ID = "telemetry_snapshot"


class SnapshotScheduler:
    """Writes snapshots produced by ``producer`` every ``interval_seconds``.

    Parameters
    ----------
    producer:
        Zero-argument callable returning the JSON-friendly state to save.
    store:
        Destination store.
    interval_seconds:
        Seconds between snapshots.
    scheduler:
        Shared scheduler; a private one is created when omitted.
    """

    def __init__(
        self,
        producer: Callable[[], dict[str, object]],
        store: SnapshotStore,
        interval_seconds: float = 3600.0,
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        self._producer = producer
        self._store = store
        self._interval = interval_seconds
        self._owns_scheduler = scheduler is None
        self._scheduler = scheduler if scheduler is not None else BackgroundScheduler(daemon=True)
        self._started = False

    def save_now(self, taken_at: datetime | None = None) -> str | None:
        """Produce and store one snapshot.

        Returns
        -------
        str | None
            Location of the written snapshot, or ``None`` on failure.
        """
        try:
            snapshot = self._producer()
            location = self._store.save_snapshot(snapshot, taken_at or datetime.now(tz=timezone.utc))
        except Exception:
            logger.exception("Failed to save telemetry snapshot")
            return None
        logger.info("Saved telemetry snapshot to %s", location)
        return location

    def start(self) -> None:
        if self._started:
            return
        self._scheduler.add_job(
            self.save_now,
            trigger=IntervalTrigger(seconds=self._interval),
            id=_JOB_ID,
            name="Telemetry snapshot",
            replace_existing=True,
        )
        if self._owns_scheduler:
            self._scheduler.start()
        self._started = True

    def stop(self, final_snapshot: bool = True) -> None:
        """Stop the job, optionally writing one last snapshot."""
        if not self._started:
            return
        try:
            self._scheduler.remove_job(_JOB_ID)
        except Exception:
            logger.debug("Snapshot job already removed")
        if self._owns_scheduler:
            self._scheduler.shutdown(wait=False)
        self._started = False
        if final_snapshot:
            self.save_now()

    @property
    def running(self) -> bool:
        return self._started
