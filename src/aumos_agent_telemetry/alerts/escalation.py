"""Periodic escalation sweep.

EscalationMonitor schedules :meth:`AlertManager.check_escalations` on an
APScheduler ``BackgroundScheduler`` interval job (default: every five
minutes).  The sweep takes the manager's lock like any foreground call, so
it can run alongside any number of tracking calls.

Example
-------
>>> from aumos_agent_telemetry.alerts.manager import AlertManager
>>> monitor = EscalationMonitor(AlertManager(), interval_seconds=300)
>>> monitor.run_once()
[]
"""
from __future__ import annotations

import logging
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore[import-untyped]

from aumos_agent_telemetry.alerts.manager import AlertManager
from aumos_agent_telemetry.alerts.models import Alert

logger = logging.getLogger(__name__)

_JOB_ID = "alert_escalation_sweep"


class EscalationMonitor:
    """Runs the alert escalation sweep on a fixed interval.

    Parameters
    ----------
    manager:
        The :class:`AlertManager` whose escalations are checked.
    interval_seconds:
        Seconds between sweeps.
    scheduler:
        Shared scheduler to register the job on.  A private
        ``BackgroundScheduler`` is created when omitted.
    """

    def __init__(
        self,
        manager: AlertManager,
        interval_seconds: float = 300.0,
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        self._manager = manager
        self._interval = interval_seconds
        self._owns_scheduler = scheduler is None
        self._scheduler = scheduler if scheduler is not None else BackgroundScheduler(daemon=True)
        self._started = False

    def run_once(self, now: datetime | None = None) -> list[Alert]:
        """Run one sweep; failures are logged, never raised."""
        try:
            return self._manager.check_escalations(now=now)
        except Exception:
            logger.exception("Alert escalation sweep failed")
            return []

    def start(self) -> None:
        """Register the interval job and start the scheduler if owned."""
        if self._started:
            return
        self._scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(seconds=self._interval),
            id=_JOB_ID,
            name="Alert escalation sweep",
            replace_existing=True,
        )
        if self._owns_scheduler:
            self._scheduler.start()
        self._started = True
        logger.info("Escalation monitor started (every %.0f s)", self._interval)

    def stop(self) -> None:
        """Remove the job and shut down an owned scheduler."""
        if not self._started:
            return
        try:
            self._scheduler.remove_job(_JOB_ID)
        except Exception:
            logger.debug("Escalation job already removed")
        if self._owns_scheduler:
            self._scheduler.shutdown(wait=False)
        self._started = False
        logger.info("Escalation monitor stopped")

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._started
