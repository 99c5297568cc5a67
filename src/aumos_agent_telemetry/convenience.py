"""Convenience API for aumos-agent-telemetry — wired telemetry in three lines.

Example
-------
::

    from aumos_agent_telemetry import AgentTelemetry
    telemetry = AgentTelemetry()
    agent = telemetry.create_agent("lead-qualifier", department="sales", model="sonnet")
    result = agent.execute_sync(lambda: "qualified")

"""
from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler  # type: ignore[import-untyped]

from aumos_agent_telemetry.alerts.channels import (
    AlertChannel,
    ConsoleChannel,
    DashboardChannel,
    EmailChannel,
    WebhookChannel,
)
from aumos_agent_telemetry.alerts.escalation import EscalationMonitor
from aumos_agent_telemetry.alerts.manager import AlertManager
from aumos_agent_telemetry.config.loader import ConfigLoader, TelemetryConfig
from aumos_agent_telemetry.cost.budget import DepartmentBudgets
from aumos_agent_telemetry.cost.ledger import CostLedger
from aumos_agent_telemetry.cost.pricing import PricingTable
from aumos_agent_telemetry.cost.reporter import CostReporter
from aumos_agent_telemetry.execution.wrapper import ExecutionWrapper
from aumos_agent_telemetry.metrics.aggregator import MetricsAggregator, MetricThresholds
from aumos_agent_telemetry.persistence.snapshots import SnapshotScheduler
from aumos_agent_telemetry.persistence.store import FileSnapshotStore, SnapshotStore
from aumos_agent_telemetry.persistence.writer import BackgroundWriter

logger = logging.getLogger(__name__)

_RECENT_ALERTS_IN_SNAPSHOT = 50


class AgentTelemetry:
    """Cost ledger, metrics aggregator and alert manager wired together.

    The ledger and aggregator report threshold alerts to the alert manager;
    agents created with :meth:`create_agent` feed both.  Background work
    (escalation sweep, hourly snapshots) only runs between :meth:`start`
    and :meth:`stop`.

    Parameters
    ----------
    config:
        Validated configuration; defaults apply when omitted.
    store:
        Persistence adapter.  When omitted a :class:`FileSnapshotStore` is
        created if ``config.persistence.enabled`` is set.
    writer:
        Executor for alert persistence writes.
    """

    def __init__(
        self,
        config: TelemetryConfig | None = None,
        store: SnapshotStore | None = None,
        writer: BackgroundWriter | None = None,
    ) -> None:
        self._config = config or ConfigLoader().defaults()
        cfg = self._config

        if store is None and cfg.persistence.enabled:
            store = FileSnapshotStore(cfg.persistence.data_dir, max_snapshots=cfg.persistence.max_snapshots)
        self._store = store

        self.alerts = AlertManager(
            channels=self._build_channels(cfg),
            max_alerts=cfg.alerts.max_alerts,
            dedup_window_seconds=cfg.alerts.dedup_window_seconds,
            escalation_window_seconds=cfg.alerts.escalation_window_seconds,
            store=store,
            writer=writer,
        )
        self.pricing = PricingTable(
            tiers=[t.to_tier() for t in cfg.pricing.tiers],
            default_tier=cfg.pricing.default_tier,
        )
        self.ledger = CostLedger(
            pricing=self.pricing,
            budgets=DepartmentBudgets(cfg.budgets.departments, default_usd=cfg.budgets.default_usd),
            alert_sink=self.alerts,
        )
        self.metrics = MetricsAggregator(
            alert_sink=self.alerts,
            thresholds=MetricThresholds(**cfg.thresholds.model_dump(include=set(MetricThresholds.__dataclass_fields__))),
        )
        self.reporter = CostReporter(self.ledger, store=store)

        self._agents: dict[str, ExecutionWrapper] = {}
        self._scheduler: BackgroundScheduler | None = None
        self._escalation: EscalationMonitor | None = None
        self._snapshots: SnapshotScheduler | None = None

    @classmethod
    def from_config(cls, config: TelemetryConfig | Path, store: SnapshotStore | None = None) -> AgentTelemetry:
        """Build an instance from a config object or a YAML path."""
        if isinstance(config, Path):
            config = ConfigLoader().load(config)
        return cls(config=config, store=store)

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def create_agent(self, name: str, department: str = "default", model: str = "haiku") -> ExecutionWrapper:
        """Return the wrapper for an agent, creating it on first use."""
        wrapper = self._agents.get(name)
        if wrapper is None:
            wrapper = ExecutionWrapper(name, department, self.ledger, self.metrics, self.alerts, model=model)
            self._agents[name] = wrapper
        return wrapper

    def agents(self) -> list[ExecutionWrapper]:
        return list(self._agents.values())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, warm: bool = True) -> None:
        """Warm-start from the store and start the background jobs."""
        if self._scheduler is not None:
            return
        if warm:
            self.warm_start()

        self._scheduler = BackgroundScheduler(daemon=True)
        self._escalation = EscalationMonitor(
            self.alerts,
            interval_seconds=self._config.alerts.escalation_check_interval_seconds,
            scheduler=self._scheduler,
        )
        self._escalation.start()
        if self._store is not None:
            self._snapshots = SnapshotScheduler(
                self.snapshot,
                self._store,
                interval_seconds=self._config.persistence.snapshot_interval_seconds,
                scheduler=self._scheduler,
            )
            self._snapshots.start()
        self._scheduler.start()
        logger.info("Agent telemetry started")

    def stop(self) -> None:
        """Stop background jobs, write a final snapshot and drain writes."""
        if self._escalation is not None:
            self._escalation.stop()
            self._escalation = None
        if self._snapshots is not None:
            self._snapshots.stop(final_snapshot=True)
            self._snapshots = None
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        self.alerts.clear_old_alerts(self._config.persistence.alert_retention_days)
        self.alerts.close()
        logger.info("Agent telemetry stopped")

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self, now: datetime | None = None) -> dict[str, object]:
        """Return a JSON-friendly snapshot of metrics, costs and alerts."""
        moment = now or datetime.now(tz=timezone.utc)
        return {
            "timestamp": moment.isoformat(),
            "metrics": self.metrics.export_state(now=moment),
            "costs": self.ledger.export_state(),
            "alerts": {
                "stats": asdict(self.alerts.get_alert_stats(now=moment)),
                "recent": [a.to_dict() for a in self.alerts.get_alerts(limit=_RECENT_ALERTS_IN_SNAPSHOT)],
            },
        }

    def restore(self, snapshot: dict[str, object]) -> None:
        """Restore lifetime metrics and cost state from :meth:`snapshot` output."""
        metrics = snapshot.get("metrics")
        costs = snapshot.get("costs")
        if isinstance(metrics, dict):
            self.metrics.restore_state(metrics)
        if isinstance(costs, dict):
            self.ledger.restore_state(costs)

    def warm_start(self) -> bool:
        """Load the latest snapshot and recent alert history from the store.

        Returns
        -------
        bool
            ``True`` when a snapshot was restored.
        """
        if self._store is None:
            return False
        self.alerts.load_history(self._config.persistence.alert_history_days)
        try:
            latest = self._store.load_latest_snapshot()
        except Exception:
            logger.exception("Failed to load latest telemetry snapshot")
            return False
        if latest is None:
            return False
        self.restore(latest)
        logger.info("Restored telemetry state from snapshot taken at %s", latest.get("timestamp"))
        return True

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def get_all_metrics(self) -> dict[str, object]:
        return self.metrics.get_all_metrics()

    def get_all_costs(self) -> dict[str, object]:
        return self.ledger.get_all_costs()

    def generate_daily_report(self) -> dict[str, object]:
        return self.reporter.generate_daily_report()

    @property
    def config(self) -> TelemetryConfig:
        return self._config

    @property
    def store(self) -> SnapshotStore | None:
        return self._store

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _build_channels(cfg: TelemetryConfig) -> list[AlertChannel]:
        alerts = cfg.alerts
        channels: list[AlertChannel] = [
            ConsoleChannel(enabled=alerts.console_enabled),
            EmailChannel(recipient=alerts.email_recipient, enabled=alerts.email_enabled),
            DashboardChannel(enabled=alerts.dashboard_enabled),
        ]
        if alerts.webhook_url:
            channels.append(
                WebhookChannel(
                    alerts.webhook_url,
                    webhook_format=alerts.webhook_format,
                    critical_only=alerts.webhook_critical_only,
                )
            )
        return channels

    def __repr__(self) -> str:
        return f"AgentTelemetry(agents={len(self._agents)}, running={self.running})"
