"""Per-agent and system-wide execution metrics over rolling windows.

MetricsAggregator records each execution into the agent's 1h/24h/7d windows
and into matching system-wide windows, sweeps expired records from every
window on every write, keeps lifetime counters, and checks error-rate,
latency and daily-cost thresholds after each write.

Threshold alerts from one call are forwarded as a batch to the injected
alert sink once the aggregator lock has been released.

Example
-------
>>> aggregator = MetricsAggregator()
>>> snapshot = aggregator.track_execution("lead-qualifier", ExecutionInput(duration_ms=1200.0))
>>> snapshot.executions
1
>>> snapshot.windows["1h"].count
1
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

from aumos_agent_telemetry.alerts.models import AlertCandidate, AlertLevel, AlertSink
from aumos_agent_telemetry.metrics.health import SystemHealth, collect_system_health
from aumos_agent_telemetry.metrics.records import (
    WINDOW_SPANS,
    ExecutionInput,
    ExecutionRecord,
    WindowStats,
    is_error_status,
    window_stats,
)

logger = logging.getLogger(__name__)


@dataclass
class MetricThresholds:
    """Alert thresholds evaluated after every execution.

    Attributes
    ----------
    error_rate_warning:
        24h error rate above which a warning fires.
    error_rate_critical:
        24h error rate above which a critical alert fires.
    min_error_rate_sample:
        The error rate is only evaluated when the 24h window holds more
        records than this.
    response_time_warning_ms:
        1h mean duration above which a warning fires.  There is no
        critical latency tier.
    daily_budget_usd:
        Today's total cost above which a critical alert fires, once per day.
        ``None`` disables the check.
    """

    error_rate_warning: float = 0.10
    error_rate_critical: float = 0.25
    min_error_rate_sample: int = 10
    response_time_warning_ms: float = 30_000.0
    daily_budget_usd: float | None = 100.0


@dataclass
class AgentMetricsSnapshot:
    """Computed metrics for one agent."""

    name: str
    executions: int
    errors: int
    error_rate: float
    avg_duration_ms: float
    total_tokens: int
    total_cost: float
    total_cpu_time_ms: float
    total_memory_delta_bytes: int
    total_api_calls: int
    last_execution: datetime | None
    windows: dict[str, WindowStats]


@dataclass
class SystemMetricsSnapshot:
    """Computed system-wide metrics."""

    uptime_seconds: float
    total_executions: int
    total_errors: int
    error_rate: float
    total_cost: float
    executions_per_hour: int
    avg_response_time_ms: float
    agent_count: int
    windows: dict[str, WindowStats]
    health: SystemHealth | None = None


@dataclass
class _AgentState:
    name: str
    executions: int = 0
    errors: int = 0
    total_duration_ms: float = 0.0
    total_tokens: int = 0
    total_cost: float = 0.0
    total_cpu_time_ms: float = 0.0
    total_memory_delta_bytes: int = 0
    total_api_calls: int = 0
    last_execution: datetime | None = None
    windows: dict[str, deque[ExecutionRecord]] = field(
        default_factory=lambda: {name: deque() for name in WINDOW_SPANS}
    )


@dataclass
class _SystemState:
    start_time: datetime
    total_executions: int = 0
    total_errors: int = 0
    total_cost: float = 0.0
    windows: dict[str, deque[ExecutionRecord]] = field(
        default_factory=lambda: {name: deque() for name in WINDOW_SPANS}
    )


class MetricsAggregator:
    """Thread-safe rolling-window metrics aggregator.

    Parameters
    ----------
    alert_sink:
        Receiver for threshold alerts.  ``None`` disables alerting.
    thresholds:
        Alert thresholds; defaults to :class:`MetricThresholds`.
    include_health:
        Sample host health in :meth:`get_system_metrics`.
    """

    def __init__(
        self,
        alert_sink: AlertSink | None = None,
        thresholds: MetricThresholds | None = None,
        include_health: bool = True,
    ) -> None:
        self._alert_sink = alert_sink
        self._thresholds = thresholds or MetricThresholds()
        self._include_health = include_health
        self._agents: dict[str, _AgentState] = {}
        self._system = _SystemState(start_time=datetime.now(tz=timezone.utc))
        self._daily_budget_fired: set[str] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Write API
    # ------------------------------------------------------------------

    def track_execution(
        self,
        agent_name: str,
        execution: ExecutionInput,
        now: datetime | None = None,
    ) -> AgentMetricsSnapshot:
        """Record one execution and evaluate thresholds.

        Parameters
        ----------
        agent_name:
            Agent that ran the execution.
        execution:
            Execution details.
        now:
            Override the current UTC time (for testing).

        Returns
        -------
        AgentMetricsSnapshot
            The agent's metrics after this execution.
        """
        with self._lock:
            moment = now or datetime.now(tz=timezone.utc)
            agent = self._agents.get(agent_name)
            if agent is None:
                agent = _AgentState(name=agent_name)
                self._agents[agent_name] = agent

            record = ExecutionRecord.from_input(execution, timestamp=moment)
            tagged = ExecutionRecord.from_input(execution, timestamp=moment, agent_name=agent_name)
            for window in agent.windows.values():
                window.append(record)
            for window in self._system.windows.values():
                window.append(tagged)
            self._sweep(moment)

            failed = is_error_status(execution.status)
            agent.executions += 1
            agent.errors += 1 if failed else 0
            agent.total_duration_ms += execution.duration_ms
            agent.total_tokens += execution.tokens_used
            agent.total_cost += execution.cost
            agent.total_cpu_time_ms += execution.cpu_time_ms
            agent.total_memory_delta_bytes += execution.memory_delta_bytes
            agent.total_api_calls += execution.api_calls
            agent.last_execution = moment

            self._system.total_executions += 1
            self._system.total_errors += 1 if failed else 0
            self._system.total_cost += execution.cost

            alerts = self._check_thresholds(agent, moment)
            snapshot = self._agent_snapshot(agent, moment)

        self._emit(alerts)
        return snapshot

    def set_thresholds(self, **overrides: float | int | None) -> MetricThresholds:
        """Update selected threshold fields.

        Raises
        ------
        AttributeError
            For an unknown threshold name.
        """
        with self._lock:
            for key, value in overrides.items():
                if not hasattr(self._thresholds, key):
                    raise AttributeError(f"Unknown threshold '{key}'")
                setattr(self._thresholds, key, value)
            return self._thresholds

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def get_agent_metrics(self, agent_name: str, now: datetime | None = None) -> AgentMetricsSnapshot | None:
        """Return computed metrics for one agent, or ``None`` if unknown."""
        with self._lock:
            agent = self._agents.get(agent_name)
            if agent is None:
                return None
            return self._agent_snapshot(agent, now or datetime.now(tz=timezone.utc))

    def get_system_metrics(self, now: datetime | None = None) -> SystemMetricsSnapshot:
        """Return system-wide metrics, including host health when enabled."""
        moment = now or datetime.now(tz=timezone.utc)
        with self._lock:
            windows = {name: window_stats(self._live(records, name, moment)) for name, records in self._system.windows.items()}
            system = self._system
            hour = windows["1h"]
            snapshot = SystemMetricsSnapshot(
                uptime_seconds=max(0.0, (moment - system.start_time).total_seconds()),
                total_executions=system.total_executions,
                total_errors=system.total_errors,
                error_rate=(system.total_errors / system.total_executions) if system.total_executions else 0.0,
                total_cost=system.total_cost,
                executions_per_hour=hour.count,
                avg_response_time_ms=hour.avg_duration_ms,
                agent_count=len(self._agents),
                windows=windows,
            )
        if self._include_health:
            snapshot.health = collect_system_health()
        return snapshot

    def get_all_metrics(self, now: datetime | None = None) -> dict[str, object]:
        """Return ``{"system", "agents", "timestamp"}`` for every agent."""
        moment = now or datetime.now(tz=timezone.utc)
        with self._lock:
            agents = [self._agent_snapshot(agent, moment) for agent in self._agents.values()]
        return {
            "system": self.get_system_metrics(now=moment),
            "agents": agents,
            "timestamp": moment,
        }

    def get_daily_cost(self, day: str, now: datetime | None = None) -> float:
        """Return the cost of executions recorded on a ``YYYY-MM-DD`` day within the 24h window."""
        with self._lock:
            return self._daily_cost(day, now or datetime.now(tz=timezone.utc))

    def agent_names(self) -> list[str]:
        with self._lock:
            return list(self._agents)

    # ------------------------------------------------------------------
    # Snapshot support
    # ------------------------------------------------------------------

    def export_state(self, now: datetime | None = None) -> dict[str, object]:
        """Return JSON-friendly lifetime counters for system and agents."""
        moment = now or datetime.now(tz=timezone.utc)
        with self._lock:
            system = self._system
            return {
                "system": {
                    "total_executions": system.total_executions,
                    "total_errors": system.total_errors,
                    "total_cost": system.total_cost,
                    "start_time": system.start_time.isoformat(),
                    "error_rate": (system.total_errors / system.total_executions) if system.total_executions else 0.0,
                    "executions_per_hour": len(self._live(system.windows["1h"], "1h", moment)),
                },
                "agents": [
                    {
                        "name": agent.name,
                        "executions": agent.executions,
                        "errors": agent.errors,
                        "error_rate": (agent.errors / agent.executions) if agent.executions else 0.0,
                        "avg_duration_ms": (agent.total_duration_ms / agent.executions) if agent.executions else 0.0,
                        "total_duration_ms": agent.total_duration_ms,
                        "total_tokens": agent.total_tokens,
                        "total_cost": agent.total_cost,
                        "total_cpu_time_ms": agent.total_cpu_time_ms,
                        "total_memory_delta_bytes": agent.total_memory_delta_bytes,
                        "total_api_calls": agent.total_api_calls,
                        "last_execution": agent.last_execution.isoformat() if agent.last_execution else None,
                    }
                    for agent in self._agents.values()
                ],
                "timestamp": moment.isoformat(),
            }

    def restore_state(self, state: dict[str, object]) -> int:
        """Restore lifetime counters from :meth:`export_state` output.

        Rolling windows start empty.  Malformed agent entries are skipped.

        Returns
        -------
        int
            Number of agents restored.
        """
        system_raw = state.get("system")
        agents_raw = state.get("agents")
        restored = 0
        with self._lock:
            if isinstance(system_raw, dict):
                self._system.total_executions = int(system_raw.get("total_executions", 0))
                self._system.total_errors = int(system_raw.get("total_errors", 0))
                self._system.total_cost = float(system_raw.get("total_cost", 0.0))
            if not isinstance(agents_raw, list):
                return 0
            for raw in agents_raw:
                if not isinstance(raw, dict):
                    continue
                try:
                    executions = int(raw.get("executions", 0))
                    last = raw.get("last_execution")
                    agent = _AgentState(
                        name=str(raw["name"]),
                        executions=executions,
                        errors=min(int(raw.get("errors", 0)), executions),
                        total_duration_ms=float(
                            raw.get("total_duration_ms", executions * float(raw.get("avg_duration_ms", 0.0)))
                        ),
                        total_tokens=int(raw.get("total_tokens", 0)),
                        total_cost=float(raw.get("total_cost", 0.0)),
                        total_cpu_time_ms=float(raw.get("total_cpu_time_ms", 0.0)),
                        total_memory_delta_bytes=int(raw.get("total_memory_delta_bytes", 0)),
                        total_api_calls=int(raw.get("total_api_calls", 0)),
                        last_execution=datetime.fromisoformat(str(last)) if last else None,
                    )
                except (KeyError, TypeError, ValueError):
                    logger.warning("Skipping malformed agent metrics in snapshot: %r", raw)
                    continue
                self._agents[agent.name] = agent
                restored += 1
        return restored

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _sweep(self, moment: datetime) -> None:
        """Drop expired records from every agent and system window."""
        holders = [agent.windows for agent in self._agents.values()]
        holders.append(self._system.windows)
        for windows in holders:
            for name, records in windows.items():
                span = WINDOW_SPANS[name]
                while records and moment - records[0].timestamp >= span:
                    records.popleft()

    @staticmethod
    def _live(records: deque[ExecutionRecord], name: str, moment: datetime) -> list[ExecutionRecord]:
        span = WINDOW_SPANS[name]
        return [r for r in records if moment - r.timestamp < span]

    def _agent_snapshot(self, agent: _AgentState, moment: datetime) -> AgentMetricsSnapshot:
        return AgentMetricsSnapshot(
            name=agent.name,
            executions=agent.executions,
            errors=agent.errors,
            error_rate=(agent.errors / agent.executions) if agent.executions else 0.0,
            avg_duration_ms=(agent.total_duration_ms / agent.executions) if agent.executions else 0.0,
            total_tokens=agent.total_tokens,
            total_cost=agent.total_cost,
            total_cpu_time_ms=agent.total_cpu_time_ms,
            total_memory_delta_bytes=agent.total_memory_delta_bytes,
            total_api_calls=agent.total_api_calls,
            last_execution=agent.last_execution,
            windows={name: window_stats(self._live(records, name, moment)) for name, records in agent.windows.items()},
        )

    def _daily_cost(self, day: str, moment: datetime) -> float:
        return sum(
            r.cost
            for r in self._live(self._system.windows["24h"], "24h", moment)
            if r.timestamp.strftime("%Y-%m-%d") == day
        )

    def _check_thresholds(self, agent: _AgentState, moment: datetime) -> list[AlertCandidate]:
        thresholds = self._thresholds
        alerts: list[AlertCandidate] = []

        day_window = agent.windows["24h"]
        if len(day_window) > thresholds.min_error_rate_sample:
            stats = window_stats(day_window)
            if stats.error_rate > thresholds.error_rate_critical:
                alerts.append(self._error_rate_alert(agent.name, stats.error_rate, AlertLevel.CRITICAL, thresholds.error_rate_critical))
            elif stats.error_rate > thresholds.error_rate_warning:
                alerts.append(self._error_rate_alert(agent.name, stats.error_rate, AlertLevel.WARNING, thresholds.error_rate_warning))

        hour_window = agent.windows["1h"]
        if hour_window:
            avg_ms = window_stats(hour_window).avg_duration_ms
            if avg_ms > thresholds.response_time_warning_ms:
                alerts.append(
                    AlertCandidate(
                        level=AlertLevel.WARNING,
                        type="response_time",
                        message=(
                            f"Agent {agent.name} avg response time is {avg_ms / 1000:.1f}s "
                            f"(threshold: {thresholds.response_time_warning_ms / 1000:.0f}s)"
                        ),
                        data={"agent": agent.name, "value": avg_ms, "threshold": thresholds.response_time_warning_ms},
                    )
                )

        if thresholds.daily_budget_usd is not None:
            today = moment.strftime("%Y-%m-%d")
            cost_today = self._daily_cost(today, moment)
            if cost_today > thresholds.daily_budget_usd and today not in self._daily_budget_fired:
                self._daily_budget_fired.add(today)
                alerts.append(
                    AlertCandidate(
                        level=AlertLevel.CRITICAL,
                        type="daily_budget",
                        message=f"Daily cost ${cost_today:.2f} exceeds budget ${thresholds.daily_budget_usd:.2f}",
                        data={"value": cost_today, "threshold": thresholds.daily_budget_usd, "date": today},
                    )
                )

        return alerts

    @staticmethod
    def _error_rate_alert(agent_name: str, rate: float, level: AlertLevel, threshold: float) -> AlertCandidate:
        return AlertCandidate(
            level=level,
            type="error_rate",
            message=(
                f"Agent {agent_name} error rate is {rate * 100:.1f}% "
                f"({level.value} threshold: {threshold * 100:.0f}%)"
            ),
            data={"agent": agent_name, "value": rate, "threshold": threshold},
        )

    def _emit(self, alerts: list[AlertCandidate]) -> None:
        if not alerts:
            return
        if self._alert_sink is None:
            logger.debug("No alert sink configured; dropping %d metric alerts", len(alerts))
            return
        for candidate in alerts:
            try:
                self._alert_sink.add_alert(candidate)
            except Exception:
                logger.exception("Alert sink raised while reporting %s", candidate.type)

    @property
    def thresholds(self) -> MetricThresholds:
        return self._thresholds

    @property
    def start_time(self) -> datetime:
        return self._system.start_time
