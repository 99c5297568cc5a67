"""Execution wrapper for agent work.

ExecutionWrapper measures executions of an agent (duration, process CPU
time, memory delta and API calls), prices their token usage through the
:class:`CostLedger`, records them in the :class:`MetricsAggregator`, and
reports failures to the alert sink.

:meth:`ExecutionWrapper.execute` and :meth:`ExecutionWrapper.execute_sync`
keep their in-flight state per call, so overlapping executions of the same
agent (``asyncio.gather`` or threads) are each recorded.  The manual
:meth:`~ExecutionWrapper.start_execution` / :meth:`~ExecutionWrapper.end_execution`
pair tracks one execution at a time.

Example
-------
>>> import asyncio
>>> from aumos_agent_telemetry.alerts.manager import AlertManager
>>> from aumos_agent_telemetry.cost.ledger import CostLedger
>>> from aumos_agent_telemetry.metrics.aggregator import MetricsAggregator
>>> wrapper = ExecutionWrapper("lead-qualifier", "sales", CostLedger(), MetricsAggregator(), AlertManager())
>>> async def work() -> str:
...     return "qualified"
>>> result = asyncio.run(wrapper.execute(work))
>>> result.success, result.result
(True, 'qualified')
"""
from __future__ import annotations

import logging
import threading
import time
import traceback
from contextvars import ContextVar
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Generic, TypeVar

from aumos_agent_telemetry.alerts.models import AlertCandidate, AlertLevel, AlertSink
from aumos_agent_telemetry.cost.ledger import AgentCostEntry, CostInput, CostLedger
from aumos_agent_telemetry.metrics.aggregator import AgentMetricsSnapshot, MetricsAggregator
from aumos_agent_telemetry.metrics.health import ProcessUsage, process_usage
from aumos_agent_telemetry.metrics.records import ExecutionInput, is_error_status

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ExecutionSummary:
    """Measurements for one finished execution."""

    agent: str
    department: str
    status: str
    duration_ms: float
    cpu_time_ms: float
    memory_delta_bytes: int
    api_calls: int
    model: str
    tokens_used: int
    cost: float
    error: str | None = None


@dataclass
class ExecutionResult(Generic[T]):
    """Outcome of :meth:`ExecutionWrapper.execute`.

    Exactly one of ``result`` and ``error`` is meaningful, depending on
    ``success``.
    """

    success: bool
    result: T | None = None
    error: BaseException | None = None
    metrics: ExecutionSummary | None = None


@dataclass
class _InFlight:
    started: float
    baseline: ProcessUsage
    api_calls: int = 0


# Execution started by execute()/execute_sync() in the current task or thread.
_ACTIVE: ContextVar[tuple[ExecutionWrapper, _InFlight] | None] = ContextVar("agent_execution", default=None)


class ExecutionWrapper:
    """Measures and records executions of one agent.

    Parameters
    ----------
    name:
        Agent name.
    department:
        Department the agent's cost is charged to.
    ledger:
        Cost ledger.
    aggregator:
        Metrics aggregator.
    alerts:
        Alert sink for failure and custom alerts.  ``None`` drops them.
    model:
        Model used when a usage does not name one.
    """

    def __init__(
        self,
        name: str,
        department: str,
        ledger: CostLedger,
        aggregator: MetricsAggregator,
        alerts: AlertSink | None = None,
        model: str = "haiku",
    ) -> None:
        self._name = name
        self._department = department
        self._ledger = ledger
        self._aggregator = aggregator
        self._alerts = alerts
        self._model = model
        self._current: _InFlight | None = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Manual lifecycle
    # ------------------------------------------------------------------

    def start_execution(self) -> None:
        """Begin measuring an execution, replacing any unfinished one."""
        with self._lock:
            if self._current is not None:
                logger.warning("Agent %s started a new execution before ending the previous one", self._name)
            self._current = _begin()

    def track_api_call(self) -> int:
        """Count one external API call against the current execution.

        Inside :meth:`execute` or :meth:`execute_sync` the call is counted
        against that execution; otherwise against the manually started one.
        """
        active = _ACTIVE.get()
        with self._lock:
            if active is not None and active[0] is self:
                active[1].api_calls += 1
                return active[1].api_calls
            if self._current is None:
                logger.warning("Agent %s tracked an API call outside an execution", self._name)
                return 0
            self._current.api_calls += 1
            return self._current.api_calls

    def end_execution(
        self,
        status: str = "completed",
        usage: CostInput | None = None,
        error: BaseException | str | None = None,
    ) -> ExecutionSummary | None:
        """Finish the current execution and record cost and metrics.

        Parameters
        ----------
        status:
            Execution status; ``"error"`` and ``"failed"`` count as errors.
        usage:
            Token usage.  Defaults to no tokens on the wrapper's model.
        error:
            Failure cause.  With an error status an ``agent_error`` warning
            alert is raised carrying the message and traceback.

        Returns
        -------
        ExecutionSummary | None
            ``None`` when no execution was started.
        """
        with self._lock:
            current = self._current
            self._current = None
        if current is None:
            logger.warning("Agent %s ended an execution that was never started", self._name)
            return None
        return self._finish(current, status, usage, error)

    # ------------------------------------------------------------------
    # Wrapped execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        work: Callable[[], Awaitable[T]],
        usage: CostInput | None = None,
    ) -> ExecutionResult[T]:
        """Run an async callable under measurement; failures are captured, not raised."""
        current = _begin()
        token = _ACTIVE.set((self, current))
        try:
            result = await work()
        except Exception as exc:
            return ExecutionResult(success=False, error=exc, metrics=self._finish(current, "error", usage, exc))
        finally:
            _ACTIVE.reset(token)
        return ExecutionResult(success=True, result=result, metrics=self._finish(current, "completed", usage))

    def execute_sync(
        self,
        work: Callable[[], T],
        usage: CostInput | None = None,
    ) -> ExecutionResult[T]:
        """Synchronous counterpart of :meth:`execute`."""
        current = _begin()
        token = _ACTIVE.set((self, current))
        try:
            result = work()
        except Exception as exc:
            return ExecutionResult(success=False, error=exc, metrics=self._finish(current, "error", usage, exc))
        finally:
            _ACTIVE.reset(token)
        return ExecutionResult(success=True, result=result, metrics=self._finish(current, "completed", usage))

    # ------------------------------------------------------------------
    # Custom alerts
    # ------------------------------------------------------------------

    def alert(self, level: AlertLevel | str, message: str, data: dict[str, object] | None = None) -> None:
        """Raise an ``agent_custom`` alert prefixed with the agent name."""
        self._send(
            AlertCandidate(
                level=AlertLevel(level),
                type="agent_custom",
                message=f"[{self._name}] {message}",
                data={"agent": self._name, "department": self._department, **(data or {})},
            )
        )

    def info(self, message: str, data: dict[str, object] | None = None) -> None:
        self.alert(AlertLevel.INFO, message, data)

    def warn(self, message: str, data: dict[str, object] | None = None) -> None:
        self.alert(AlertLevel.WARNING, message, data)

    def critical(self, message: str, data: dict[str, object] | None = None) -> None:
        self.alert(AlertLevel.CRITICAL, message, data)

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def get_metrics(self) -> AgentMetricsSnapshot | None:
        return self._aggregator.get_agent_metrics(self._name)

    def get_costs(self) -> AgentCostEntry | None:
        return self._ledger.get_agent_cost(self._name)

    @property
    def name(self) -> str:
        return self._name

    @property
    def department(self) -> str:
        return self._department

    @property
    def model(self) -> str:
        return self._model

    @property
    def in_flight(self) -> bool:
        """Whether a manually started execution is waiting for :meth:`end_execution`."""
        with self._lock:
            return self._current is not None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _finish(
        self,
        current: _InFlight,
        status: str,
        usage: CostInput | None,
        error: BaseException | str | None = None,
    ) -> ExecutionSummary:
        with self._lock:
            api_calls = current.api_calls
        duration_ms = (time.monotonic() - current.started) * 1000
        after = process_usage()
        cpu_time_ms = max(0.0, (after.cpu_seconds - current.baseline.cpu_seconds) * 1000)
        memory_delta = after.rss_bytes - current.baseline.rss_bytes

        usage = usage or CostInput(model=self._model)
        if not usage.model:
            usage = replace(usage, model=self._model)
        input_tokens, output_tokens = usage.resolve_tokens()
        tokens_used = input_tokens + output_tokens

        cost = self._ledger.track_cost(self._name, self._department, usage)
        self._aggregator.track_execution(
            self._name,
            ExecutionInput(
                duration_ms=duration_ms,
                status=status,
                tokens_used=tokens_used,
                model=usage.model,
                cost=cost.cost,
                cpu_time_ms=cpu_time_ms,
                memory_delta_bytes=memory_delta,
                api_calls=api_calls,
            ),
        )

        if error is not None and is_error_status(status):
            self._report_failure(error)

        return ExecutionSummary(
            agent=self._name,
            department=self._department,
            status=status,
            duration_ms=duration_ms,
            cpu_time_ms=cpu_time_ms,
            memory_delta_bytes=memory_delta,
            api_calls=api_calls,
            model=usage.model,
            tokens_used=tokens_used,
            cost=cost.cost,
            error=str(error) if error is not None else None,
        )

    def _report_failure(self, error: BaseException | str) -> None:
        if isinstance(error, BaseException):
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        else:
            stack = ""
        self._send(
            AlertCandidate(
                level=AlertLevel.WARNING,
                type="agent_error",
                message=f"Agent {self._name} execution failed: {error}",
                data={"agent": self._name, "department": self._department, "error": str(error), "stack": stack},
            )
        )

    def _send(self, candidate: AlertCandidate) -> None:
        if self._alerts is None:
            logger.debug("No alert sink configured; dropping %s alert", candidate.type)
            return
        try:
            self._alerts.add_alert(candidate)
        except Exception:
            logger.exception("Alert sink raised while reporting %s for %s", candidate.type, self._name)


def _begin() -> _InFlight:
    return _InFlight(started=time.monotonic(), baseline=process_usage())
