"""Execution records and rolling-window statistics.

Example
-------
>>> from datetime import datetime, timezone
>>> record = ExecutionRecord(timestamp=datetime.now(tz=timezone.utc), duration_ms=120.0, status="error")
>>> window_stats([record]).error_rate
1.0
>>> window_stats([]).count
0
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

ERROR_STATUSES: frozenset[str] = frozenset({"error", "failed"})


class Window:
    """Rolling-window names and spans."""

    HOUR = "1h"
    DAY = "24h"
    WEEK = "7d"


WINDOW_SPANS: dict[str, timedelta] = {
    Window.HOUR: timedelta(hours=1),
    Window.DAY: timedelta(hours=24),
    Window.WEEK: timedelta(days=7),
}


def is_error_status(status: str) -> bool:
    return status in ERROR_STATUSES


@dataclass
class ExecutionInput:
    """Fields accepted by :meth:`MetricsAggregator.track_execution`.

    Attributes
    ----------
    duration_ms:
        Wall-clock duration of the execution.
    status:
        ``"completed"``, ``"error"``, ``"failed"`` or any caller-defined
        status.  Only ``error`` and ``failed`` count as errors.
    tokens_used:
        Total tokens consumed.
    model:
        Model identifier.
    cost:
        USD cost, usually taken from the cost ledger.
    cpu_time_ms:
        Process CPU time spent.
    memory_delta_bytes:
        Change in process memory across the execution.
    api_calls:
        Number of external API calls made.
    """

    duration_ms: float
    status: str = "completed"
    tokens_used: int = 0
    model: str = "haiku"
    cost: float = 0.0
    cpu_time_ms: float = 0.0
    memory_delta_bytes: int = 0
    api_calls: int = 0


@dataclass(frozen=True)
class ExecutionRecord:
    """One immutable execution entry in a rolling window.

    ``agent_name`` is set on entries held in system-wide windows.
    """

    timestamp: datetime
    duration_ms: float
    status: str
    tokens_used: int = 0
    model: str = "haiku"
    cost: float = 0.0
    cpu_time_ms: float = 0.0
    memory_delta_bytes: int = 0
    api_calls: int = 0
    agent_name: str | None = None

    @property
    def is_error(self) -> bool:
        return is_error_status(self.status)

    @classmethod
    def from_input(cls, execution: ExecutionInput, timestamp: datetime, agent_name: str | None = None) -> ExecutionRecord:
        return cls(
            timestamp=timestamp,
            duration_ms=execution.duration_ms,
            status=execution.status,
            tokens_used=execution.tokens_used,
            model=execution.model,
            cost=execution.cost,
            cpu_time_ms=execution.cpu_time_ms,
            memory_delta_bytes=execution.memory_delta_bytes,
            api_calls=execution.api_calls,
            agent_name=agent_name,
        )


@dataclass
class WindowStats:
    """Aggregate statistics over a sequence of execution records."""

    count: int = 0
    errors: int = 0
    error_rate: float = 0.0
    avg_duration_ms: float = 0.0
    total_cost: float = 0.0
    total_tokens: int = 0


def window_stats(records: Iterable[ExecutionRecord]) -> WindowStats:
    """Compute :class:`WindowStats`; all fields are zero for no records."""
    items = list(records)
    if not items:
        return WindowStats()
    errors = sum(1 for r in items if r.is_error)
    return WindowStats(
        count=len(items),
        errors=errors,
        error_rate=errors / len(items),
        avg_duration_ms=sum(r.duration_ms for r in items) / len(items),
        total_cost=sum(r.cost for r in items),
        total_tokens=sum(r.tokens_used for r in items),
    )
