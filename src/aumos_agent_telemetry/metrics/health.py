"""Host and process health sampling.

Thin psutil wrapper used by :meth:`MetricsAggregator.get_system_metrics`.
It is not part of the aggregation logic and never raises.
"""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field

import psutil

logger = logging.getLogger(__name__)


@dataclass
class ProcessUsage:
    """CPU and memory figures for a single process."""

    cpu_user_seconds: float = 0.0
    cpu_system_seconds: float = 0.0
    rss_bytes: int = 0

    @property
    def cpu_seconds(self) -> float:
        return self.cpu_user_seconds + self.cpu_system_seconds


@dataclass
class SystemHealth:
    """Point-in-time host health."""

    load_average: tuple[float, float, float] = (0.0, 0.0, 0.0)
    cpu_count: int = 0
    memory_total_bytes: int = 0
    memory_available_bytes: int = 0
    memory_used_bytes: int = 0
    process: ProcessUsage = field(default_factory=ProcessUsage)
    host_uptime_seconds: float = 0.0


def process_usage(process: psutil.Process | None = None) -> ProcessUsage:
    """Return CPU times and RSS for ``process`` (default: this process)."""
    try:
        proc = process or psutil.Process(os.getpid())
        with proc.oneshot():
            times = proc.cpu_times()
            rss = proc.memory_info().rss
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return ProcessUsage()
    return ProcessUsage(cpu_user_seconds=times.user, cpu_system_seconds=times.system, rss_bytes=rss)


def collect_system_health() -> SystemHealth:
    """Sample load average, memory totals and this process's usage."""
    try:
        load = psutil.getloadavg()
        memory = psutil.virtual_memory()
        uptime = max(0.0, time.time() - psutil.boot_time())
    except (OSError, AttributeError):
        logger.exception("Failed to collect system health")
        return SystemHealth(process=process_usage())
    return SystemHealth(
        load_average=(float(load[0]), float(load[1]), float(load[2])),
        cpu_count=psutil.cpu_count() or 0,
        memory_total_bytes=memory.total,
        memory_available_bytes=memory.available,
        memory_used_bytes=memory.total - memory.available,
        process=process_usage(),
        host_uptime_seconds=uptime,
    )
