"""Terminal dashboard rendering for telemetry snapshots."""
from __future__ import annotations

from aumos_agent_telemetry.dashboard.renderer import DashboardData, DashboardRenderer

__all__ = ["DashboardData", "DashboardRenderer"]
