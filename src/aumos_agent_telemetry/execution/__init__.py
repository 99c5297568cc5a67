"""Execution wrapper for measuring agent work."""
from __future__ import annotations

from aumos_agent_telemetry.execution.wrapper import ExecutionResult, ExecutionSummary, ExecutionWrapper

__all__ = ["ExecutionResult", "ExecutionSummary", "ExecutionWrapper"]
