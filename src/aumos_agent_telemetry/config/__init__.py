"""Configuration loading for aumos-agent-telemetry."""
from __future__ import annotations

from aumos_agent_telemetry.config.loader import ConfigLoader, TelemetryConfig

__all__ = ["ConfigLoader", "TelemetryConfig"]
