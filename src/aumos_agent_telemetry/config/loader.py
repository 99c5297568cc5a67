"""Telemetry configuration loader with Pydantic v2 validation.

Loads and validates a ``telemetry.yaml`` file into a typed
:class:`TelemetryConfig` object.  Every section is optional and unknown keys
are allowed so that newer files still load.

Example
-------
>>> loader = ConfigLoader()
>>> config = loader.load_string("budgets:\\n  departments:\\n    sales: 750\\n")
>>> config.budgets.departments["sales"]
750.0
>>> config.alerts.max_alerts
500
"""
from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from aumos_agent_telemetry.cost.budget import DEFAULT_DEPARTMENT_BUDGETS, DEFAULT_FALLBACK_BUDGET
from aumos_agent_telemetry.cost.pricing import DEFAULT_TIERS, ModelTier


class TierConfig(BaseModel):
    """Prices for one model tier, in USD per million tokens."""

    model_config = {"extra": "allow"}

    name: str
    input_per_million: float = Field(ge=0)
    output_per_million: float = Field(ge=0)

    def to_tier(self) -> ModelTier:
        return ModelTier(
            name=self.name,
            input_per_million=self.input_per_million,
            output_per_million=self.output_per_million,
        )


class PricingConfig(BaseModel):
    """Configuration for the pricing table."""

    model_config = {"extra": "allow"}

    tiers: list[TierConfig] = Field(
        default_factory=lambda: [
            TierConfig(name=t.name, input_per_million=t.input_per_million, output_per_million=t.output_per_million)
            for t in DEFAULT_TIERS
        ]
    )
    default_tier: str | None = Field(default=None)

    @field_validator("tiers")
    @classmethod
    def validate_tiers(cls, values: list[TierConfig]) -> list[TierConfig]:
        if not values:
            raise ValueError("pricing.tiers must list at least one tier")
        names = [v.name.lower() for v in values]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate tier names in pricing.tiers: {names}")
        return values

    @model_validator(mode="after")
    def validate_default_tier(self) -> PricingConfig:
        if self.default_tier is not None and self.default_tier.lower() not in {t.name.lower() for t in self.tiers}:
            raise ValueError(f"pricing.default_tier '{self.default_tier}' is not a configured tier")
        return self


class BudgetsConfig(BaseModel):
    """Monthly department budgets in USD."""

    model_config = {"extra": "allow"}

    departments: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_DEPARTMENT_BUDGETS))
    default_usd: float = Field(default=DEFAULT_FALLBACK_BUDGET, ge=0)


class ThresholdsConfig(BaseModel):
    """Metric alert thresholds."""

    model_config = {"extra": "allow"}

    error_rate_warning: float = Field(default=0.10, ge=0, le=1)
    error_rate_critical: float = Field(default=0.25, ge=0, le=1)
    min_error_rate_sample: int = Field(default=10, ge=0)
    response_time_warning_ms: float = Field(default=30_000.0, gt=0)
    daily_budget_usd: float | None = Field(default=100.0, ge=0)


class AlertsConfig(BaseModel):
    """Configuration for alert history, escalation and channels."""

    model_config = {"extra": "allow"}

    max_alerts: int = Field(default=500, ge=1)
    dedup_window_seconds: float = Field(default=3600.0, ge=0)
    escalation_window_seconds: float = Field(default=3600.0, ge=0)
    escalation_check_interval_seconds: float = Field(default=300.0, gt=0)
    console_enabled: bool = Field(default=True)
    dashboard_enabled: bool = Field(default=True)
    email_enabled: bool = Field(default=False)
    email_recipient: str = Field(default="ops@example.com")
    webhook_url: str | None = Field(default=None)
    webhook_format: Literal["slack", "generic"] = Field(default="generic")
    webhook_critical_only: bool = Field(default=False)


class PersistenceConfig(BaseModel):
    """Configuration for snapshot and alert file persistence."""

    model_config = {"extra": "allow"}

    enabled: bool = Field(default=False)
    data_dir: Path = Field(default=Path("./telemetry_data"))
    snapshot_interval_seconds: float = Field(default=3600.0, gt=0)
    max_snapshots: int = Field(default=168, ge=1)
    alert_history_days: int = Field(default=7, ge=1)
    alert_retention_days: int = Field(default=30, ge=1)


class TelemetryConfig(BaseModel):
    """Top-level telemetry configuration schema.

    Loaded from ``telemetry.yaml``.  All sections are optional and
    fall back to the built-in defaults.
    """

    model_config = {"extra": "allow"}

    version: str = Field(default="1")
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    budgets: BudgetsConfig = Field(default_factory=BudgetsConfig)
    thresholds: ThresholdsConfig = Field(default_factory=ThresholdsConfig)
    alerts: AlertsConfig = Field(default_factory=AlertsConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)


class ConfigLoader:
    """Loads and validates telemetry YAML configuration.

    Example
    -------
    >>> loader = ConfigLoader()
    >>> config = loader.load(Path("telemetry.yaml"))
    """

    def load(self, config_path: Path) -> TelemetryConfig:
        """Load and validate a telemetry YAML file.

        Parameters
        ----------
        config_path:
            Path to the ``telemetry.yaml`` file.

        Returns
        -------
        TelemetryConfig
            Validated configuration object.

        Raises
        ------
        FileNotFoundError:
            When the config file does not exist.
        ValueError:
            When the YAML content fails Pydantic validation.
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Telemetry config not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as fh:
            raw: dict[str, object] = yaml.safe_load(fh) or {}

        return TelemetryConfig.model_validate(raw)

    def load_string(self, yaml_content: str) -> TelemetryConfig:
        """Load and validate a YAML string directly."""
        raw: dict[str, object] = yaml.safe_load(yaml_content) or {}
        return TelemetryConfig.model_validate(raw)

    def defaults(self) -> TelemetryConfig:
        """Return a default configuration with all defaults applied."""
        return TelemetryConfig()

    def dump(self, config: TelemetryConfig) -> str:
        """Serialise a configuration back to YAML."""
        return yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False)
