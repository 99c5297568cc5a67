"""Tests for ConfigLoader and the AgentTelemetry facade."""
from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest
from pydantic import ValidationError

from aumos_agent_telemetry import AgentTelemetry, __version__
from aumos_agent_telemetry.config.loader import ConfigLoader, TelemetryConfig
from aumos_agent_telemetry.cost.ledger import CostInput
from aumos_agent_telemetry.persistence.store import FileSnapshotStore, InMemorySnapshotStore
from aumos_agent_telemetry.persistence.writer import BackgroundWriter


# ---------------------------------------------------------------------------
# ConfigLoader
# ---------------------------------------------------------------------------


class TestConfigLoader:
    def test_defaults(self) -> None:
        config = ConfigLoader().defaults()
        assert [t.name for t in config.pricing.tiers] == ["haiku", "sonnet", "opus"]
        assert config.budgets.departments["sales"] == 500.0
        assert config.budgets.default_usd == 100.0
        assert config.thresholds.error_rate_critical == 0.25
        assert config.alerts.max_alerts == 500
        assert config.alerts.escalation_check_interval_seconds == 300.0
        assert config.persistence.enabled is False
        assert config.persistence.max_snapshots == 168

    def test_overrides_from_string(self) -> None:
        config = ConfigLoader().load_string(
            """
pricing:
  tiers:
    - {name: mini, input_per_million: 0.1, output_per_million: 0.4}
    - {name: maxi, input_per_million: 5, output_per_million: 20}
thresholds:
  response_time_warning_ms: 5000
alerts:
  email_enabled: true
  email_recipient: oncall@corp.test
future_section:
  anything: goes
"""
        )
        assert [t.name for t in config.pricing.tiers] == ["mini", "maxi"]
        assert config.thresholds.response_time_warning_ms == 5000
        assert config.alerts.email_recipient == "oncall@corp.test"

    def test_empty_document_gives_defaults(self) -> None:
        assert ConfigLoader().load_string("") == TelemetryConfig()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            ConfigLoader().load(tmp_path / "absent.yaml")

    @pytest.mark.parametrize(
        "yaml_text",
        [
            "pricing:\n  tiers: []\n",
            "pricing:\n  default_tier: platinum\n",
            "thresholds:\n  error_rate_warning: 2.0\n",
            "alerts:\n  max_alerts: 0\n",
        ],
    )
    def test_invalid_values_rejected(self, yaml_text: str) -> None:
        with pytest.raises(ValidationError):
            ConfigLoader().load_string(yaml_text)

    def test_dump_round_trip(self, tmp_path: Path) -> None:
        loader = ConfigLoader()
        target = tmp_path / "telemetry.yaml"
        target.write_text(loader.dump(loader.defaults()), encoding="utf-8")
        assert loader.load(target) == loader.defaults()


# ---------------------------------------------------------------------------
# AgentTelemetry
# ---------------------------------------------------------------------------


@pytest.fixture()
def telemetry() -> AgentTelemetry:
    return AgentTelemetry(store=InMemorySnapshotStore(), writer=BackgroundWriter(synchronous=True))


class TestAgentTelemetry:
    def test_version(self) -> None:
        assert __version__ == "0.1.0"

    def test_create_agent_is_idempotent(self, telemetry: AgentTelemetry) -> None:
        first = telemetry.create_agent("closer", department="sales", model="opus")
        assert telemetry.create_agent("closer") is first
        assert first.model == "opus"

    def test_components_are_wired(self, telemetry: AgentTelemetry) -> None:
        telemetry.ledger.set_department_budget("lab", 1.0)
        agent = telemetry.create_agent("researcher", department="lab", model="opus")
        agent.execute_sync(lambda: None, CostInput(model="opus", tokens_used=100_000))
        assert telemetry.alerts.get_alerts(type="budget_exceeded")

    def test_config_thresholds_reach_aggregator(self) -> None:
        config = ConfigLoader().load_string("thresholds:\n  response_time_warning_ms: 1\n")
        telemetry = AgentTelemetry(config=config)
        assert telemetry.metrics.thresholds.response_time_warning_ms == 1

    def test_snapshot_and_warm_start(self, base_time: datetime) -> None:
        store = InMemorySnapshotStore()
        writer = BackgroundWriter(synchronous=True)
        first = AgentTelemetry(store=store, writer=writer)
        agent = first.create_agent("closer", department="sales", model="haiku")
        agent.execute_sync(lambda: "ok", CostInput(tokens_used=1000))
        agent.warn("pipeline slow")
        store.save_snapshot(first.snapshot(now=base_time))

        second = AgentTelemetry(store=store, writer=writer)
        assert second.warm_start()
        metrics = second.metrics.get_agent_metrics("closer")
        assert metrics is not None
        assert metrics.executions == 1
        assert second.ledger.get_agent_cost("closer") is not None
        assert second.alerts.get_alerts(type="agent_custom")

    def test_warm_start_without_store(self) -> None:
        assert AgentTelemetry().warm_start() is False

    def test_start_and_stop(self, telemetry: AgentTelemetry) -> None:
        telemetry.start(warm=False)
        assert telemetry.running
        telemetry.stop()
        assert not telemetry.running
        # stop() writes a final snapshot.
        assert telemetry.store is not None
        assert telemetry.store.load_latest_snapshot() is not None

    def test_persistence_enabled_builds_file_store(self, tmp_path: Path) -> None:
        config = ConfigLoader().load_string(f"persistence:\n  enabled: true\n  data_dir: {tmp_path}\n")
        telemetry = AgentTelemetry.from_config(config)
        assert isinstance(telemetry.store, FileSnapshotStore)

    def test_from_config_path(self, tmp_path: Path) -> None:
        target = tmp_path / "telemetry.yaml"
        target.write_text("budgets:\n  departments:\n    sales: 10\n", encoding="utf-8")
        telemetry = AgentTelemetry.from_config(target)
        assert telemetry.ledger.budgets.get("sales") == 10.0
