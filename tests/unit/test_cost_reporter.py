"""Tests for CostReporter."""
from __future__ import annotations

import csv
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from aumos_agent_telemetry.cost.ledger import CostInput, CostLedger
from aumos_agent_telemetry.cost.reporter import CostReporter
from aumos_agent_telemetry.persistence.store import InMemorySnapshotStore


@pytest.fixture()
def ledger(base_time: datetime) -> CostLedger:
    ledger = CostLedger()
    opus = CostInput(model="opus", input_tokens=100_000, output_tokens=100_000)  # $9.00
    haiku = CostInput(model="haiku", input_tokens=1_000_000, output_tokens=0)  # $0.25
    ledger.track_cost("closer", "sales", opus, now=base_time - timedelta(days=1))
    ledger.track_cost("closer", "sales", opus, now=base_time)
    ledger.track_cost("closer", "sales", opus, now=base_time)
    ledger.track_cost("triage", "support", haiku, now=base_time)
    return ledger


class TestDailyReport:
    def test_today_vs_yesterday(self, ledger: CostLedger, base_time: datetime) -> None:
        report = CostReporter(ledger).generate_daily_report(now=base_time)
        summary = report["summary"]
        assert report["date"] == "2024-03-14"
        assert summary["today"] == pytest.approx(18.25)  # type: ignore[index]
        assert summary["yesterday"] == pytest.approx(9.0)  # type: ignore[index]
        assert summary["executions"] == 3  # type: ignore[index]
        assert summary["avg_cost_per_execution"] == pytest.approx(18.25 / 3)  # type: ignore[index]
        assert summary["change"] == pytest.approx(9.25)  # type: ignore[index]
        assert summary["change_percent"] == pytest.approx(9.25 / 9.0 * 100)  # type: ignore[index]
        assert [a["name"] for a in report["top_agents"]] == ["closer", "triage"]  # type: ignore[union-attr]

    def test_no_yesterday_gives_zero_change_percent(self, base_time: datetime) -> None:
        ledger = CostLedger()
        ledger.track_cost("a", "sales", CostInput(model="opus", tokens_used=1000), now=base_time)
        report = CostReporter(ledger).generate_daily_report(now=base_time)
        assert report["summary"]["change_percent"] == 0.0  # type: ignore[index]

    def test_saved_to_store(self, ledger: CostLedger, base_time: datetime) -> None:
        store = InMemorySnapshotStore()
        CostReporter(ledger, store=store).generate_daily_report(now=base_time)
        assert "2024-03-14" in store.cost_reports

    def test_save_failure_swallowed(self, ledger: CostLedger, base_time: datetime) -> None:
        class BrokenStore(InMemorySnapshotStore):
            def save_cost_report(self, report: dict[str, object]) -> str:
                raise OSError("read-only")

        report = CostReporter(ledger, store=BrokenStore()).generate_daily_report(now=base_time)
        assert report["date"] == "2024-03-14"


class TestCsvExport:
    def test_daily_rows(self, ledger: CostLedger, base_time: datetime, tmp_path: Path) -> None:
        target = tmp_path / "out" / "costs.csv"
        count = CostReporter(ledger).to_csv(target, period="daily", reference_date=base_time.date())
        assert count == 2
        with target.open(encoding="utf-8") as fh:
            rows = list(csv.DictReader(fh))
        assert rows[0]["agent"] == "closer"
        assert float(rows[0]["cost_usd"]) == pytest.approx(18.0)
        assert rows[1]["department"] == "support"

    def test_all_period_uses_lifetime_totals(self, ledger: CostLedger) -> None:
        summary = CostReporter(ledger).summary(period="all")
        assert summary["agent_count"] == 2
        assert summary["total_cost_usd"] == pytest.approx(27.25)

    def test_weekly_includes_yesterday(self, ledger: CostLedger, base_time: datetime) -> None:
        # 2024-03-14 is a Thursday, so the week started on Monday the 11th.
        summary = CostReporter(ledger).summary(period="weekly", reference_date=base_time.date())
        assert summary["total_cost_usd"] == pytest.approx(27.25)
