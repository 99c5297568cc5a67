"""Tests for PricingTable, DepartmentBudgets and CostLedger."""
from __future__ import annotations

import math
from datetime import date, datetime, timedelta, timezone

import pytest

from aumos_agent_telemetry.alerts.models import AlertLevel
from aumos_agent_telemetry.cost.budget import DepartmentBudgets
from aumos_agent_telemetry.cost.ledger import CostInput, CostLedger, day_key, month_key, week_key
from aumos_agent_telemetry.cost.pricing import ModelTier, PricingTable


# ---------------------------------------------------------------------------
# PricingTable
# ---------------------------------------------------------------------------


class TestPricingTable:
    def test_opus_million_each_costs_ninety(self) -> None:
        table = PricingTable()
        assert table.calculate_cost("opus", 1_000_000, 1_000_000) == pytest.approx(90.0)

    def test_resolve_is_case_insensitive_substring(self) -> None:
        table = PricingTable()
        assert table.resolve("Claude-3-SONNET-20240229").name == "sonnet"

    def test_highest_tier_wins_when_several_match(self) -> None:
        table = PricingTable()
        assert table.resolve("opus-sonnet-haiku-proxy").name == "opus"

    @pytest.mark.parametrize("model", [None, "", "gpt-4o"])
    def test_unknown_model_resolves_to_default(self, model: str | None) -> None:
        assert PricingTable().resolve(model).name == "haiku"

    def test_unknown_model_priced_at_lowest_tier(self) -> None:
        table = PricingTable()
        assert table.calculate_cost("mystery", 1_000_000, 0) == pytest.approx(0.25)

    def test_tiers_sorted_cheapest_first(self) -> None:
        table = PricingTable(
            tiers=[
                ModelTier("big", 10.0, 50.0),
                ModelTier("small", 1.0, 2.0),
            ]
        )
        assert [t.name for t in table.tiers] == ["small", "big"]
        assert table.lowest.name == "small"
        assert table.highest.name == "big"

    def test_next_lower(self) -> None:
        table = PricingTable()
        assert table.next_lower(table.highest).name == "sonnet"
        assert table.next_lower(table.lowest) is None

    def test_empty_tiers_rejected(self) -> None:
        with pytest.raises(ValueError):
            PricingTable(tiers=[])

    def test_unknown_default_tier_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown default tier"):
            PricingTable(default_tier="nope")


# ---------------------------------------------------------------------------
# CostInput / period keys
# ---------------------------------------------------------------------------


class TestCostInput:
    def test_tokens_used_split_floor_and_ceiling(self) -> None:
        assert CostInput(tokens_used=101).resolve_tokens() == (50, 51)

    def test_explicit_counts_take_precedence(self) -> None:
        assert CostInput(input_tokens=10, output_tokens=20, tokens_used=999).resolve_tokens() == (10, 20)

    def test_period_keys(self) -> None:
        moment = datetime(2024, 12, 30, tzinfo=timezone.utc)
        assert day_key(moment) == "2024-12-30"
        assert month_key(moment) == "2024-12"
        # 30 Dec 2024 belongs to ISO week 1 of 2025.
        assert week_key(moment) == "2025-W01"


# ---------------------------------------------------------------------------
# DepartmentBudgets
# ---------------------------------------------------------------------------


class TestDepartmentBudgets:
    def test_defaults_and_fallback(self) -> None:
        budgets = DepartmentBudgets()
        assert budgets.get("sales") == 500.0
        assert budgets.get("unknown-dept") == 100.0

    def test_evaluate_most_severe_first(self) -> None:
        crossing = DepartmentBudgets().evaluate("support", 150.0)
        assert crossing is not None
        assert crossing.level == AlertLevel.CRITICAL
        assert crossing.threshold.alert_type == "budget_exceeded"

    def test_evaluate_warning_band(self) -> None:
        crossing = DepartmentBudgets().evaluate("support", 140.0)
        assert crossing is not None
        assert crossing.level == AlertLevel.WARNING

    def test_below_lowest_threshold(self) -> None:
        assert DepartmentBudgets().evaluate("support", 10.0) is None

    def test_zero_budget_is_infinite_percent(self) -> None:
        budgets = DepartmentBudgets({"lab": 0.0})
        assert math.isinf(budgets.percent_used(0.0, 0.0))
        crossing = budgets.evaluate("lab", 0.0)
        assert crossing is not None
        assert crossing.exceeded


# ---------------------------------------------------------------------------
# CostLedger — track_cost
# ---------------------------------------------------------------------------


@pytest.fixture()
def ledger(sink) -> CostLedger:
    return CostLedger(alert_sink=sink)


class TestCostLedgerTracking:
    def test_result_totals(self, ledger: CostLedger, base_time: datetime) -> None:
        result = ledger.track_cost(
            "closer", "sales", CostInput(model="opus", input_tokens=1_000_000, output_tokens=1_000_000), now=base_time
        )
        assert result.cost == pytest.approx(90.0)
        assert result.total_cost_today == pytest.approx(90.0)
        assert result.total_cost_this_month == pytest.approx(90.0)
        assert result.department_cost == pytest.approx(90.0)
        assert result.department_budget == 500.0

    def test_agent_entry_accumulates(self, ledger: CostLedger, base_time: datetime) -> None:
        ledger.track_cost("closer", "sales", CostInput(model="haiku", tokens_used=1000), now=base_time)
        ledger.track_cost("closer", "sales", CostInput(model="claude-haiku", tokens_used=1000), now=base_time)
        entry = ledger.get_agent_cost("closer")
        assert entry is not None
        assert entry.executions == 2
        assert entry.total_input_tokens == 1000
        assert entry.total_output_tokens == 1000
        assert set(entry.model_usage) == {"haiku", "claude-haiku"}

    def test_get_agent_cost_returns_copy(self, ledger: CostLedger, base_time: datetime) -> None:
        ledger.track_cost("closer", "sales", CostInput(tokens_used=1000), now=base_time)
        entry = ledger.get_agent_cost("closer")
        assert entry is not None
        entry.total_cost = 1e9
        assert ledger.get_agent_cost("closer").total_cost < 1.0  # type: ignore[union-attr]

    def test_unknown_agent(self, ledger: CostLedger) -> None:
        assert ledger.get_agent_cost("ghost") is None
        assert ledger.get_department_cost("ghost") is None

    def test_department_monthly_cost_only_counts_month(self, ledger: CostLedger, base_time: datetime) -> None:
        usage = CostInput(model="opus", input_tokens=100_000, output_tokens=100_000)
        ledger.track_cost("closer", "sales", usage, now=base_time)
        ledger.track_cost("closer", "sales", usage, now=base_time - timedelta(days=40))
        assert ledger.get_department_monthly_cost("sales", "2024-03") == pytest.approx(9.0)

    def test_daily_report_ranks_agents(self, ledger: CostLedger, base_time: datetime) -> None:
        ledger.track_cost("cheap", "support", CostInput(model="haiku", tokens_used=1000), now=base_time)
        ledger.track_cost("pricey", "support", CostInput(model="opus", tokens_used=1000), now=base_time)
        report = ledger.get_daily_report(base_time.date())
        assert report["executions"] == 2
        assert [a["name"] for a in report["agents"]] == ["pricey", "cheap"]  # type: ignore[union-attr]

    def test_empty_daily_report(self, ledger: CostLedger) -> None:
        report = ledger.get_daily_report(date(2020, 1, 1))
        assert report["total_cost"] == 0.0
        assert report["agents"] == []

    def test_weekly_and_monthly_reports(self, ledger: CostLedger, base_time: datetime) -> None:
        ledger.track_cost("closer", "sales", CostInput(model="opus", tokens_used=2000), now=base_time)
        assert ledger.get_weekly_report(week_key(base_time))["executions"] == 1
        monthly = ledger.get_monthly_report("2024-03")
        assert monthly["executions"] == 1
        assert monthly["departments"][0]["name"] == "sales"  # type: ignore[index]


# ---------------------------------------------------------------------------
# CostLedger — budget alerts
# ---------------------------------------------------------------------------


class TestCostLedgerBudgetAlerts:
    def test_crossing_reported_once_per_month(self, sink, base_time: datetime) -> None:
        ledger = CostLedger(budgets=DepartmentBudgets({"lab": 10.0}), alert_sink=sink)
        # 2 x 1M output opus tokens = $75 each, far beyond the $10 budget.
        usage = CostInput(model="opus", input_tokens=0, output_tokens=1_000_000)
        ledger.track_cost("a", "lab", usage, now=base_time)
        ledger.track_cost("a", "lab", usage, now=base_time + timedelta(hours=1))
        exceeded = sink.of_type("budget_exceeded")
        assert len(exceeded) == 1
        assert exceeded[0].level == AlertLevel.CRITICAL
        assert exceeded[0].data["department"] == "lab"

    def test_crossing_fires_again_next_month(self, sink, base_time: datetime) -> None:
        ledger = CostLedger(budgets=DepartmentBudgets({"lab": 10.0}), alert_sink=sink)
        usage = CostInput(model="opus", output_tokens=1_000_000)
        ledger.track_cost("a", "lab", usage, now=base_time)
        ledger.track_cost("a", "lab", usage, now=base_time + timedelta(days=31))
        assert len(sink.of_type("budget_exceeded")) == 2

    def test_escalating_levels_each_fire_once(self, sink, base_time: datetime) -> None:
        ledger = CostLedger(budgets=DepartmentBudgets({"lab": 100.0}), alert_sink=sink)
        # sonnet output: $15 per 1M tokens -> 76, 91, 100+
        ledger.track_cost("a", "lab", CostInput(model="sonnet", output_tokens=5_066_667), now=base_time)
        ledger.track_cost("a", "lab", CostInput(model="sonnet", output_tokens=1_000_000), now=base_time)
        ledger.track_cost("a", "lab", CostInput(model="sonnet", output_tokens=1_000_000), now=base_time)
        assert [c.type for c in sink.received] == ["budget_info", "budget_warning", "budget_exceeded"]

    def test_zero_budget_breaches_immediately(self, sink, base_time: datetime) -> None:
        ledger = CostLedger(budgets=DepartmentBudgets({"lab": 0.0}), alert_sink=sink)
        ledger.track_cost("a", "lab", CostInput(model="haiku", tokens_used=10), now=base_time)
        assert len(sink.of_type("budget_exceeded")) == 1

    def test_sink_failure_does_not_raise(self, base_time: datetime) -> None:
        class Exploding:
            def add_alert(self, candidate: object) -> None:
                raise RuntimeError("boom")

        ledger = CostLedger(budgets=DepartmentBudgets({"lab": 0.0}), alert_sink=Exploding())
        result = ledger.track_cost("a", "lab", CostInput(tokens_used=10), now=base_time)
        assert result.department_budget == 0.0

    def test_set_department_budget_updates_existing(self, ledger: CostLedger, base_time: datetime) -> None:
        ledger.track_cost("a", "sales", CostInput(tokens_used=10), now=base_time)
        ledger.set_department_budget("sales", 42.0)
        summary = ledger.get_department_cost("sales")
        assert summary is not None
        assert summary["monthly_budget"] == 42.0


# ---------------------------------------------------------------------------
# CostLedger — optimisations and snapshots
# ---------------------------------------------------------------------------


class TestCostOptimizations:
    def test_no_suggestion_at_or_below_hundred_executions(self, ledger: CostLedger, base_time: datetime) -> None:
        for _ in range(100):
            ledger.track_cost("a", "sales", CostInput(model="opus", tokens_used=1000), now=base_time)
        assert ledger.get_cost_optimizations() == []

    def test_top_tier_downgrade(self, ledger: CostLedger, base_time: datetime) -> None:
        for _ in range(101):
            ledger.track_cost("a", "sales", CostInput(model="opus", tokens_used=1000), now=base_time)
        suggestions = ledger.get_cost_optimizations()
        assert len(suggestions) == 1
        assert suggestions[0].current_model == "opus"
        assert suggestions[0].suggested_model == "sonnet"
        assert suggestions[0].potential_savings == pytest.approx(suggestions[0].current_cost * 0.8)

    def test_cheap_mid_tier_moves_to_lowest(self, ledger: CostLedger, base_time: datetime) -> None:
        for _ in range(101):
            ledger.track_cost("a", "sales", CostInput(model="sonnet", tokens_used=10), now=base_time)
        suggestions = ledger.get_cost_optimizations()
        assert [(s.current_model, s.suggested_model) for s in suggestions] == [("sonnet", "haiku")]

    def test_sorted_by_savings(self, ledger: CostLedger, base_time: datetime) -> None:
        for _ in range(101):
            ledger.track_cost("small", "sales", CostInput(model="opus", tokens_used=100), now=base_time)
            ledger.track_cost("large", "sales", CostInput(model="opus", tokens_used=10_000), now=base_time)
        names = [s.agent for s in ledger.get_cost_optimizations()]
        assert names == ["large", "small"]


class TestCostLedgerSnapshot:
    def test_export_restore_round_trip(self, ledger: CostLedger, base_time: datetime) -> None:
        ledger.track_cost("closer", "sales", CostInput(model="opus", tokens_used=2000), now=base_time)
        state = ledger.export_state()

        restored = CostLedger()
        restored.restore_state(state)
        entry = restored.get_agent_cost("closer")
        assert entry is not None
        assert entry.total_cost == pytest.approx(ledger.get_agent_cost("closer").total_cost)  # type: ignore[union-attr]
        assert restored.get_department_monthly_cost("sales", "2024-03") == pytest.approx(
            ledger.get_department_monthly_cost("sales", "2024-03")
        )

    def test_malformed_entries_skipped(self) -> None:
        restored = CostLedger()
        restored.restore_state({"agents": [{"department": "no-name"}, "junk"]})
        assert restored.get_all_costs()["agents"] == []
