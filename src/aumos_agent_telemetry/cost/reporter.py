"""Cost reports built from a :class:`CostLedger`.

Generates the daily cost report (today against yesterday, top agents,
department breakdown and optimisation suggestions) and CSV exports of
per-agent spend for a period.

Example
-------
>>> from pathlib import Path
>>> from aumos_agent_telemetry.cost.ledger import CostLedger
>>> from aumos_agent_telemetry.cost.reporter import CostReporter
>>> reporter = CostReporter(CostLedger())
>>> reporter.generate_daily_report()["summary"]["today"]
0.0
>>> reporter.to_csv(Path("/tmp/agent_costs.csv"), period="daily")
0
"""
from __future__ import annotations

import csv
import logging
from dataclasses import asdict
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

from aumos_agent_telemetry.cost.ledger import CostLedger, day_key
from aumos_agent_telemetry.persistence.store import SnapshotStore

logger = logging.getLogger(__name__)

_TOP_AGENTS = 10


class CostReporter:
    """Generates cost reports from a :class:`CostLedger`.

    Parameters
    ----------
    ledger:
        The ledger to report from.
    store:
        Optional store the daily report is saved to.
    """

    def __init__(self, ledger: CostLedger, store: SnapshotStore | None = None) -> None:
        self._ledger = ledger
        self._store = store

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_daily_report(self, now: datetime | None = None, save: bool = True) -> dict[str, object]:
        """Build the daily cost report and save it when a store is configured.

        Parameters
        ----------
        now:
            Override the current UTC time (for testing).
        save:
            Write the report through the store.  Failures are logged.

        Returns
        -------
        dict[str, object]
            ``date``, ``summary`` (today, yesterday, executions,
            avg_cost_per_execution, change, change_percent),
            ``top_agents``, ``departments`` and ``optimizations``.
        """
        moment = now or datetime.now(tz=timezone.utc)
        today = self._ledger.get_daily_report(moment.date())
        yesterday = self._ledger.get_daily_report(moment.date() - timedelta(days=1))

        today_cost = float(today["total_cost"])  # type: ignore[arg-type]
        yesterday_cost = float(yesterday["total_cost"])  # type: ignore[arg-type]
        executions = int(today["executions"])  # type: ignore[call-overload]
        change = today_cost - yesterday_cost

        report: dict[str, object] = {
            "date": today["date"],
            "summary": {
                "today": today_cost,
                "yesterday": yesterday_cost,
                "executions": executions,
                "avg_cost_per_execution": today_cost / executions if executions else 0.0,
                "change": change,
                "change_percent": (change / yesterday_cost * 100) if yesterday_cost > 0 else 0.0,
            },
            "top_agents": list(today["agents"])[:_TOP_AGENTS],  # type: ignore[call-overload]
            "departments": today["departments"],
            "optimizations": [asdict(s) for s in self._ledger.get_cost_optimizations()],
        }

        if save and self._store is not None:
            try:
                location = self._store.save_cost_report(report)
                logger.info("Saved daily cost report to %s", location)
            except Exception:
                logger.exception("Failed to save daily cost report for %s", report["date"])
        return report

    def to_csv(
        self,
        output_path: Path,
        period: str = "all",
        reference_date: date | None = None,
    ) -> int:
        """Write a CSV of per-agent cost for a period.

        Parameters
        ----------
        output_path:
            Destination CSV file path.
        period:
            ``"daily"``, ``"weekly"``, ``"monthly"``, or ``"all"``
            (default: ``"all"``).
        reference_date:
            Reference date for period filtering (defaults to today, UTC).

        Returns
        -------
        int
            Number of rows written.
        """
        rows = self._rows(period, reference_date)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with output_path.open("w", newline="", encoding="utf-8") as fh:
            writer = csv.DictWriter(fh, fieldnames=["agent", "department", "cost_usd", "executions"])
            writer.writeheader()
            for row in rows:
                writer.writerow({**row, "cost_usd": f"{float(row['cost_usd']):.6f}"})  # type: ignore[arg-type]

        return len(rows)

    def summary(self, period: str = "all", reference_date: date | None = None) -> dict[str, object]:
        """Return total cost and the per-agent breakdown for a period."""
        rows = self._rows(period, reference_date)
        return {
            "period": period,
            "agent_count": len(rows),
            "total_cost_usd": round(sum(float(r["cost_usd"]) for r in rows), 6),  # type: ignore[arg-type]
            "by_agent": {str(r["agent"]): r["cost_usd"] for r in rows},
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _rows(self, period: str, reference_date: date | None) -> list[dict[str, object]]:
        """Per-agent rows, sorted by cost, for the requested period."""
        today = reference_date or datetime.now(tz=timezone.utc).date()

        match period:
            case "daily":
                days = [today]
            case "weekly":
                start = today - timedelta(days=today.weekday())
                days = [start + timedelta(days=i) for i in range((today - start).days + 1)]
            case "monthly":
                start = today.replace(day=1)
                days = [start + timedelta(days=i) for i in range((today - start).days + 1)]
            case _:
                return self._lifetime_rows()

        costs: dict[str, float] = {}
        for day in days:
            report = self._ledger.get_daily_report(day_key(day))
            for entry in report["agents"]:  # type: ignore[attr-defined]
                name = str(entry["name"])
                costs[name] = costs.get(name, 0.0) + float(entry["cost"])

        rows: list[dict[str, object]] = []
        for name, cost in sorted(costs.items(), key=lambda item: item[1], reverse=True):
            agent = self._ledger.get_agent_cost(name)
            rows.append(
                {
                    "agent": name,
                    "department": agent.department if agent else "",
                    "cost_usd": cost,
                    "executions": agent.executions if agent else 0,
                }
            )
        return rows

    def _lifetime_rows(self) -> list[dict[str, object]]:
        agents = self._ledger.get_all_costs()["agents"]
        return [
            {
                "agent": a.name,
                "department": a.department,
                "cost_usd": a.total_cost,
                "executions": a.executions,
            }
            for a in agents  # type: ignore[attr-defined]
        ]
