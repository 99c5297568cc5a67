"""Cost ledger: token usage to USD, accumulated per agent, department and period.

CostLedger converts each execution's token usage into cost using a
:class:`~aumos_agent_telemetry.cost.pricing.PricingTable`, accumulates totals
per agent, per department and per calendar day, ISO week and month, and
checks the department's month-to-date spend against its budget.

Budget crossings are reported to an injected alert sink.  Each
(department, month, level) crossing is reported once per calendar month.
Alerts are forwarded after the ledger lock is released.

Example
-------
>>> ledger = CostLedger()
>>> result = ledger.track_cost("lead-qualifier", "sales",
...                            CostInput(model="claude-opus-4", input_tokens=1_000_000,
...                                      output_tokens=1_000_000))
>>> result.cost
90.0
"""
from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable

from aumos_agent_telemetry.alerts.models import AlertCandidate, AlertLevel, AlertSink
from aumos_agent_telemetry.cost.budget import BudgetCrossing, DepartmentBudgets
from aumos_agent_telemetry.cost.pricing import ModelTier, PricingTable

logger = logging.getLogger(__name__)

# Agents with fewer executions than this never receive optimisation advice.
_OPTIMIZATION_MIN_EXECUTIONS: int = 100
_TOP_TIER_SAVINGS: float = 0.8
_MID_TIER_SAVINGS: float = 0.7
_CHEAP_TASK_THRESHOLD_USD: float = 0.001


# ---------------------------------------------------------------------------
# Inputs and results
# ---------------------------------------------------------------------------


@dataclass
class CostInput:
    """Token usage for one execution.

    When either explicit count is zero and ``tokens_used`` is set, the total
    is split evenly: input gets the floor half and output the ceiling half.
    """

    model: str = "haiku"
    input_tokens: int = 0
    output_tokens: int = 0
    tokens_used: int = 0

    def resolve_tokens(self) -> tuple[int, int]:
        """Return ``(input_tokens, output_tokens)`` after applying the split rule."""
        input_tokens = self.input_tokens or self.tokens_used // 2
        output_tokens = self.output_tokens or (self.tokens_used - self.tokens_used // 2)
        return input_tokens, output_tokens


@dataclass
class CostResult:
    """Outcome of :meth:`CostLedger.track_cost`."""

    cost: float
    total_cost_today: float
    total_cost_this_month: float
    department_cost: float
    department_budget: float


# ---------------------------------------------------------------------------
# Ledger entries
# ---------------------------------------------------------------------------


@dataclass
class ModelUsage:
    cost: float = 0.0
    executions: int = 0


@dataclass
class AgentCostEntry:
    """Lifetime cost totals for one agent."""

    name: str
    department: str
    total_cost: float = 0.0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    executions: int = 0
    model_usage: dict[str, ModelUsage] = field(default_factory=dict)
    last_used: datetime | None = None


@dataclass
class DepartmentLedger:
    """Lifetime cost totals and member agents for one department."""

    name: str
    monthly_budget: float
    total_cost: float = 0.0
    agents: set[str] = field(default_factory=set)


@dataclass
class DailyBucket:
    date: str
    total_cost: float = 0.0
    executions: int = 0
    agents: dict[str, float] = field(default_factory=dict)
    departments: dict[str, float] = field(default_factory=dict)


@dataclass
class PeriodBucket:
    """Weekly (``YYYY-Www``) or monthly (``YYYY-MM``) totals."""

    key: str
    total_cost: float = 0.0
    executions: int = 0


@dataclass
class CostOptimization:
    """A suggested model downgrade for an agent."""

    agent: str
    type: str
    message: str
    current_model: str
    suggested_model: str
    current_cost: float
    potential_savings: float
    executions: int


# ---------------------------------------------------------------------------
# Period keys
# ---------------------------------------------------------------------------


def day_key(moment: datetime | date) -> str:
    """Return the ``YYYY-MM-DD`` key for a moment."""
    return moment.strftime("%Y-%m-%d")


def week_key(moment: datetime | date) -> str:
    """Return the ISO ``YYYY-Www`` key for a moment."""
    iso_year, iso_week, _ = moment.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def month_key(moment: datetime | date) -> str:
    """Return the ``YYYY-MM`` key for a moment."""
    return moment.strftime("%Y-%m")


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class CostLedger:
    """Thread-safe in-memory cost ledger.

    Parameters
    ----------
    pricing:
        Pricing table used to convert tokens to cost.
    budgets:
        Department budget allocation.
    alert_sink:
        Receiver for budget alerts.  ``None`` disables alerting.
    """

    def __init__(
        self,
        pricing: PricingTable | None = None,
        budgets: DepartmentBudgets | None = None,
        alert_sink: AlertSink | None = None,
    ) -> None:
        self._pricing = pricing or PricingTable()
        self._budgets = budgets or DepartmentBudgets()
        self._alert_sink = alert_sink
        self._agents: dict[str, AgentCostEntry] = {}
        self._departments: dict[str, DepartmentLedger] = {}
        self._daily: dict[str, DailyBucket] = {}
        self._weekly: dict[str, PeriodBucket] = {}
        self._monthly: dict[str, PeriodBucket] = {}
        # (department, month, level) crossings already reported.
        self._fired: set[tuple[str, str, AlertLevel]] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Write API
    # ------------------------------------------------------------------

    def track_cost(
        self,
        agent_name: str,
        department: str,
        usage: CostInput | None = None,
        now: datetime | None = None,
    ) -> CostResult:
        """Price one execution's token usage and accumulate it.

        Parameters
        ----------
        agent_name:
            Agent that performed the execution.
        department:
            Department the agent belongs to.
        usage:
            Token usage; defaults to an empty usage on the default model.
        now:
            Override the current UTC time (for testing).

        Returns
        -------
        CostResult
            The execution cost plus the running totals it contributed to.
        """
        usage = usage or CostInput()
        moment = now or datetime.now(tz=timezone.utc)
        input_tokens, output_tokens = usage.resolve_tokens()
        cost = self._pricing.calculate_cost(usage.model, input_tokens, output_tokens)
        today, week, month = day_key(moment), week_key(moment), month_key(moment)

        with self._lock:
            agent = self._agents.get(agent_name)
            if agent is None:
                agent = AgentCostEntry(name=agent_name, department=department)
                self._agents[agent_name] = agent
            agent.total_cost += cost
            agent.total_input_tokens += input_tokens
            agent.total_output_tokens += output_tokens
            agent.executions += 1
            agent.last_used = moment
            model_usage = agent.model_usage.setdefault(usage.model, ModelUsage())
            model_usage.cost += cost
            model_usage.executions += 1

            dept = self._departments.get(department)
            if dept is None:
                dept = DepartmentLedger(name=department, monthly_budget=self._budgets.get(department))
                self._departments[department] = dept
            dept.total_cost += cost
            dept.agents.add(agent_name)

            daily = self._daily.setdefault(today, DailyBucket(date=today))
            daily.total_cost += cost
            daily.executions += 1
            daily.agents[agent_name] = daily.agents.get(agent_name, 0.0) + cost
            daily.departments[department] = daily.departments.get(department, 0.0) + cost

            weekly = self._weekly.setdefault(week, PeriodBucket(key=week))
            weekly.total_cost += cost
            weekly.executions += 1

            monthly = self._monthly.setdefault(month, PeriodBucket(key=month))
            monthly.total_cost += cost
            monthly.executions += 1

            crossing = self._check_budget(department, month)
            result = CostResult(
                cost=cost,
                total_cost_today=daily.total_cost,
                total_cost_this_month=monthly.total_cost,
                department_cost=dept.total_cost,
                department_budget=dept.monthly_budget,
            )

        if crossing is not None:
            self._emit(crossing, month)
        return result

    def set_department_budget(self, department: str, budget_usd: float) -> None:
        """Change a department's monthly budget, including an existing ledger."""
        with self._lock:
            self._budgets.set(department, budget_usd)
            dept = self._departments.get(department)
            if dept is not None:
                dept.monthly_budget = float(budget_usd)

    def reset(self) -> None:
        """Clear all accumulated cost data."""
        with self._lock:
            self._agents.clear()
            self._departments.clear()
            self._daily.clear()
            self._weekly.clear()
            self._monthly.clear()
            self._fired.clear()

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def get_department_monthly_cost(self, department: str, month: str) -> float:
        """Sum the department's agents' daily costs for a ``YYYY-MM`` month.

        Derived on every call from the daily buckets.
        """
        with self._lock:
            return self._department_monthly_cost(department, month)

    def get_agent_cost(self, agent_name: str) -> AgentCostEntry | None:
        """Return a copy of an agent's cost entry, or ``None``."""
        with self._lock:
            agent = self._agents.get(agent_name)
            return copy.deepcopy(agent) if agent is not None else None

    def get_department_cost(self, department: str) -> dict[str, object] | None:
        """Return a department summary with member agents sorted by cost."""
        with self._lock:
            return self._department_summary(department)

    def get_daily_report(self, day: str | date | None = None) -> dict[str, object]:
        """Return totals and per-agent/per-department breakdown for one day."""
        key = self._coerce_key(day, day_key)
        with self._lock:
            bucket = self._daily.get(key)
            if bucket is None:
                return {"date": key, "total_cost": 0.0, "executions": 0, "agents": [], "departments": []}
            return {
                "date": key,
                "total_cost": bucket.total_cost,
                "executions": bucket.executions,
                "agents": _ranked(bucket.agents),
                "departments": _ranked(bucket.departments),
            }

    def get_weekly_report(self, week: str | None = None) -> dict[str, object]:
        """Return totals for an ISO week key (default: current week)."""
        key = week or week_key(datetime.now(tz=timezone.utc))
        with self._lock:
            bucket = self._weekly.get(key)
            return {
                "week": key,
                "total_cost": bucket.total_cost if bucket else 0.0,
                "executions": bucket.executions if bucket else 0,
            }

    def get_monthly_report(self, month: str | None = None) -> dict[str, object]:
        """Return totals for a month plus the per-department breakdown."""
        key = month or month_key(datetime.now(tz=timezone.utc))
        with self._lock:
            bucket = self._monthly.get(key)
            if bucket is None:
                return {"month": key, "total_cost": 0.0, "executions": 0, "departments": []}
            departments: list[dict[str, object]] = []
            for name, dept in self._departments.items():
                spent = self._department_monthly_cost(name, key)
                if spent > 0:
                    departments.append(
                        {
                            "name": name,
                            "cost": spent,
                            "budget": dept.monthly_budget,
                            "budget_used": self._budgets.percent_used(spent, dept.monthly_budget),
                        }
                    )
            departments.sort(key=lambda d: float(d["cost"]), reverse=True)  # type: ignore[arg-type]
            return {
                "month": key,
                "total_cost": bucket.total_cost,
                "executions": bucket.executions,
                "departments": departments,
            }

    def get_cost_optimizations(self) -> list[CostOptimization]:
        """Suggest model downgrades for heavily used agents.

        An agent with more than 100 executions gets a suggestion to move its
        top-tier usage one tier down (about 80% saving), and to move its
        mid-tier usage to the cheapest tier (about 70% saving) when its
        average cost per execution is below $0.001.  Suggestions are sorted
        by potential saving, largest first.
        """
        top = self._pricing.highest
        lowest = self._pricing.lowest
        suggestions: list[CostOptimization] = []

        with self._lock:
            agents = list(self._agents.values())
            for agent in agents:
                if agent.executions <= _OPTIMIZATION_MIN_EXECUTIONS:
                    continue
                by_tier = self._usage_by_tier(agent)

                top_usage = by_tier.get(top.name)
                lower = self._pricing.next_lower(top)
                if top_usage is not None and top_usage.cost > 0 and lower is not None:
                    suggestions.append(
                        CostOptimization(
                            agent=agent.name,
                            type="model_downgrade",
                            message=f"Consider using {lower.name} instead of {top.name} for {agent.name}",
                            current_model=top.name,
                            suggested_model=lower.name,
                            current_cost=top_usage.cost,
                            potential_savings=top_usage.cost * _TOP_TIER_SAVINGS,
                            executions=top_usage.executions,
                        )
                    )

                avg_cost = agent.total_cost / agent.executions
                for tier in self._middle_tiers():
                    mid_usage = by_tier.get(tier.name)
                    if mid_usage is None or mid_usage.cost <= 0:
                        continue
                    if avg_cost < _CHEAP_TASK_THRESHOLD_USD:
                        suggestions.append(
                            CostOptimization(
                                agent=agent.name,
                                type="model_downgrade",
                                message=f"Consider using {lowest.name} instead of {tier.name} for {agent.name}",
                                current_model=tier.name,
                                suggested_model=lowest.name,
                                current_cost=mid_usage.cost,
                                potential_savings=mid_usage.cost * _MID_TIER_SAVINGS,
                                executions=agent.executions,
                            )
                        )

        return sorted(suggestions, key=lambda s: s.potential_savings, reverse=True)

    def get_all_costs(self) -> dict[str, object]:
        """Return a full read-side snapshot of the ledger."""
        with self._lock:
            agents = sorted(
                (copy.deepcopy(a) for a in self._agents.values()),
                key=lambda a: a.total_cost,
                reverse=True,
            )
            departments = [self._department_summary(name) for name in self._departments]
        departments.sort(key=lambda d: float(d["total_cost"]), reverse=True)  # type: ignore[index,arg-type]
        return {
            "agents": agents,
            "departments": departments,
            "daily": self.get_daily_report(),
            "weekly": self.get_weekly_report(),
            "monthly": self.get_monthly_report(),
            "optimizations": self.get_cost_optimizations(),
        }

    # ------------------------------------------------------------------
    # Snapshot support
    # ------------------------------------------------------------------

    def export_state(self) -> dict[str, object]:
        """Return a JSON-friendly dump of all ledger state."""
        with self._lock:
            return {
                "agents": [
                    {
                        "name": a.name,
                        "department": a.department,
                        "total_cost": a.total_cost,
                        "total_input_tokens": a.total_input_tokens,
                        "total_output_tokens": a.total_output_tokens,
                        "executions": a.executions,
                        "model_usage": {
                            model: {"cost": u.cost, "executions": u.executions}
                            for model, u in a.model_usage.items()
                        },
                        "last_used": a.last_used.isoformat() if a.last_used else None,
                    }
                    for a in self._agents.values()
                ],
                "departments": [
                    {
                        "name": d.name,
                        "monthly_budget": d.monthly_budget,
                        "total_cost": d.total_cost,
                        "agents": sorted(d.agents),
                    }
                    for d in self._departments.values()
                ],
                "daily": [
                    {
                        "date": b.date,
                        "total_cost": b.total_cost,
                        "executions": b.executions,
                        "agents": dict(b.agents),
                        "departments": dict(b.departments),
                    }
                    for b in self._daily.values()
                ],
                "weekly": [{"key": b.key, "total_cost": b.total_cost, "executions": b.executions} for b in self._weekly.values()],
                "monthly": [{"key": b.key, "total_cost": b.total_cost, "executions": b.executions} for b in self._monthly.values()],
            }

    def restore_state(self, state: dict[str, object]) -> None:
        """Replace ledger contents with a dump produced by :meth:`export_state`.

        Malformed entries are skipped with a warning.
        """
        with self._lock:
            self._agents.clear()
            self._departments.clear()
            self._daily.clear()
            self._weekly.clear()
            self._monthly.clear()
            self._fired.clear()

            for raw in _as_list(state.get("agents")):
                try:
                    last_used = raw.get("last_used")
                    entry = AgentCostEntry(
                        name=str(raw["name"]),
                        department=str(raw["department"]),
                        total_cost=float(raw.get("total_cost", 0.0)),
                        total_input_tokens=int(raw.get("total_input_tokens", 0)),
                        total_output_tokens=int(raw.get("total_output_tokens", 0)),
                        executions=int(raw.get("executions", 0)),
                        model_usage={
                            str(model): ModelUsage(cost=float(u["cost"]), executions=int(u["executions"]))
                            for model, u in dict(raw.get("model_usage") or {}).items()
                        },
                        last_used=datetime.fromisoformat(str(last_used)) if last_used else None,
                    )
                except (KeyError, TypeError, ValueError):
                    logger.warning("Skipping malformed agent cost entry in snapshot: %r", raw)
                    continue
                self._agents[entry.name] = entry

            for raw in _as_list(state.get("departments")):
                try:
                    dept = DepartmentLedger(
                        name=str(raw["name"]),
                        monthly_budget=float(raw.get("monthly_budget", self._budgets.get(str(raw["name"])))),
                        total_cost=float(raw.get("total_cost", 0.0)),
                        agents={str(a) for a in raw.get("agents") or []},
                    )
                except (KeyError, TypeError, ValueError):
                    logger.warning("Skipping malformed department entry in snapshot: %r", raw)
                    continue
                self._departments[dept.name] = dept

            for raw in _as_list(state.get("daily")):
                try:
                    bucket = DailyBucket(
                        date=str(raw["date"]),
                        total_cost=float(raw.get("total_cost", 0.0)),
                        executions=int(raw.get("executions", 0)),
                        agents={str(k): float(v) for k, v in dict(raw.get("agents") or {}).items()},
                        departments={str(k): float(v) for k, v in dict(raw.get("departments") or {}).items()},
                    )
                except (KeyError, TypeError, ValueError):
                    logger.warning("Skipping malformed daily bucket in snapshot: %r", raw)
                    continue
                self._daily[bucket.date] = bucket

            for target, key in ((self._weekly, "weekly"), (self._monthly, "monthly")):
                for raw in _as_list(state.get(key)):
                    try:
                        period = PeriodBucket(
                            key=str(raw["key"]),
                            total_cost=float(raw.get("total_cost", 0.0)),
                            executions=int(raw.get("executions", 0)),
                        )
                    except (KeyError, TypeError, ValueError):
                        logger.warning("Skipping malformed %s bucket in snapshot: %r", key, raw)
                        continue
                    target[period.key] = period

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _department_monthly_cost(self, department: str, month: str) -> float:
        total = 0.0
        for agent in self._agents.values():
            if agent.department != department:
                continue
            for key, bucket in self._daily.items():
                if key.startswith(month):
                    total += bucket.agents.get(agent.name, 0.0)
        return total

    def _check_budget(self, department: str, month: str) -> BudgetCrossing | None:
        """Return a crossing that has not been reported this month yet."""
        dept = self._departments[department]
        spent = self._department_monthly_cost(department, month)
        crossing = self._budgets.evaluate(department, spent, budget_usd=dept.monthly_budget)
        if crossing is None:
            return None
        key = (department, month, crossing.level)
        if key in self._fired:
            return None
        self._fired.add(key)
        return crossing

    def _emit(self, crossing: BudgetCrossing, month: str) -> None:
        if self._alert_sink is None:
            logger.debug("No alert sink configured; dropping budget alert for %s", crossing.department)
            return
        candidate = AlertCandidate(
            level=crossing.level,
            type=crossing.threshold.alert_type,
            message=crossing.message(),
            data={
                "department": crossing.department,
                "month": month,
                "cost": crossing.spent_usd,
                "budget": crossing.budget_usd,
                "percentage": crossing.percent_used,
            },
        )
        try:
            self._alert_sink.add_alert(candidate)
        except Exception:
            logger.exception("Alert sink raised while reporting budget crossing for %s", crossing.department)

    def _department_summary(self, department: str) -> dict[str, object] | None:
        dept = self._departments.get(department)
        if dept is None:
            return None
        members = sorted(
            (copy.deepcopy(a) for a in self._agents.values() if a.department == department),
            key=lambda a: a.total_cost,
            reverse=True,
        )
        return {
            "name": dept.name,
            "total_cost": dept.total_cost,
            "monthly_budget": dept.monthly_budget,
            "agents": members,
            "budget_used": self._budgets.percent_used(dept.total_cost, dept.monthly_budget),
        }

    def _usage_by_tier(self, agent: AgentCostEntry) -> dict[str, ModelUsage]:
        by_tier: dict[str, ModelUsage] = {}
        for model, usage in agent.model_usage.items():
            tier = self._pricing.resolve(model)
            bucket = by_tier.setdefault(tier.name, ModelUsage())
            bucket.cost += usage.cost
            bucket.executions += usage.executions
        return by_tier

    def _middle_tiers(self) -> list[ModelTier]:
        return self._pricing.tiers[1:-1]

    @staticmethod
    def _coerce_key(value: str | date | None, formatter: Callable[[datetime | date], str]) -> str:
        if value is None:
            return formatter(datetime.now(tz=timezone.utc))
        if isinstance(value, str):
            return value
        return formatter(value)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def pricing(self) -> PricingTable:
        return self._pricing

    @property
    def budgets(self) -> DepartmentBudgets:
        return self._budgets


def _ranked(costs: dict[str, float]) -> list[dict[str, object]]:
    return [
        {"name": name, "cost": cost}
        for name, cost in sorted(costs.items(), key=lambda item: item[1], reverse=True)
    ]


def _as_list(value: object) -> list[dict[str, object]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]
