"""Department budget allocation and threshold evaluation.

DepartmentBudgets holds the monthly USD allocation for each department and
decides which budget threshold, if any, a department's month-to-date spend
has crossed.  Thresholds are checked from the most to the least severe and
the first match wins, so a single spend figure maps to at most one crossing.

A budget of zero (or less) is treated as already exhausted: any spend,
including none, is a 100%+ breach.

Example
-------
>>> budgets = DepartmentBudgets()
>>> budgets.get("sales")
500.0
>>> budgets.evaluate("sales", spent_usd=460.0).level.value
'warning'
"""
from __future__ import annotations

import math
from dataclasses import dataclass

from aumos_agent_telemetry.alerts.models import AlertLevel

DEFAULT_DEPARTMENT_BUDGETS: dict[str, float] = {
    "sales": 500.0,
    "marketing": 300.0,
    "operations": 200.0,
    "support": 150.0,
}
DEFAULT_FALLBACK_BUDGET: float = 100.0


@dataclass(frozen=True)
class BudgetThreshold:
    """A percentage-of-budget threshold and the alert it produces."""

    percent: float
    level: AlertLevel
    alert_type: str


DEFAULT_THRESHOLDS: tuple[BudgetThreshold, ...] = (
    BudgetThreshold(percent=100.0, level=AlertLevel.CRITICAL, alert_type="budget_exceeded"),
    BudgetThreshold(percent=90.0, level=AlertLevel.WARNING, alert_type="budget_warning"),
    BudgetThreshold(percent=75.0, level=AlertLevel.INFO, alert_type="budget_info"),
)


@dataclass
class BudgetCrossing:
    """The highest threshold a department's monthly spend has crossed.

    Attributes
    ----------
    department:
        Department name.
    spent_usd:
        Month-to-date spend.
    budget_usd:
        Monthly allocation.
    percent_used:
        ``spent / budget * 100``; ``inf`` when the budget is not positive.
    threshold:
        The matched threshold.
    """

    department: str
    spent_usd: float
    budget_usd: float
    percent_used: float
    threshold: BudgetThreshold

    @property
    def level(self) -> AlertLevel:
        return self.threshold.level

    @property
    def exceeded(self) -> bool:
        return self.percent_used >= 100.0

    def message(self) -> str:
        """Compose the human-readable alert message."""
        if self.exceeded:
            return (
                f"Department {self.department} has exceeded monthly budget: "
                f"${self.spent_usd:.2f} / ${self.budget_usd:.2f}"
            )
        return (
            f"Department {self.department} is at {self.percent_used:.0f}% of monthly budget: "
            f"${self.spent_usd:.2f} / ${self.budget_usd:.2f}"
        )


class DepartmentBudgets:
    """Monthly budget allocations per department.

    Parameters
    ----------
    budgets:
        Mapping of department name to monthly budget in USD.  Defaults to
        the built-in allocation.
    default_usd:
        Budget applied to departments not present in ``budgets``.
    thresholds:
        Thresholds to evaluate.  They are sorted most severe first.
    """

    def __init__(
        self,
        budgets: dict[str, float] | None = None,
        default_usd: float = DEFAULT_FALLBACK_BUDGET,
        thresholds: list[BudgetThreshold] | tuple[BudgetThreshold, ...] | None = None,
    ) -> None:
        source = DEFAULT_DEPARTMENT_BUDGETS if budgets is None else budgets
        self._budgets: dict[str, float] = {k: float(v) for k, v in source.items()}
        self._default = float(default_usd)
        self._thresholds = sorted(
            thresholds if thresholds is not None else DEFAULT_THRESHOLDS,
            key=lambda t: t.percent,
            reverse=True,
        )

    def get(self, department: str) -> float:
        """Return the monthly budget for a department."""
        return self._budgets.get(department, self._default)

    def set(self, department: str, budget_usd: float) -> None:
        """Override the monthly budget for a department."""
        self._budgets[department] = float(budget_usd)

    def percent_used(self, spent_usd: float, budget_usd: float) -> float:
        """Return spend as a percentage of budget; ``inf`` for non-positive budgets."""
        if budget_usd <= 0:
            return math.inf
        return spent_usd / budget_usd * 100.0

    def evaluate(
        self,
        department: str,
        spent_usd: float,
        budget_usd: float | None = None,
    ) -> BudgetCrossing | None:
        """Return the most severe threshold crossed, or ``None``.

        Parameters
        ----------
        department:
            Department name.
        spent_usd:
            Month-to-date spend.
        budget_usd:
            Explicit budget; defaults to :meth:`get`.
        """
        budget = self.get(department) if budget_usd is None else budget_usd
        percent = self.percent_used(spent_usd, budget)
        for threshold in self._thresholds:
            if percent >= threshold.percent:
                return BudgetCrossing(
                    department=department,
                    spent_usd=spent_usd,
                    budget_usd=budget,
                    percent_used=percent,
                    threshold=threshold,
                )
        return None

    def as_dict(self) -> dict[str, float]:
        """Return the explicit allocations (without the fallback)."""
        return dict(self._budgets)

    @property
    def default_usd(self) -> float:
        return self._default
