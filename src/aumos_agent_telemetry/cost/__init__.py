"""Cost tracking package for aumos-agent-telemetry.

Provides model pricing, the per-agent/per-department cost ledger, monthly
department budgets, and cost reporting.
"""
from __future__ import annotations

from aumos_agent_telemetry.cost.budget import BudgetCrossing, BudgetThreshold, DepartmentBudgets
from aumos_agent_telemetry.cost.ledger import (
    AgentCostEntry,
    CostInput,
    CostLedger,
    CostOptimization,
    CostResult,
)
from aumos_agent_telemetry.cost.pricing import ModelTier, PricingTable
from aumos_agent_telemetry.cost.reporter import CostReporter

__all__ = [
    "AgentCostEntry",
    "BudgetCrossing",
    "BudgetThreshold",
    "CostInput",
    "CostLedger",
    "CostOptimization",
    "CostReporter",
    "CostResult",
    "DepartmentBudgets",
    "ModelTier",
    "PricingTable",
]
