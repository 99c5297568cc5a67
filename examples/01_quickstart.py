#!/usr/bin/env python3
"""Example: Quickstart — aumos-agent-telemetry

Minimal working example: wrap two agents, run a few executions,
and read back metrics, costs and alerts.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install aumos-agent-telemetry
"""
from __future__ import annotations

import asyncio

import aumos_agent_telemetry as telemetry_pkg
from aumos_agent_telemetry import AgentTelemetry, CostInput, DashboardData, DashboardRenderer


async def qualify_lead(lead: str) -> str:
    await asyncio.sleep(0.01)
    if lead == "spam":
        raise ValueError("lead rejected by spam filter")
    return f"{lead}: qualified"


def main() -> None:
    print(f"aumos-agent-telemetry version: {telemetry_pkg.__version__}")

    # Step 1: Create the telemetry hub and two agents
    telemetry = AgentTelemetry()
    qualifier = telemetry.create_agent("lead-qualifier", department="sales", model="sonnet")
    triage = telemetry.create_agent("ticket-triage", department="support", model="haiku")

    # Step 2: Run executions with token usage
    for lead in ["acme", "globex", "spam"]:
        result = asyncio.run(qualifier.execute(lambda lead=lead: qualify_lead(lead), CostInput(tokens_used=4_000)))
        print(f"  [{'OK' if result.success else 'FAIL'}] {result.result or result.error}")

    for _ in range(5):
        triage.execute_sync(lambda: "routed", CostInput(input_tokens=1_200, output_tokens=300))
    triage.warn("queue depth above 50")

    # Step 3: Read metrics and costs
    system = telemetry.metrics.get_system_metrics()
    print(f"\nExecutions: {system.total_executions}  errors: {system.total_errors}")
    for entry in telemetry.ledger.get_all_costs()["agents"]:  # type: ignore[union-attr]
        print(f"  {entry.name:<16} {entry.department:<8} ${entry.total_cost:.6f}")

    # Step 4: Render the dashboard
    print(DashboardRenderer().render_table(DashboardData.from_snapshot(telemetry.snapshot())))


if __name__ == "__main__":
    main()
