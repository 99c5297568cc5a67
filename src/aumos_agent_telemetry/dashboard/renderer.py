"""Terminal dashboard renderer for telemetry snapshots.

DashboardRenderer produces human-readable output in three formats:
- Rich-formatted terminal panels and tables (for CLI use)
- Plain tabular text (for log-friendly output)
- JSON (for programmatic consumption)

The data comes from :meth:`AgentTelemetry.snapshot` output, either live or
loaded from a stored snapshot file.

Example
-------
>>> from aumos_agent_telemetry.dashboard.renderer import DashboardRenderer, DashboardData
>>> data = DashboardData(
...     total_executions=150,
...     total_errors=6,
...     total_cost_usd=4.27,
...     executions_per_hour=12,
...     agents=[{"name": "lead-qualifier", "executions": 150, "errors": 6, "error_rate": 0.04,
...              "avg_duration_ms": 850.0, "total_cost": 4.27}],
...     alert_counts={"info": 1, "warning": 2, "critical": 0, "unacknowledged": 3},
...     recent_alerts=[],
... )
>>> renderer = DashboardRenderer()
>>> print(renderer.render_json(data))
"""
from __future__ import annotations

import io
import json
from dataclasses import dataclass, field

from rich.console import Console
from rich.panel import Panel
from rich.table import Table


@dataclass
class DashboardData:
    """Aggregated telemetry figures for dashboard rendering.

    Attributes
    ----------
    total_executions:
        Lifetime execution count across all agents.
    total_errors:
        Lifetime failed executions.
    total_cost_usd:
        Lifetime cost across all agents.
    executions_per_hour:
        Executions in the last hour.
    agents:
        One flat dict per agent, most expensive first.
    alert_counts:
        Alert totals by level plus ``unacknowledged`` for the last 24h.
    recent_alerts:
        Most recent alerts as dicts, newest first.
    timestamp:
        When the underlying snapshot was taken.
    """

    total_executions: int
    total_errors: int
    total_cost_usd: float
    executions_per_hour: int
    agents: list[dict[str, object]]
    alert_counts: dict[str, int]
    recent_alerts: list[dict[str, object]]
    timestamp: str = ""
    departments: list[dict[str, object]] = field(default_factory=list)

    @property
    def error_rate(self) -> float:
        return self.total_errors / self.total_executions if self.total_executions else 0.0

    @classmethod
    def from_snapshot(cls, snapshot: dict[str, object]) -> DashboardData:
        """Build dashboard data from a telemetry snapshot dict."""
        metrics = snapshot.get("metrics") if isinstance(snapshot.get("metrics"), dict) else {}
        costs = snapshot.get("costs") if isinstance(snapshot.get("costs"), dict) else {}
        alerts = snapshot.get("alerts") if isinstance(snapshot.get("alerts"), dict) else {}
        system = metrics.get("system") or {}  # type: ignore[union-attr]
        stats = alerts.get("stats") or {}  # type: ignore[union-attr]

        agent_costs = {str(a.get("name")): a for a in costs.get("agents") or []}  # type: ignore[union-attr]
        agents: list[dict[str, object]] = []
        for raw in metrics.get("agents") or []:  # type: ignore[union-attr]
            name = str(raw.get("name"))
            cost_entry = agent_costs.get(name, {})
            agents.append(
                {
                    "name": name,
                    "department": cost_entry.get("department", ""),
                    "executions": int(raw.get("executions", 0)),
                    "errors": int(raw.get("errors", 0)),
                    "error_rate": float(raw.get("error_rate", 0.0)),
                    "avg_duration_ms": float(raw.get("avg_duration_ms", 0.0)),
                    "total_cost": float(cost_entry.get("total_cost", raw.get("total_cost", 0.0))),
                }
            )
        agents.sort(key=lambda a: float(a["total_cost"]), reverse=True)  # type: ignore[arg-type]

        departments = [
            {"name": d.get("name"), "total_cost": float(d.get("total_cost", 0.0)), "monthly_budget": d.get("monthly_budget")}
            for d in costs.get("departments") or []  # type: ignore[union-attr]
        ]
        departments.sort(key=lambda d: float(d["total_cost"]), reverse=True)  # type: ignore[arg-type]

        return cls(
            total_executions=int(system.get("total_executions", 0)),
            total_errors=int(system.get("total_errors", 0)),
            total_cost_usd=float(system.get("total_cost", 0.0)),
            executions_per_hour=int(system.get("executions_per_hour", 0)),
            agents=agents,
            alert_counts={
                key: int(stats.get(key, 0)) for key in ("info", "warning", "critical", "unacknowledged")
            },
            recent_alerts=list(alerts.get("recent") or []),  # type: ignore[union-attr]
            timestamp=str(snapshot.get("timestamp", "")),
            departments=departments,
        )


class DashboardRenderer:
    """Renders :class:`DashboardData` in multiple output formats."""

    # ------------------------------------------------------------------
    # Rich rendering
    # ------------------------------------------------------------------

    def render_summary(self, data: DashboardData) -> str:
        """Render a Rich-formatted telemetry summary.

        Returns
        -------
        str
            A string containing ANSI colour codes for terminal output.
        """
        output_buffer = io.StringIO()
        console = Console(file=output_buffer, highlight=False)

        critical = data.alert_counts.get("critical", 0)
        health_color = "green" if critical == 0 else "red"

        overview_table = Table.grid(padding=(0, 2))
        overview_table.add_column(style="bold")
        overview_table.add_column()
        overview_table.add_row("Executions", str(data.total_executions))
        overview_table.add_row(
            "Errors",
            f"{data.total_errors}  ({data.error_rate * 100:.1f}% error rate)",
        )
        overview_table.add_row("Executions (last hour)", str(data.executions_per_hour))
        overview_table.add_row("Total Cost (USD)", f"${data.total_cost_usd:.4f}")
        overview_table.add_row(
            "Alerts (24h)",
            f"{data.alert_counts.get('info', 0)} info / {data.alert_counts.get('warning', 0)} warning / "
            f"[{health_color}]{critical} critical[/{health_color}]",
        )
        if data.timestamp:
            overview_table.add_row("Snapshot", data.timestamp)

        console.print(Panel(overview_table, title="[bold cyan]Agent Telemetry[/bold cyan]", border_style="cyan"))

        if data.agents:
            console.print(self.agents_table(data.agents))
        else:
            console.print(Panel("[dim]No agent executions recorded.[/dim]", title="Agents"))

        if data.recent_alerts:
            console.print(self.alerts_table(data.recent_alerts[:10], title="Recent Alerts"))
        else:
            console.print(Panel("[green]No recent alerts.[/green]", title="Recent Alerts"))

        return output_buffer.getvalue()

    def agents_table(self, agents: list[dict[str, object]]) -> Table:
        table = Table(
            "Agent",
            "Department",
            "Executions",
            "Error Rate",
            "Avg Duration",
            "Cost (USD)",
            title="Agents",
            show_header=True,
            header_style="bold magenta",
        )
        for agent in agents:
            table.add_row(
                str(agent.get("name", "")),
                str(agent.get("department", "")),
                str(agent.get("executions", 0)),
                f"{float(agent.get('error_rate', 0.0)) * 100:.1f}%",  # type: ignore[arg-type]
                f"{float(agent.get('avg_duration_ms', 0.0)):.0f} ms",  # type: ignore[arg-type]
                f"${float(agent.get('total_cost', 0.0)):.4f}",  # type: ignore[arg-type]
            )
        return table

    def alerts_table(self, alerts: list[dict[str, object]], title: str = "Alerts") -> Table:
        table = Table(
            "Time",
            "Level",
            "Type",
            "Message",
            "Ack",
            title=title,
            show_header=True,
            header_style="bold yellow",
            expand=True,
        )
        colors = {"info": "blue", "warning": "yellow", "critical": "red"}
        for alert in alerts:
            level = str(alert.get("level", "info"))
            color = colors.get(level, "white")
            table.add_row(
                str(alert.get("timestamp", ""))[:19],
                f"[{color}]{level}[/{color}]",
                str(alert.get("type", "")),
                str(alert.get("message", "")),
                "yes" if alert.get("acknowledged") else "no",
            )
        return table

    # ------------------------------------------------------------------
    # Plain tabular rendering
    # ------------------------------------------------------------------

    def render_table(self, data: DashboardData) -> str:
        """Render a plain-text summary for logs or file redirection."""
        sep = "-" * 60
        lines: list[str] = [
            sep,
            " AGENT TELEMETRY",
            sep,
            f"  Executions        : {data.total_executions}",
            f"  Errors            : {data.total_errors} ({data.error_rate * 100:.1f}%)",
            f"  Last hour         : {data.executions_per_hour}",
            f"  Total Cost (USD)  : ${data.total_cost_usd:.4f}",
            f"  Critical alerts   : {data.alert_counts.get('critical', 0)}",
            sep,
        ]

        if data.agents:
            lines.append(" AGENTS")
            lines.append(sep)
            for agent in data.agents:
                lines.append(
                    f"  {str(agent.get('name', '')):<24} {agent.get('executions', 0):>6} runs  "
                    f"${float(agent.get('total_cost', 0.0)):.4f}"  # type: ignore[arg-type]
                )
            lines.append(sep)
        else:
            lines.append("  No agent executions recorded.")
            lines.append(sep)

        if data.recent_alerts:
            lines.append(" RECENT ALERTS (last 10)")
            lines.append(sep)
            for alert in data.recent_alerts[:10]:
                lines.append(f"  [{alert.get('level', 'info')}] {alert.get('message', '')}")
            lines.append(sep)

        return "\n".join(lines)

    # ------------------------------------------------------------------
    # JSON rendering
    # ------------------------------------------------------------------

    def render_json(self, data: DashboardData) -> str:
        """Render the dashboard data as a JSON string."""
        payload: dict[str, object] = {
            "timestamp": data.timestamp,
            "total_executions": data.total_executions,
            "total_errors": data.total_errors,
            "error_rate": data.error_rate,
            "total_cost_usd": data.total_cost_usd,
            "executions_per_hour": data.executions_per_hour,
            "agents": data.agents,
            "departments": data.departments,
            "alert_counts": data.alert_counts,
            "recent_alerts": data.recent_alerts,
        }
        return json.dumps(payload, indent=2, default=str)
