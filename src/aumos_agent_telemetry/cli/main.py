"""CLI entry point for aumos-agent-telemetry.

Invoked as::

    agent-telemetry [OPTIONS] COMMAND [ARGS]...

or during development::

    python -m aumos_agent_telemetry.cli.main

Commands
--------
- version             Show version information
- init                Write a default telemetry.yaml
- price               Price a token count for a model
- metrics show        Show metrics from the latest snapshot
- alerts list         List stored alerts
- alerts stats        Count stored alerts by level and type
- cost report         Generate the daily cost report or a CSV export
- cost optimizations  Suggest model downgrades
"""
from __future__ import annotations

import sys
from pathlib import Path

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

_DEFAULT_CONFIG = Path("telemetry.yaml")


def _load_config(config_path: str):  # type: ignore[no-untyped-def]
    from aumos_agent_telemetry.config.loader import ConfigLoader

    loader = ConfigLoader()
    cfg_path = Path(config_path)
    try:
        return loader.load(cfg_path) if cfg_path.exists() else loader.defaults()
    except ValueError as exc:
        err_console.print(f"[red]Invalid config {cfg_path}:[/red] {exc}")
        sys.exit(2)


def _open_store(config_path: str, data_dir: str | None):  # type: ignore[no-untyped-def]
    from aumos_agent_telemetry.persistence.store import FileSnapshotStore

    config = _load_config(config_path)
    directory = Path(data_dir) if data_dir else config.persistence.data_dir
    return config, FileSnapshotStore(directory, max_snapshots=config.persistence.max_snapshots)


def _latest_snapshot_or_exit(store) -> dict[str, object]:  # type: ignore[no-untyped-def]
    snapshot = store.load_latest_snapshot()
    if snapshot is None:
        console.print(f"[yellow]No snapshots found in {store.data_dir}.[/yellow]")
        sys.exit(1)
    return snapshot


_config_option = click.option(
    "--config",
    "-c",
    "config_path",
    default=str(_DEFAULT_CONFIG),
    type=click.Path(),
    help="Path to telemetry.yaml.",
)
_data_dir_option = click.option(
    "--data-dir",
    "-d",
    default=None,
    type=click.Path(),
    help="Override persistence.data_dir from the config.",
)


# ---------------------------------------------------------------------------
# Root command group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="aumos-agent-telemetry")
def cli() -> None:
    """Agent Telemetry CLI — metrics, alerts, and cost reports."""


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from aumos_agent_telemetry import __version__

    console.print(
        Panel(
            f"[bold]aumos-agent-telemetry[/bold]  v[cyan]{__version__}[/cyan]\n"
            "Runtime telemetry for AI agent fleets.",
            title="Version",
            border_style="blue",
        )
    )


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------


@cli.command(name="init")
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    default=str(_DEFAULT_CONFIG),
    show_default=True,
    help="Output telemetry config file path.",
)
@click.option("--data-dir", default="./telemetry_data", show_default=True, help="Directory for persisted state.")
@click.option("--force", is_flag=True, help="Overwrite an existing file.")
def init_command(output: str, data_dir: str, force: bool) -> None:
    """Write a default telemetry.yaml with persistence enabled."""
    from aumos_agent_telemetry.config.loader import ConfigLoader, PersistenceConfig

    output_path = Path(output)
    if output_path.exists() and not force:
        err_console.print(f"[red]{output_path} already exists.[/red] Use --force to overwrite.")
        sys.exit(1)

    loader = ConfigLoader()
    config = loader.defaults()
    config.persistence = PersistenceConfig(enabled=True, data_dir=Path(data_dir))

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(loader.dump(config), encoding="utf-8")

    console.print(f"[green]Initialised[/green] telemetry config: [bold]{output_path}[/bold]")
    console.print(f"  Data directory: [cyan]{data_dir}[/cyan]")
    console.print(f"  Model tiers: [cyan]{', '.join(t.name for t in config.pricing.tiers)}[/cyan]")


# ---------------------------------------------------------------------------
# price
# ---------------------------------------------------------------------------


@cli.command(name="price")
@click.argument("model")
@click.option("--input-tokens", "-i", default=0, show_default=True, type=int, help="Input tokens.")
@click.option("--output-tokens", "-o", default=0, show_default=True, type=int, help="Output tokens.")
@click.option("--tokens", "-t", default=0, show_default=True, type=int, help="Total tokens, split evenly.")
@_config_option
def price_command(model: str, input_tokens: int, output_tokens: int, tokens: int, config_path: str) -> None:
    """Price a token count for MODEL using the configured tiers."""
    from aumos_agent_telemetry.cost.ledger import CostInput
    from aumos_agent_telemetry.cost.pricing import PricingTable

    config = _load_config(config_path)
    table = PricingTable(tiers=[t.to_tier() for t in config.pricing.tiers], default_tier=config.pricing.default_tier)
    usage = CostInput(model=model, input_tokens=input_tokens, output_tokens=output_tokens, tokens_used=tokens)
    resolved_in, resolved_out = usage.resolve_tokens()
    tier = table.resolve(model)
    cost = table.calculate_cost(model, resolved_in, resolved_out)

    result = Table(title="Token Cost", box=box.SIMPLE)
    result.add_column("Metric", style="cyan")
    result.add_column("Value", style="bold")
    result.add_row("Model", model)
    result.add_row("Tier", tier.name)
    result.add_row("Input Tokens", f"{resolved_in:,}")
    result.add_row("Output Tokens", f"{resolved_out:,}")
    result.add_row("Cost (USD)", f"${cost:.6f}")
    console.print(result)


# ---------------------------------------------------------------------------
# metrics group
# ---------------------------------------------------------------------------


@cli.group(name="metrics")
def metrics_group() -> None:
    """Execution metrics commands."""


@metrics_group.command(name="show")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["rich", "plain", "json"]),
    default="rich",
    show_default=True,
    help="Output format.",
)
@_config_option
@_data_dir_option
def metrics_show_command(output_format: str, config_path: str, data_dir: str | None) -> None:
    """Show metrics from the latest stored snapshot."""
    from aumos_agent_telemetry.dashboard.renderer import DashboardData, DashboardRenderer

    _, store = _open_store(config_path, data_dir)
    data = DashboardData.from_snapshot(_latest_snapshot_or_exit(store))
    renderer = DashboardRenderer()

    if output_format == "json":
        click.echo(renderer.render_json(data))
    elif output_format == "plain":
        click.echo(renderer.render_table(data))
    else:
        click.echo(renderer.render_summary(data), nl=False)


# ---------------------------------------------------------------------------
# alerts group
# ---------------------------------------------------------------------------


@cli.group(name="alerts")
def alerts_group() -> None:
    """Alert history commands."""


@alerts_group.command(name="list")
@click.option("--last", "-n", default=20, show_default=True, type=int, help="Number of alerts to show.")
@click.option("--level", type=click.Choice(["info", "warning", "critical"]), default=None, help="Filter by level.")
@click.option("--type", "alert_type", default=None, help="Filter by alert type.")
@click.option("--days", default=7, show_default=True, type=int, help="Days of alert files to read.")
@_config_option
@_data_dir_option
def alerts_list_command(
    last: int,
    level: str | None,
    alert_type: str | None,
    days: int,
    config_path: str,
    data_dir: str | None,
) -> None:
    """List recent stored alerts, newest first."""
    from aumos_agent_telemetry.dashboard.renderer import DashboardRenderer

    _, store = _open_store(config_path, data_dir)
    records = [
        r
        for r in store.load_recent_alerts(days)
        if (level is None or r.get("level") == level) and (alert_type is None or r.get("type") == alert_type)
    ]
    records.sort(key=lambda r: str(r.get("timestamp", "")), reverse=True)

    if not records:
        console.print("[yellow]No alerts found.[/yellow]")
        return

    console.print(DashboardRenderer().alerts_table(records[:last], title=f"Last {min(last, len(records))} Alerts"))
    console.print(f"  Total stored alerts: [cyan]{len(records)}[/cyan]")


@alerts_group.command(name="stats")
@click.option(
    "--period",
    "-p",
    type=click.Choice(["1h", "24h", "7d"]),
    default="24h",
    show_default=True,
    help="Counting window.",
)
@_config_option
@_data_dir_option
def alerts_stats_command(period: str, config_path: str, data_dir: str | None) -> None:
    """Count stored alerts by level and type."""
    from aumos_agent_telemetry.alerts.manager import AlertManager
    from aumos_agent_telemetry.persistence.writer import BackgroundWriter

    config, store = _open_store(config_path, data_dir)
    manager = AlertManager(channels=[], store=store, writer=BackgroundWriter(synchronous=True))
    manager.load_history(config.persistence.alert_history_days)
    stats = manager.get_alert_stats(period)

    table = Table(title=f"Alert Stats ({stats.period})", box=box.SIMPLE)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="bold")
    table.add_row("Total", str(stats.total))
    table.add_row("Info", str(stats.info))
    table.add_row("Warning", f"[yellow]{stats.warning}[/yellow]")
    table.add_row("Critical", f"[red]{stats.critical}[/red]")
    table.add_row("Unacknowledged", str(stats.unacknowledged))
    for alert_type, count in sorted(stats.by_type.items(), key=lambda item: item[1], reverse=True):
        table.add_row(f"  {alert_type}", str(count))
    console.print(table)


# ---------------------------------------------------------------------------
# cost group
# ---------------------------------------------------------------------------


def _ledger_from_snapshot(config, store):  # type: ignore[no-untyped-def]
    from aumos_agent_telemetry.cost.budget import DepartmentBudgets
    from aumos_agent_telemetry.cost.ledger import CostLedger
    from aumos_agent_telemetry.cost.pricing import PricingTable

    snapshot = _latest_snapshot_or_exit(store)
    ledger = CostLedger(
        pricing=PricingTable(tiers=[t.to_tier() for t in config.pricing.tiers], default_tier=config.pricing.default_tier),
        budgets=DepartmentBudgets(config.budgets.departments, default_usd=config.budgets.default_usd),
    )
    costs = snapshot.get("costs")
    if isinstance(costs, dict):
        ledger.restore_state(costs)
    return ledger


@cli.group(name="cost")
def cost_group() -> None:
    """Cost ledger commands."""


@cost_group.command(name="report")
@click.option(
    "--period",
    "-p",
    type=click.Choice(["daily", "weekly", "monthly", "all"]),
    default="daily",
    show_default=True,
    help="Reporting period for CSV export.",
)
@click.option(
    "--output",
    "-o",
    "output_file",
    default=None,
    type=click.Path(),
    help="Output CSV file path (prints the daily report if omitted).",
)
@click.option("--save/--no-save", default=False, show_default=True, help="Save the daily report to the data dir.")
@_config_option
@_data_dir_option
def cost_report_command(
    period: str,
    output_file: str | None,
    save: bool,
    config_path: str,
    data_dir: str | None,
) -> None:
    """Generate the daily cost report or export per-agent costs to CSV."""
    from aumos_agent_telemetry.cost.reporter import CostReporter

    config, store = _open_store(config_path, data_dir)
    reporter = CostReporter(_ledger_from_snapshot(config, store), store=store)

    if output_file:
        count = reporter.to_csv(Path(output_file), period=period)
        console.print(f"[green]Exported[/green] {count} agents to [bold]{output_file}[/bold] ({period}).")
        return

    report = reporter.generate_daily_report(save=save)
    summary: dict[str, float] = report["summary"]  # type: ignore[assignment]

    console.print(Panel(f"[bold]Daily Cost Report — {report['date']}[/bold]", border_style="blue"))
    table = Table(title="Summary", box=box.SIMPLE)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="bold")
    table.add_row("Today (USD)", f"${summary['today']:.4f}")
    table.add_row("Yesterday (USD)", f"${summary['yesterday']:.4f}")
    table.add_row("Executions", str(int(summary["executions"])))
    table.add_row("Avg per Execution", f"${summary['avg_cost_per_execution']:.6f}")
    colour = "red" if summary["change"] > 0 else "green"
    table.add_row("Change", f"[{colour}]{summary['change']:+.4f} ({summary['change_percent']:+.1f}%)[/{colour}]")
    console.print(table)

    agents: list[dict[str, object]] = report["top_agents"]  # type: ignore[assignment]
    if agents:
        top = Table(title="Top Agents", box=box.SIMPLE)
        top.add_column("Agent", style="cyan")
        top.add_column("Cost (USD)", justify="right")
        for entry in agents:
            top.add_row(str(entry["name"]), f"${float(entry['cost']):.4f}")  # type: ignore[arg-type]
        console.print(top)


@cost_group.command(name="optimizations")
@_config_option
@_data_dir_option
def cost_optimizations_command(config_path: str, data_dir: str | None) -> None:
    """Suggest cheaper models for heavily used agents."""
    config, store = _open_store(config_path, data_dir)
    suggestions = _ledger_from_snapshot(config, store).get_cost_optimizations()

    if not suggestions:
        console.print("[green]No optimisation suggestions.[/green]")
        return

    table = Table(title="Cost Optimisations", box=box.SIMPLE)
    table.add_column("Agent", style="cyan")
    table.add_column("Current", style="magenta")
    table.add_column("Suggested", style="green")
    table.add_column("Current Cost", justify="right")
    table.add_column("Potential Savings", justify="right", style="bold")
    for s in suggestions:
        table.add_row(
            s.agent,
            s.current_model,
            s.suggested_model,
            f"${s.current_cost:.4f}",
            f"${s.potential_savings:.4f}",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    cli()
