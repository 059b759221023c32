"""Strategy commands: list, select, record, analyze."""
from __future__ import annotations

from pathlib import Path

import typer
from rich.panel import Panel
from rich.table import Table
from trajmem_optimizer.strategies import load_strategies
from trajmem_optimizer.types import SelectionMode, StrategyReport

from trajmem_cli.commands._runner import console, run_with_context

strategies_app = typer.Typer(no_args_is_help=True)

_FILE_OPTION = typer.Option(
    None, "--file", "-f", help="Instruction document (defaults to config target)"
)


def _target(ctx, file: str | None) -> Path:
    return Path(file) if file else Path(ctx.config.optimizer.target_file)


def _print_report(report: StrategyReport) -> None:
    table = Table(
        title=f"Strategies: {report.label}",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Strategy", style="bold")
    table.add_column("Uses", justify="right")
    table.add_column("Avg score", justify="right")
    for s in report.strategies:
        marker = " *" if report.best is not None and s.name == report.best.name else ""
        table.add_row(
            s.name + marker,
            str(s.usage_count),
            "-" if s.avg_score is None else f"{s.avg_score:.2f}",
        )
    console.print(table)
    console.print(f"[dim]{report.total_usages} recorded session(s).[/dim]")
    if report.best is not None:
        console.print(f"Best performer: [bold]{report.best.name}[/bold]")
    if report.exploration_suggested and report.least_used is not None:
        console.print(
            f"[yellow]Exploration suggested:[/yellow] try "
            f"[bold]{report.least_used.name}[/bold]"
        )


@strategies_app.command("list")
def strategies_list(
    label: str = typer.Argument(..., help="Strategies region tag"),
    file: str | None = _FILE_OPTION,
) -> None:
    """List declared strategies with their usage statistics."""

    async def _list(ctx):
        strategies = load_strategies(_target(ctx, file), label)
        return await ctx.selector.analyze(label, strategies)

    report = run_with_context(_list)
    if not report.strategies:
        console.print(f"[yellow]No strategies declared for '{label}'.[/yellow]")
        raise typer.Exit(0)
    _print_report(report)


@strategies_app.command("select")
def strategies_select(
    label: str = typer.Argument(..., help="Strategies region tag"),
    mode: SelectionMode = typer.Option(
        SelectionMode.RECOMMEND, "--mode", "-m", help="Selection policy"
    ),
    name: str | None = typer.Option(
        None, "--name", "-n", help="Strategy name (explicit mode)"
    ),
    file: str | None = _FILE_OPTION,
) -> None:
    """Choose a strategy for the next task."""

    async def _select(ctx):
        strategies = load_strategies(_target(ctx, file), label)
        return await ctx.selector.select(label, strategies, mode, name)

    selection = run_with_context(_select)
    strategy = selection.strategy
    lines = [
        f"[bold]Mode:[/bold]   {selection.mode.value}",
        f"[bold]Reason:[/bold] {selection.reason}",
    ]
    if strategy.description:
        lines.append(f"[bold]About:[/bold]  {strategy.description}")
    if strategy.approach_prompt:
        lines.extend(["", strategy.approach_prompt.rstrip()])
    console.print(Panel(
        "\n".join(lines),
        title=f"Strategy: {strategy.name}",
        border_style="cyan",
    ))


@strategies_app.command("record")
def strategies_record(
    label: str = typer.Argument(..., help="Strategies region tag"),
    name: str = typer.Argument(..., help="Strategy used"),
    trajectory_id: str = typer.Argument(..., help="Trajectory that used it"),
) -> None:
    """Link a trajectory to the strategy it followed."""
    run_with_context(
        lambda ctx: ctx.selector.record_usage(label, name, trajectory_id)
    )
    console.print(
        f"[green]Recorded[/green] {name} for {trajectory_id} under '{label}'"
    )


@strategies_app.command("analyze")
def strategies_analyze(
    label: str = typer.Argument(..., help="Strategies region tag"),
) -> None:
    """Report per-strategy performance from recorded usages."""
    report = run_with_context(lambda ctx: ctx.selector.analyze(label))
    if not report.strategies:
        console.print(f"[yellow]No strategy usage recorded for '{label}'.[/yellow]")
        raise typer.Exit(0)
    _print_report(report)
