from __future__ import annotations

from pathlib import Path

import typer
from rich.markdown import Markdown
from rich.table import Table

from trajmem_cli.commands._runner import console, run_with_context


def curate_command(
    label: str = typer.Argument(..., help="Task label to curate examples for"),
    max_examples: int = typer.Option(
        3, "--max", "-m", help="Maximum positive examples"
    ),
    include_negative: bool = typer.Option(
        True,
        "--negative/--no-negative",
        help="Include one low-scoring example",
    ),
    apply: bool = typer.Option(
        False, "--apply", help="Write the examples into the examples region"
    ),
    file: str | None = typer.Option(
        None, "--file", "-f", help="Instruction document (defaults to config target)"
    ),
) -> None:
    """Select diverse example trajectories for a label."""

    async def _curate(ctx):
        result = await ctx.curator.curate(
            label, max_examples, include_negative=include_negative
        )
        if apply and result.examples:
            target = Path(file) if file else Path(ctx.config.optimizer.target_file)
            await ctx.curator.apply(target, label, result.content)
        return result

    result = run_with_context(_curate)
    if not result.examples:
        console.print(f"[yellow]No examples available for '{label}'.[/yellow]")
        raise typer.Exit(0)

    table = Table(
        title=f"Curated Examples: {label}",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Trajectory", style="bold")
    table.add_column("Score", justify="right")
    table.add_column("Kind")
    table.add_column("Why selected")
    for example in result.examples:
        table.add_row(
            example.trajectory_id,
            f"{example.score:.2f}",
            "[red]negative[/red]" if example.negative else "[green]positive[/green]",
            example.why_selected,
        )
    console.print(table)

    if apply:
        console.print(f"[green]Updated examples region '{label}'.[/green]")
    else:
        console.print()
        console.print(Markdown(result.content))
