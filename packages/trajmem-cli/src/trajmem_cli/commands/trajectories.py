"""Trajectory commands: record, score, list, show, summarize, search."""
from __future__ import annotations

import datetime
import json
from pathlib import Path

import typer
from rich.markdown import Markdown
from rich.table import Table
from trajmem_core.errors import InvalidTrajectoryError
from trajmem_core.types import Trajectory
from trajmem_optimizer.formatting import format_trajectory

from trajmem_cli.commands._runner import console, err_console, run_with_context

trajectories_app = typer.Typer(no_args_is_help=True)


def record_command(
    path: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="JSON file with one trajectory object or a list of them",
    ),
) -> None:
    """Store trajectories from a JSON file."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        items = data if isinstance(data, list) else [data]
        trajectories = [Trajectory.from_dict(item) for item in items]
    except (json.JSONDecodeError, InvalidTrajectoryError) as exc:
        err_console.print(f"[red]Invalid trajectory file:[/red] {exc}")
        raise typer.Exit(1) from exc

    async def _record(ctx):
        return [await ctx.trajectories.save(t) for t in trajectories]

    ids = run_with_context(_record)
    for trajectory_id in ids:
        console.print(f"[green]Recorded[/green] {trajectory_id}")


def score_command(
    trajectory_id: str = typer.Argument(..., help="Trajectory to score"),
    score: float = typer.Argument(..., min=0.0, max=1.0, help="Score in [0, 1]"),
    notes: str = typer.Option("", "--notes", "-n", help="Feedback notes"),
) -> None:
    """Attach a quality score to a recorded trajectory."""
    run_with_context(lambda ctx: ctx.trajectories.score(trajectory_id, score, notes))
    console.print(f"[green]Scored[/green] {trajectory_id}: {score:.2f}")


@trajectories_app.command("list")
def trajectories_list(
    label: str | None = typer.Option(None, "--label", "-l", help="Filter by label"),
    limit: int = typer.Option(20, "--limit", "-n", help="Max trajectories"),
) -> None:
    """List recorded trajectories, most recent first."""

    async def _list(ctx):
        if label is None:
            return await ctx.trajectories.list(limit)
        matching = await ctx.trajectories.list_by_label(label)
        matching.reverse()
        return matching[:limit]

    trajectories = run_with_context(_list)
    if not trajectories:
        console.print("[dim]No trajectories recorded.[/dim]")
        raise typer.Exit(0)

    console.print(_trajectory_table("Trajectories", trajectories))


@trajectories_app.command("show")
def trajectories_show(
    trajectory_id: str = typer.Argument(..., help="Trajectory to show"),
) -> None:
    """Show a trajectory's steps, summary and outcome."""
    trajectory = run_with_context(lambda ctx: ctx.trajectories.get(trajectory_id))
    console.print(Markdown(format_trajectory(trajectory)))


@trajectories_app.command("summarize")
def trajectories_summarize(
    trajectory_id: str = typer.Argument(..., help="Trajectory to summarize"),
    summary: str = typer.Argument(..., help="Short summary of the approach"),
) -> None:
    """Store a summary of the approach a trajectory took."""
    try:
        run_with_context(
            lambda ctx: ctx.trajectories.summarize(trajectory_id, summary)
        )
    except ValueError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc
    console.print(f"[green]Summarized[/green] {trajectory_id}")


@trajectories_app.command("search")
def trajectories_search(
    query: str = typer.Argument(..., help="Keyword to look for"),
    limit: int = typer.Option(5, "--limit", "-n", help="Max results"),
    min_score: float | None = typer.Option(
        None, "--min-score", min=0.0, max=1.0, help="Minimum score"
    ),
) -> None:
    """Search trajectories by task, summary and labels."""
    try:
        trajectories = run_with_context(
            lambda ctx: ctx.trajectories.search(query, limit, min_score)
        )
    except ValueError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc
    if not trajectories:
        console.print(f"[dim]No trajectories match '{query}'.[/dim]")
        raise typer.Exit(0)
    console.print(_trajectory_table(f"Matches for '{query}'", trajectories))


def _trajectory_table(title: str, trajectories: list[Trajectory]) -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold")
    table.add_column("Task")
    table.add_column("Labels")
    table.add_column("Steps", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Started")
    for t in trajectories:
        table.add_row(
            t.id,
            t.task if len(t.task) <= 60 else t.task[:57] + "...",
            ", ".join(t.labels) or "-",
            str(len(t.steps)),
            "-" if t.score is None else f"{t.score:.2f}",
            datetime.datetime.fromtimestamp(t.started_at).strftime("%Y-%m-%d %H:%M"),
        )
    return table
