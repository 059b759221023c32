"""Optimization lifecycle commands: propose, save, apply, reject, rollback."""
from __future__ import annotations

import datetime
from pathlib import Path

import typer
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from trajmem_core.errors import TargetNotFoundError
from trajmem_optimizer.formatting import format_analysis
from trajmem_optimizer.markers import find_region
from trajmem_optimizer.types import RegionKind

from trajmem_cli.commands._runner import console, run_with_context

optimize_app = typer.Typer(no_args_is_help=True)

_FILE_OPTION = typer.Option(
    None, "--file", "-f", help="Instruction document (defaults to config target)"
)


def _target(ctx, file: str | None) -> Path:
    return Path(file) if file else Path(ctx.config.optimizer.target_file)


def _ts(value: float | None) -> str:
    if value is None:
        return "-"
    return datetime.datetime.fromtimestamp(value).strftime("%Y-%m-%d %H:%M")


@optimize_app.command("propose")
def optimize_propose(
    file: str | None = _FILE_OPTION,
    label: str | None = typer.Option(
        None, "--label", "-l", help="Only propose for this region tag"
    ),
) -> None:
    """Analyze trajectories and print rewrite prompts for optimize regions."""

    async def _propose(ctx):
        target = _target(ctx, file)
        if label is None:
            return await ctx.manager.propose_all(target)
        region = find_region(target, label, RegionKind.OPTIMIZE)
        if region is None:
            msg = f"no optimize region tagged {label!r} in {target}"
            raise TargetNotFoundError(msg)
        return [await ctx.manager.propose(region)]

    proposals = run_with_context(_propose)
    if not proposals:
        console.print(
            "[yellow]No optimize regions have enough scored trajectories.[/yellow]"
        )
        raise typer.Exit(0)

    for proposal in proposals:
        console.print(Panel(
            Markdown(format_analysis(proposal.analysis)),
            title=f"Proposal {proposal.record.id}",
            border_style="cyan",
        ))
        console.print(Syntax(proposal.prompt, "markdown", word_wrap=True))
        console.print(
            f"\n[dim]Save a rewrite with: trajmem optimize save "
            f"{proposal.record.id} --file {proposal.region.path} "
            f"--label {proposal.region.label} --content REWRITE.md[/dim]\n"
        )


@optimize_app.command("save")
def optimize_save(
    record_id: str = typer.Argument(..., help="Proposal id from `propose`"),
    label: str = typer.Option(..., "--label", "-l", help="Region tag"),
    content: Path = typer.Option(
        ...,
        "--content",
        "-c",
        exists=True,
        dir_okay=False,
        readable=True,
        help="File holding the rewritten region body",
    ),
    file: str | None = _FILE_OPTION,
) -> None:
    """Save a rewritten region body as a proposed optimization."""
    new_content = content.read_text(encoding="utf-8")

    async def _save(ctx):
        target = _target(ctx, file)
        region = find_region(target, label, RegionKind.OPTIMIZE)
        if region is None:
            msg = f"no optimize region tagged {label!r} in {target}"
            raise TargetNotFoundError(msg)
        return await ctx.manager.save(
            record_id, target, label, region.content, new_content
        )

    record = run_with_context(_save)
    console.print(f"[green]Saved optimization {record.id}[/green]")
    console.print(Syntax(record.diff, "diff"))


@optimize_app.command("apply")
def optimize_apply(
    record_id: str = typer.Argument(..., help="Optimization id"),
) -> None:
    """Write a proposed optimization into its document."""
    record = run_with_context(lambda ctx: ctx.manager.apply(record_id))
    console.print(
        f"[green]Applied {record.id}[/green] to {record.target_file} "
        f"({record.label})"
    )


@optimize_app.command("reject")
def optimize_reject(
    record_id: str = typer.Argument(..., help="Optimization id"),
) -> None:
    """Reject a proposed optimization."""
    record = run_with_context(lambda ctx: ctx.manager.reject(record_id))
    console.print(f"[yellow]Rejected {record.id}[/yellow]")


@optimize_app.command("rollback")
def optimize_rollback(
    record_id: str = typer.Argument(..., help="Optimization id"),
) -> None:
    """Restore the content an applied optimization replaced."""
    record = run_with_context(lambda ctx: ctx.manager.rollback(record_id))
    console.print(
        f"[green]Rolled back {record.id}[/green] in {record.target_file} "
        f"({record.label})"
    )


@optimize_app.command("history")
def optimize_history(
    file: str | None = typer.Option(
        None, "--file", "-f", help="Only records for this document"
    ),
    label: str | None = typer.Option(None, "--label", "-l", help="Region tag"),
    limit: int | None = typer.Option(None, "--limit", "-n", help="Max records"),
) -> None:
    """List optimization records, most recent first."""
    records = run_with_context(
        lambda ctx: ctx.manager.history(file, label, limit)
    )
    if not records:
        console.print("[dim]No optimization history.[/dim]")
        raise typer.Exit(0)

    table = Table(
        title="Optimization History",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("ID", style="bold")
    table.add_column("Label")
    table.add_column("Status")
    table.add_column("Sessions", justify="right")
    table.add_column("High", justify="right")
    table.add_column("Low", justify="right")
    table.add_column("Created")
    table.add_column("Applied")

    styles = {
        "proposed": "yellow",
        "accepted": "green",
        "rejected": "red",
        "rolled_back": "magenta",
    }
    for r in records:
        style = styles.get(r.status.value, "")
        table.add_row(
            r.id,
            r.label,
            f"[{style}]{r.status.value}[/{style}]" if style else r.status.value,
            str(r.sessions_used),
            f"{r.avg_score_high:.2f}",
            f"{r.avg_score_low:.2f}",
            _ts(r.created_at),
            _ts(r.applied_at),
        )
    console.print(table)


@optimize_app.command("diff")
def optimize_diff(
    record_id: str = typer.Argument(..., help="Optimization id"),
) -> None:
    """Show the stored diff of an optimization."""
    text = run_with_context(lambda ctx: ctx.manager.diff(record_id))
    console.print(Syntax(text, "diff"))
