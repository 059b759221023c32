from __future__ import annotations

from pathlib import Path

import typer
from rich.syntax import Syntax
from rich.table import Table

from trajmem_cli.commands._runner import console

config_app = typer.Typer(
    name="config",
    help="View Trajmem configuration",
    invoke_without_command=True,
)


@config_app.callback(invoke_without_command=True)
def config_command(
    ctx: typer.Context,
    raw: bool = typer.Option(
        False, "--raw", help="Print the config files instead of merged values"
    ),
) -> None:
    """View merged configuration."""
    if ctx.invoked_subcommand is not None:
        return

    from trajmem_core.config import TrajmemConfig

    if raw:
        _print_files()
        return

    config = TrajmemConfig.load()
    table = Table(title="Trajmem Configuration", header_style="bold cyan")
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key, value in [
        ("backend.tier", config.backend.tier),
        ("backend.sqlite_path", config.backend.sqlite_path),
        ("optimizer.target_file", config.optimizer.target_file),
        ("optimizer.history_limit", config.optimizer.history_limit),
        ("optimizer.curate_min_samples", config.optimizer.curate_min_samples),
        ("logging.level", config.logging.level),
        ("logging.json", config.logging.json),
    ]:
        table.add_row(key, str(value))
    console.print(table)


def _print_files() -> None:
    global_path = Path.home() / ".trajmem" / "config.toml"
    project_path = Path.cwd() / ".trajmem" / "config.toml"
    if not project_path.exists():
        project_path = Path.cwd() / "trajmem.toml"

    found = False
    for title, path in (("Global", global_path), ("Project", project_path)):
        if not path.exists():
            continue
        found = True
        console.print(f"[bold]{title}[/bold] ({path}):")
        console.print(Syntax(path.read_text(), "toml", theme="monokai"))
        console.print()

    if not found:
        console.print("[yellow]No config files found; using defaults.[/yellow]")
