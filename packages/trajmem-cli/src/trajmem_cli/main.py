from __future__ import annotations

import typer

from trajmem_cli.commands.config import config_app
from trajmem_cli.commands.curate import curate_command
from trajmem_cli.commands.optimize import optimize_app
from trajmem_cli.commands.strategies import strategies_app
from trajmem_cli.commands.trajectories import (
    record_command,
    score_command,
    trajectories_app,
)

app = typer.Typer(
    name="trajmem",
    help="Trajmem: optimize agent instructions from scored trajectories",
    no_args_is_help=True,
)

app.add_typer(
    config_app,
    name="config",
    help="View configuration",
)
app.add_typer(
    optimize_app,
    name="optimize",
    help="Propose, apply, and roll back instruction rewrites",
)
app.add_typer(
    strategies_app,
    name="strategies",
    help="Select strategies and track their performance",
)
app.add_typer(
    trajectories_app,
    name="trajectories",
    help="Inspect recorded trajectories",
)

app.command("record")(record_command)
app.command("score")(score_command)
app.command("curate")(curate_command)


@app.command()
def serve() -> None:
    """Serve the MCP tool gateway over stdio."""
    from trajmem_tools.gateway import main as serve_gateway

    serve_gateway()


@app.command()
def version() -> None:
    """Show the Trajmem version."""
    from rich.console import Console
    from trajmem_core import __version__

    Console().print(f"trajmem {__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
