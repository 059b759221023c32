"""Shared plumbing: build the engine, run one coroutine, render errors."""
from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, TypeVar

import typer
from rich.console import Console
from trajmem_core.config import TrajmemConfig
from trajmem_core.errors import TrajmemError
from trajmem_core.logging import setup_logging
from trajmem_optimizer.context import OptimizerContext

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

console = Console()
err_console = Console(stderr=True)


def load_config() -> TrajmemConfig:
    config = TrajmemConfig.load()
    setup_logging(config.logging.level, json_output=config.logging.json)
    return config


def run_with_context(fn: Callable[[OptimizerContext], Awaitable[T]]) -> T:
    """Run ``fn`` against a freshly built context and close it afterwards.

    A :class:`TrajmemError` is printed and turned into exit code 1.
    """
    config = load_config()

    async def _main() -> T:
        ctx = await OptimizerContext.create(config)
        try:
            return await fn(ctx)
        finally:
            await ctx.close()

    try:
        return asyncio.run(_main())
    except TrajmemError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc
