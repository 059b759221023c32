"""MCP tool server for strategy selection and usage tracking."""
from __future__ import annotations

from pathlib import Path

from fastmcp import FastMCP
from trajmem_core.errors import TrajmemError
from trajmem_optimizer.formatting import format_selection, format_strategy_report
from trajmem_optimizer.strategies import load_strategies
from trajmem_optimizer.types import SelectionMode

from trajmem_tools.context import get_context

strategies_server = FastMCP("trajmem-strategies")


async def _declared(path: str, label: str):
    ctx = await get_context()
    target = Path(path) if path else Path(ctx.config.optimizer.target_file)
    return ctx, load_strategies(target, label)


@strategies_server.tool()
async def list_strategies(label: str, path: str = "") -> str:
    """List the strategies declared for a label with their usage statistics.

    Args:
        label: Strategies region tag.
        path: Instruction document (defaults to the configured target file).
    """
    try:
        ctx, strategies = await _declared(path, label)
        report = await ctx.selector.analyze(label, strategies)
    except TrajmemError as exc:
        return f"Error: {exc}"
    if not report.strategies:
        return f"No strategies declared for '{label}'."
    return format_strategy_report(report)


@strategies_server.tool()
async def select_strategy(
    label: str,
    mode: str = "recommend",
    strategy_name: str = "",
    path: str = "",
) -> str:
    """Choose a strategy for the next task under a label.

    Args:
        label: Strategies region tag.
        mode: One of ``explicit``, ``recommend``, ``rotate``.
        strategy_name: Required for ``explicit`` mode.
        path: Instruction document (defaults to the configured target file).
    """
    try:
        selection_mode = SelectionMode(mode)
    except ValueError:
        valid = ", ".join(m.value for m in SelectionMode)
        return f"Error: unknown mode '{mode}' (expected one of: {valid})"

    try:
        ctx, strategies = await _declared(path, label)
        selection = await ctx.selector.select(
            label, strategies, selection_mode, strategy_name or None
        )
    except TrajmemError as exc:
        return f"Error: {exc}"
    return format_selection(selection)


@strategies_server.tool()
async def record_strategy_usage(
    label: str, strategy_name: str, trajectory_id: str
) -> str:
    """Link a trajectory to the strategy it followed.

    Args:
        label: Strategies region tag.
        strategy_name: The strategy used.
        trajectory_id: The trajectory that used it.
    """
    try:
        ctx = await get_context()
        await ctx.selector.record_usage(label, strategy_name, trajectory_id)
    except TrajmemError as exc:
        return f"Error: {exc}"
    return (
        f"Recorded strategy '{strategy_name}' for trajectory "
        f"{trajectory_id} under '{label}'."
    )


@strategies_server.tool()
async def analyze_strategies(label: str) -> str:
    """Report per-strategy usage counts and mean scores for a label.

    Args:
        label: Strategies region tag.
    """
    try:
        ctx = await get_context()
        report = await ctx.selector.analyze(label)
    except TrajmemError as exc:
        return f"Error: {exc}"
    if not report.strategies:
        return f"No strategy usage recorded for '{label}'."
    return format_strategy_report(report)
