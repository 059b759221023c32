"""MCP tool server for recording and scoring trajectories."""
from __future__ import annotations

import json

from fastmcp import FastMCP
from trajmem_core.errors import InvalidTrajectoryError, TrajmemError
from trajmem_core.types import Trajectory
from trajmem_optimizer.formatting import format_search_results, format_trajectory

from trajmem_tools.context import get_context

trajectories_server = FastMCP("trajmem-trajectories")


@trajectories_server.tool()
async def record_trajectory(trajectory_json: str) -> str:
    """Store a finished trajectory.

    Args:
        trajectory_json: JSON object with ``task``, ``steps`` (each with
            ``action``, ``input_summary``, ``output_summary``), ``labels``
            and optionally ``summary``, ``strategy`` and ``id``.
    """
    try:
        trajectory = Trajectory.from_json(trajectory_json)
    except json.JSONDecodeError as exc:
        return f"Error: invalid trajectory JSON: {exc}"
    except InvalidTrajectoryError as exc:
        return f"Error: {exc}"

    try:
        ctx = await get_context()
        trajectory_id = await ctx.trajectories.save(trajectory)
    except TrajmemError as exc:
        return f"Error: {exc}"
    return f"Recorded trajectory {trajectory_id} ({len(trajectory.steps)} steps)."


@trajectories_server.tool()
async def score(trajectory_id: str, score: float, notes: str = "") -> str:
    """Attach a quality score in [0, 1] to a recorded trajectory.

    Also back-fills the score onto any strategy usage for the trajectory.

    Args:
        trajectory_id: Trajectory to score.
        score: Quality score between 0.0 and 1.0.
        notes: Optional free-text feedback.
    """
    try:
        ctx = await get_context()
        await ctx.trajectories.score(trajectory_id, score, notes)
    except (ValueError, TrajmemError) as exc:
        return f"Error: {exc}"
    return f"Scored trajectory {trajectory_id}: {score:.2f}."


@trajectories_server.tool()
async def show(trajectory_id: str) -> str:
    """Show a recorded trajectory step by step.

    When the trajectory has no summary yet, the output ends with a request
    to write one and store it with ``summarize``.

    Args:
        trajectory_id: Trajectory to show.
    """
    try:
        ctx = await get_context()
        trajectory = await ctx.trajectories.get(trajectory_id)
    except TrajmemError as exc:
        return f"Error: {exc}"
    return format_trajectory(
        trajectory, summarization_request=not trajectory.summary
    )


@trajectories_server.tool()
async def summarize(trajectory_id: str, summary: str) -> str:
    """Store a short summary of the approach a trajectory took.

    Curated examples prefer trajectories that carry a summary.

    Args:
        trajectory_id: Trajectory to summarize.
        summary: Two or three sentences on the task, approach and patterns.
    """
    try:
        ctx = await get_context()
        await ctx.trajectories.summarize(trajectory_id, summary)
    except (ValueError, TrajmemError) as exc:
        return f"Error: {exc}"
    return f"Summary stored for trajectory {trajectory_id}."


@trajectories_server.tool()
async def search(query: str, limit: int = 5, min_score: float | None = None) -> str:
    """Find trajectories whose task, summary or labels mention a keyword.

    Args:
        query: Case-insensitive keyword.
        limit: Maximum number of results, most recent first.
        min_score: Only return trajectories scored at least this high.
    """
    try:
        ctx = await get_context()
        results = await ctx.trajectories.search(query, limit, min_score)
    except (ValueError, TrajmemError) as exc:
        return f"Error: {exc}"
    return format_search_results(query, results)
