"""MCP tool server for the region rewrite lifecycle and example curation."""
from __future__ import annotations

from pathlib import Path

from fastmcp import FastMCP
from trajmem_core.errors import TrajmemError
from trajmem_optimizer.formatting import (
    format_analysis,
    format_history,
    format_record,
)
from trajmem_optimizer.markers import find_region
from trajmem_optimizer.types import RegionKind

from trajmem_tools.context import get_context

optimizer_server = FastMCP("trajmem-optimizer")


async def _target(path: str) -> Path:
    if path:
        return Path(path)
    ctx = await get_context()
    return Path(ctx.config.optimizer.target_file)


@optimizer_server.tool()
async def propose(path: str = "", label: str = "") -> str:
    """Analyze scored trajectories and draft rewrite prompts for optimize regions.

    With a label, proposes for that region only; otherwise for every
    optimize region in the file that has enough scored trajectories.
    Nothing is saved: produce the rewrite from the returned prompt, then
    call ``save`` with the returned id.

    Args:
        path: Instruction document (defaults to the configured target file).
        label: Optional region tag to restrict the proposal to.
    """
    try:
        ctx = await get_context()
        target = await _target(path)
        if label:
            region = find_region(target, label, RegionKind.OPTIMIZE)
            if region is None:
                return f"No optimize region tagged '{label}' in {target}."
            proposals = [await ctx.manager.propose(region)]
        else:
            proposals = await ctx.manager.propose_all(target)
    except TrajmemError as exc:
        return f"Error: {exc}"

    if not proposals:
        return f"No optimize regions in {target} have enough scored trajectories."

    sections: list[str] = []
    for proposal in proposals:
        sections.append(
            "\n".join([
                f"# Proposal {proposal.record.id} [{proposal.region.label}]",
                "",
                format_analysis(proposal.analysis),
                proposal.prompt,
                "---",
                f"Save with: save(id=\"{proposal.record.id}\", "
                f"path=\"{proposal.region.path}\", "
                f"label=\"{proposal.region.label}\", ...)",
            ])
        )
    return "\n\n".join(sections)


@optimizer_server.tool()
async def save(
    id: str,
    path: str,
    label: str,
    previous_content: str,
    new_content: str,
) -> str:
    """Persist a rewritten region as a proposed optimization.

    Args:
        id: The proposal id returned by ``propose``.
        path: Instruction document containing the region.
        label: Region tag.
        previous_content: The region body being replaced.
        new_content: The rewritten region body.
    """
    try:
        ctx = await get_context()
        record = await ctx.manager.save(
            id, path, label, previous_content, new_content
        )
    except TrajmemError as exc:
        return f"Error: {exc}"
    return f"Saved optimization {record.id}.\n\n```diff\n{record.diff}```"


@optimizer_server.tool()
async def apply(id: str) -> str:
    """Write a proposed optimization into its document region.

    Args:
        id: Optimization record id.
    """
    try:
        ctx = await get_context()
        record = await ctx.manager.apply(id)
    except TrajmemError as exc:
        return f"Error: {exc}"
    return f"Applied optimization {record.id} to {record.target_file}."


@optimizer_server.tool()
async def reject(id: str) -> str:
    """Reject a proposed optimization without touching the document.

    Args:
        id: Optimization record id.
    """
    try:
        ctx = await get_context()
        record = await ctx.manager.reject(id)
    except TrajmemError as exc:
        return f"Error: {exc}"
    return f"Rejected optimization {record.id}."


@optimizer_server.tool()
async def rollback(id: str) -> str:
    """Restore the region content an applied optimization replaced.

    Args:
        id: Optimization record id.
    """
    try:
        ctx = await get_context()
        record = await ctx.manager.rollback(id)
    except TrajmemError as exc:
        return f"Error: {exc}"
    return f"Rolled back optimization {record.id} in {record.target_file}."


@optimizer_server.tool()
async def history(path: str = "", label: str = "", limit: int = 10) -> str:
    """List optimization records, most recent first.

    Args:
        path: Optional document filter.
        label: Optional region tag filter.
        limit: Maximum number of records.
    """
    try:
        ctx = await get_context()
        records = await ctx.manager.history(path or None, label or None, limit)
    except TrajmemError as exc:
        return f"Error: {exc}"
    return format_history(records)


@optimizer_server.tool()
async def diff(id: str) -> str:
    """Show an optimization record and its stored diff.

    Args:
        id: Optimization record id.
    """
    try:
        ctx = await get_context()
        record = await ctx.manager.get(id)
    except TrajmemError as exc:
        return f"Error: {exc}"
    return f"{format_record(record)}\n\n```diff\n{record.diff}```"


@optimizer_server.tool()
async def curate(
    label: str, max: int = 3, include_negative: bool = True
) -> str:
    """Select diverse high-scoring (and one low-scoring) example trajectories.

    Returns the rendered examples; pass them to ``curate_apply`` to
    write them into an examples region.

    Args:
        label: Task label to curate for.
        max: Maximum number of positive examples.
        include_negative: Whether to add one low-scoring example.
    """
    try:
        ctx = await get_context()
        result = await ctx.curator.curate(
            label, max, include_negative=include_negative
        )
    except TrajmemError as exc:
        return f"Error: {exc}"
    if not result.examples:
        return f"No examples available for '{label}'."
    return result.content


@optimizer_server.tool()
async def curate_apply(path: str, label: str, content: str) -> str:
    """Write curated example content into an examples region.

    Args:
        path: Instruction document containing the region.
        label: Examples region tag.
        content: Markdown body to write.
    """
    try:
        ctx = await get_context()
        await ctx.curator.apply(Path(path), label, content)
    except TrajmemError as exc:
        return f"Error: {exc}"
    return f"Updated examples region '{label}' in {path}."
