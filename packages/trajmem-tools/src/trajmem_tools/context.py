"""Process-wide engine context shared by the MCP tool servers."""
from __future__ import annotations

from trajmem_optimizer.context import OptimizerContext

_context: OptimizerContext | None = None


async def get_context() -> OptimizerContext:
    """Return the shared context, building it from config on first use."""
    global _context
    if _context is None:
        _context = await OptimizerContext.create()
    return _context


def set_context(context: OptimizerContext | None) -> None:
    """Install a prebuilt context (or clear it so the next call rebuilds)."""
    global _context
    _context = context
