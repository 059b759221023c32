"""T0 In-Process Backend: zero dependencies, in-memory only."""
from __future__ import annotations

from trajmem_runtime.backends.memory.state_store import InProcessStateStore

__all__ = [
    "InProcessStateStore",
]
