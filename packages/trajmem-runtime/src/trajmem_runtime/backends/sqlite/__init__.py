"""T1 SQLite Backend: single-file persistence via aiosqlite."""
from __future__ import annotations

from trajmem_runtime.backends.sqlite.state_store import SQLiteStateStore

__all__ = [
    "SQLiteStateStore",
]
