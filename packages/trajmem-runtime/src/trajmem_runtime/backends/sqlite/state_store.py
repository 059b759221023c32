from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

_CREATE_STATE = """
CREATE TABLE IF NOT EXISTS state (
    key TEXT PRIMARY KEY,
    value BLOB NOT NULL,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);
"""


async def _connect(db_path: str) -> aiosqlite.Connection:
    """Open a WAL-mode SQLite connection, creating the directory if needed."""
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(str(path))
    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA busy_timeout=5000")
    await conn.execute("PRAGMA synchronous=NORMAL")
    return conn


class SQLiteStateStore:
    """T1 state store: a SQLite key/value table that survives restarts.

    Keys are listed in insertion order (``rowid``), which the domain
    stores rely on for ordered-by-creation listing.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn
        self._write_lock = asyncio.Lock()

    @classmethod
    async def create(cls, db_path: str) -> SQLiteStateStore:
        conn = await _connect(db_path)
        await conn.executescript(_CREATE_STATE)
        await conn.commit()
        return cls(conn)

    async def close(self) -> None:
        await self._conn.close()

    async def get(self, key: str) -> bytes | None:
        async with self._conn.execute(
            "SELECT value FROM state WHERE key = ?", (key,)
        ) as cursor:
            row = await cursor.fetchone()
            return row[0] if row else None

    async def set(self, key: str, value: bytes) -> None:
        now = time.time()
        async with self._write_lock:
            await self._conn.execute(
                """INSERT INTO state (key, value, created_at, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value,
                       updated_at = excluded.updated_at""",
                (key, value, now, now),
            )
            await self._conn.commit()

    async def delete(self, key: str) -> None:
        async with self._write_lock:
            await self._conn.execute("DELETE FROM state WHERE key = ?", (key,))
            await self._conn.commit()

    async def exists(self, key: str) -> bool:
        async with self._conn.execute(
            "SELECT 1 FROM state WHERE key = ?", (key,)
        ) as cursor:
            return (await cursor.fetchone()) is not None

    async def list_keys(self, prefix: str) -> AsyncIterator[str]:
        # Escape LIKE wildcards in the prefix so that
        # characters like % and _ are matched literally.
        escaped = (
            prefix
            .replace("\\", "\\\\")
            .replace("%", "\\%")
            .replace("_", "\\_")
        )
        async with self._conn.execute(
            "SELECT key FROM state"
            " WHERE key LIKE ? ESCAPE '\\'"
            " ORDER BY rowid",
            (escaped + "%",),
        ) as cursor:
            rows = await cursor.fetchall()
        for row in rows:
            yield row[0]
