"""Persistence for optimization records, strategy usages, and curated examples.

All three stores sit on a :class:`StateStoreAdapter` and keep one JSON
document per key:

- ``trajmem:optimizations:<id>``: one :class:`OptimizationRecord`
- ``trajmem:strategy_usage:<quoted label>:<trajectory_id>``: one
  :class:`StrategyUsage`. The label is percent-encoded so it never
  contains the separator.
- ``trajmem:curated:<label>``: the latest curated example list
"""
from __future__ import annotations

import asyncio
import json
from dataclasses import asdict, replace
from typing import TYPE_CHECKING
from urllib.parse import quote

from trajmem_core.errors import OptimizationError, RecordNotFoundError
from trajmem_core.logging import get_logger
from trajmem_core.types import OptimizationRecord, OptimizationStatus, StrategyUsage

from trajmem_optimizer.types import CuratedExample

if TYPE_CHECKING:
    from collections.abc import Sequence

    from trajmem_runtime.protocols.state_store import StateStoreAdapter

logger = get_logger("optimizer.store")

_OPTIMIZATION_PREFIX = "trajmem:optimizations:"
_USAGE_PREFIX = "trajmem:strategy_usage:"
_CURATED_PREFIX = "trajmem:curated:"



def _usage_prefix(label: str) -> str:
    return f"{_USAGE_PREFIX}{quote(label, safe='')}:"

# ── Optimization Records ───────────────────────────────────────


class OptimizationStore:
    """Stores optimization records and answers history queries.

    Usage::

        records = OptimizationStore(state_store)
        await records.create(record)
        await records.update(record.transition(OptimizationStatus.ACCEPTED))
        recent = await records.list(target_file="CLAUDE.md", limit=5)
    """

    def __init__(self, state_store: StateStoreAdapter) -> None:
        self._state_store = state_store
        self._lock = asyncio.Lock()

    async def create(self, record: OptimizationRecord) -> OptimizationRecord:
        """Persist a new record.

        Raises:
            OptimizationError: A record with this id already exists.
        """
        key = f"{_OPTIMIZATION_PREFIX}{record.id}"
        async with self._lock:
            if await self._state_store.exists(key):
                msg = f"optimization {record.id} already exists"
                raise OptimizationError(msg)
            await self._write(record)
        logger.debug("Created optimization %s for %s", record.id, record.label)
        return record

    async def get(self, record_id: str) -> OptimizationRecord:
        """Load a record by id.

        Raises:
            RecordNotFoundError: No record has this id.
        """
        raw = await self._state_store.get(f"{_OPTIMIZATION_PREFIX}{record_id}")
        if raw is None:
            msg = f"optimization {record_id} not found"
            raise RecordNotFoundError(msg)
        return OptimizationRecord.from_dict(json.loads(raw))

    async def update(self, record: OptimizationRecord) -> OptimizationRecord:
        """Overwrite an existing record.

        The stored record's original content is carried over unchanged.

        Raises:
            RecordNotFoundError: No record has this id.
            OptimizationError: The update alters ``previous_content``.
        """
        async with self._lock:
            current = await self.get(record.id)
            if current.previous_content != record.previous_content:
                msg = f"optimization {record.id}: previous_content is immutable"
                raise OptimizationError(msg)
            await self._write(record)
        return record

    async def list(
        self,
        *,
        target_file: str | None = None,
        label: str | None = None,
        status: OptimizationStatus | None = None,
        limit: int | None = None,
    ) -> list[OptimizationRecord]:
        """Records matching the filters, most recent first."""
        records: list[OptimizationRecord] = []
        async for key in self._state_store.list_keys(_OPTIMIZATION_PREFIX):
            raw = await self._state_store.get(key)
            if raw is None:
                continue
            record = OptimizationRecord.from_dict(json.loads(raw))
            if target_file is not None and record.target_file != target_file:
                continue
            if label is not None and record.label != label:
                continue
            if status is not None and record.status is not status:
                continue
            records.append(record)

        records.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        return records if limit is None else records[:limit]

    async def _write(self, record: OptimizationRecord) -> None:
        await self._state_store.set(
            f"{_OPTIMIZATION_PREFIX}{record.id}",
            json.dumps(record.to_dict()).encode("utf-8"),
        )


# ── Strategy Usage ─────────────────────────────────────────────


class StrategyUsageStore:
    """Records which strategy each trajectory used under a label."""

    def __init__(self, state_store: StateStoreAdapter) -> None:
        self._state_store = state_store
        self._lock = asyncio.Lock()

    async def record(self, usage: StrategyUsage) -> StrategyUsage:
        """Persist a usage, replacing any earlier one for the same pair."""
        key = f"{_usage_prefix(usage.label)}{usage.trajectory_id}"
        await self._state_store.set(key, json.dumps(usage.to_dict()).encode("utf-8"))
        logger.debug(
            "Recorded strategy %r for trajectory %s under %r",
            usage.strategy_name,
            usage.trajectory_id,
            usage.label,
        )
        return usage

    async def list(self, label: str | None = None) -> list[StrategyUsage]:
        """Usages, optionally for one label, in recording order."""
        prefix = _USAGE_PREFIX if label is None else _usage_prefix(label)
        usages = [
            usage
            async for _key, usage in self._iter(prefix)
            if label is None or usage.label == label
        ]
        usages.sort(key=lambda u: u.used_at)
        return usages

    async def update_score(self, trajectory_id: str, score: float) -> int:
        """Set the score of every usage recorded for ``trajectory_id``.

        Returns the number of usages updated.
        """
        updated = 0
        async with self._lock:
            matches = [
                (key, usage)
                async for key, usage in self._iter(_USAGE_PREFIX)
                if usage.trajectory_id == trajectory_id
            ]
            for key, usage in matches:
                scored = replace(usage, score=score)
                await self._state_store.set(
                    key, json.dumps(scored.to_dict()).encode("utf-8")
                )
                updated += 1
        if updated:
            logger.debug(
                "Back-filled score %.2f on %d usages of %s",
                score,
                updated,
                trajectory_id,
            )
        return updated

    async def _iter(self, prefix: str):
        keys = [key async for key in self._state_store.list_keys(prefix)]
        for key in keys:
            raw = await self._state_store.get(key)
            if raw is not None:
                yield key, StrategyUsage.from_dict(json.loads(raw))


# ── Curated Examples ───────────────────────────────────────────


class CuratedExampleStore:
    """Keeps the most recent curated example list per label."""

    def __init__(self, state_store: StateStoreAdapter) -> None:
        self._state_store = state_store

    async def save(self, label: str, examples: Sequence[CuratedExample]) -> None:
        payload = [asdict(example) for example in examples]
        await self._state_store.set(
            f"{_CURATED_PREFIX}{label}", json.dumps(payload).encode("utf-8")
        )

    async def get(self, label: str) -> list[CuratedExample]:
        raw = await self._state_store.get(f"{_CURATED_PREFIX}{label}")
        if raw is None:
            return []
        return [CuratedExample(**item) for item in json.loads(raw)]
