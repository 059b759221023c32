"""Trajectory persistence: recording, scoring, and label queries.

Trajectories are stored as JSON under ``trajmem:trajectories:<id>`` in a
:class:`StateStoreAdapter`. Ids are creation-ordered, so listing by key
order yields recording order.
"""
from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import TYPE_CHECKING

from trajmem_core.errors import TrajectoryNotFoundError
from trajmem_core.logging import get_logger
from trajmem_core.types import Outcome, Trajectory

if TYPE_CHECKING:
    from trajmem_runtime.protocols.state_store import StateStoreAdapter

    from trajmem_optimizer.store import StrategyUsageStore

logger = get_logger("optimizer.trajectories")

_TRAJECTORY_PREFIX = "trajmem:trajectories:"
DEFAULT_SEARCH_LIMIT = 5


class TrajectoryStore:
    """Persists trajectories via StateStoreAdapter.

    Usage::

        store = TrajectoryStore(state_store)
        trajectory = Trajectory(task="Summarize inbox", labels=["triage"])
        await store.save(trajectory)

        # Later: attach a score
        await store.score(trajectory.id, 0.9, notes="Caught every thread")
        scored = await store.list_by_label("triage")

    When a :class:`StrategyUsageStore` is given, scoring a trajectory also
    fills in the score of any strategy usage recorded for it.
    """

    def __init__(
        self,
        state_store: StateStoreAdapter,
        usages: StrategyUsageStore | None = None,
    ) -> None:
        self._state_store = state_store
        self._usages = usages
        self._lock = asyncio.Lock()

    async def save(self, trajectory: Trajectory) -> str:
        """Persist a trajectory. Returns its id."""
        key = f"{_TRAJECTORY_PREFIX}{trajectory.id}"
        await self._state_store.set(key, trajectory.to_json().encode("utf-8"))
        logger.debug(
            "Saved trajectory %s (%d steps, labels=%s)",
            trajectory.id,
            len(trajectory.steps),
            trajectory.labels,
        )
        return trajectory.id

    async def load(self, trajectory_id: str) -> Trajectory | None:
        """Load a trajectory by id. Returns None if not found."""
        raw = await self._state_store.get(f"{_TRAJECTORY_PREFIX}{trajectory_id}")
        if raw is None:
            return None
        return Trajectory.from_json(raw)

    async def get(self, trajectory_id: str) -> Trajectory:
        """Load a trajectory by id.

        Raises:
            TrajectoryNotFoundError: No trajectory has this id.
        """
        trajectory = await self.load(trajectory_id)
        if trajectory is None:
            msg = f"trajectory {trajectory_id} not found"
            raise TrajectoryNotFoundError(msg)
        return trajectory

    async def list(self, limit: int | None = None) -> list[Trajectory]:
        """All trajectories, most recent first."""
        trajectories = await self._load_all()
        trajectories.reverse()
        return trajectories if limit is None else trajectories[:limit]

    async def list_by_label(self, label: str) -> list[Trajectory]:
        """Every trajectory carrying ``label``, in recording order."""
        return [t for t in await self._load_all() if label in t.labels]

    async def score(
        self, trajectory_id: str, score: float, notes: str = ""
    ) -> Trajectory:
        """Attach an outcome to a trajectory, replacing any earlier one.

        Raises:
            ValueError: ``score`` is outside ``[0, 1]``.
            TrajectoryNotFoundError: No trajectory has this id.
        """
        if not 0.0 <= score <= 1.0:
            msg = f"score must be within [0, 1], got {score}"
            raise ValueError(msg)

        async with self._lock:
            trajectory = await self.get(trajectory_id)
            scored = replace(trajectory, outcome=Outcome(score=score, notes=notes))
            await self.save(scored)

        if self._usages is not None:
            await self._usages.update_score(trajectory_id, score)
        logger.info("Scored trajectory %s: %.2f", trajectory_id, score)
        return scored

    async def summarize(self, trajectory_id: str, summary: str) -> Trajectory:
        """Set the free-text summary of a trajectory's approach.

        Raises:
            ValueError: ``summary`` is blank.
            TrajectoryNotFoundError: No trajectory has this id.
        """
        if not summary.strip():
            msg = "summary must not be empty"
            raise ValueError(msg)
        async with self._lock:
            trajectory = replace(await self.get(trajectory_id), summary=summary)
            await self.save(trajectory)
        logger.info("Summarized trajectory %s", trajectory_id)
        return trajectory

    async def search(
        self,
        query: str,
        limit: int = DEFAULT_SEARCH_LIMIT,
        min_score: float | None = None,
    ) -> list[Trajectory]:
        """Trajectories whose task, summary or a label contains ``query``.

        Matching is case-insensitive. Results are most recent first; with
        ``min_score`` only trajectories scored at least that high match.

        Raises:
            ValueError: ``query`` is blank.
        """
        needle = query.strip().lower()
        if not needle:
            msg = "search query must not be empty"
            raise ValueError(msg)

        matches: list[Trajectory] = []
        for trajectory in await self.list():
            if min_score is not None and (
                trajectory.score is None or trajectory.score < min_score
            ):
                continue
            fields = [trajectory.task, trajectory.summary, *trajectory.labels]
            if any(needle in field.lower() for field in fields):
                matches.append(trajectory)
        return matches[: max(limit, 0)]

    async def delete(self, trajectory_id: str) -> bool:
        """Delete a trajectory by id. Returns True if it existed."""
        key = f"{_TRAJECTORY_PREFIX}{trajectory_id}"
        exists = await self._state_store.exists(key)
        if exists:
            await self._state_store.delete(key)
        return exists

    async def _load_all(self) -> list[Trajectory]:
        trajectories: list[Trajectory] = []
        async for key in self._state_store.list_keys(_TRAJECTORY_PREFIX):
            raw = await self._state_store.get(key)
            if raw is not None:
                trajectories.append(Trajectory.from_json(raw))
        trajectories.sort(key=lambda t: (t.started_at, t.id))
        return trajectories
