"""Optimization lifecycle: propose, save, apply, reject, roll back.

A rewrite of an optimize region moves through a closed set of states::

    proposed ──apply──▶ accepted ──rollback──▶ rolled_back
        │
        └──reject──▶ rejected

Proposing only analyzes and drafts; :meth:`OptimizationManager.save` is
the point at which a record becomes durable. Apply and rollback edit the
document, re-locating the region by label each time.
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

from trajmem_core.errors import InsufficientDataError, TargetNotFoundError
from trajmem_core.logging import get_logger
from trajmem_core.types import OptimizationRecord, OptimizationStatus, new_id

from trajmem_optimizer.formatting import build_meta_prompt, generate_diff
from trajmem_optimizer.markers import (
    check_body,
    find_region,
    find_regions,
    replace_region,
)
from trajmem_optimizer.types import Proposal, RegionKind

if TYPE_CHECKING:
    from trajmem_optimizer.analyzer import TrajectoryAnalyzer
    from trajmem_optimizer.store import OptimizationStore
    from trajmem_optimizer.types import Region

logger = get_logger("optimizer.lifecycle")

DEFAULT_HISTORY_LIMIT = 10


class OptimizationManager:
    """Drives optimization records through their lifecycle.

    Usage::

        manager = OptimizationManager(analyzer, optimization_store)
        region = find_region("CLAUDE.md", "research")
        proposal = await manager.propose(region)
        # ... a model rewrites the region using proposal.prompt ...
        record = await manager.save(
            proposal.record.id, region.path, region.label,
            region.content, rewritten,
        )
        await manager.apply(record.id)
    """

    def __init__(
        self,
        analyzer: TrajectoryAnalyzer,
        records: OptimizationStore,
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._analyzer = analyzer
        self._records = records
        self._history_limit = history_limit
        self._lock = asyncio.Lock()
        # Drafts from propose(), so save() can carry their cohort stats
        self._drafts: dict[str, OptimizationRecord] = {}

    async def propose(self, region: Region) -> Proposal:
        """Analyze the region's label and draft a rewrite request.

        Nothing is persisted.

        Raises:
            InsufficientDataError: Too few scored trajectories for the label.
        """
        analysis = await self._analyzer.analyze(region.label, region.min_samples)
        record = OptimizationRecord(
            id=new_id(),
            target_file=region.path,
            label=region.label,
            previous_content=region.content,
            sessions_used=analysis.total_sessions,
            avg_score_high=analysis.avg_score_high,
            avg_score_low=analysis.avg_score_low,
        )
        self._drafts[record.id] = record
        logger.info(
            "Proposed optimization %s for %s [%s] from %d sessions",
            record.id,
            region.path,
            region.label,
            analysis.total_sessions,
        )
        return Proposal(
            region=region,
            analysis=analysis,
            record=record,
            prompt=build_meta_prompt(region, analysis),
        )

    async def propose_all(self, path: Path | str) -> list[Proposal]:
        """Propose for every optimize region in ``path`` that has enough data."""
        proposals: list[Proposal] = []
        for region in find_regions(path):
            if region.kind is not RegionKind.OPTIMIZE:
                continue
            try:
                proposals.append(await self.propose(region))
            except InsufficientDataError as exc:
                logger.warning("Skipping region %r: %s", region.label, exc)
        return proposals

    async def save(
        self,
        record_id: str,
        path: Path | str,
        label: str,
        previous_content: str,
        new_content: str,
        *,
        sessions_used: int | None = None,
        avg_score_high: float | None = None,
        avg_score_low: float | None = None,
    ) -> OptimizationRecord:
        """Persist a proposed rewrite. Returns the stored record.

        Cohort statistics default to those of the matching draft from
        :meth:`propose`, when this process made one.

        Raises:
            MalformedMarkersError: ``new_content`` contains a marker line.
            OptimizationError: A record with ``record_id`` already exists.
        """
        check_body(new_content, str(path))
        draft = self._drafts.pop(record_id, None)
        if draft is not None:
            if sessions_used is None:
                sessions_used = draft.sessions_used
            if avg_score_high is None:
                avg_score_high = draft.avg_score_high
            if avg_score_low is None:
                avg_score_low = draft.avg_score_low
        record = OptimizationRecord(
            id=record_id,
            target_file=str(path),
            label=label,
            previous_content=previous_content,
            new_content=new_content,
            diff=generate_diff(previous_content, new_content),
            status=OptimizationStatus.PROPOSED,
            sessions_used=sessions_used or 0,
            avg_score_high=avg_score_high or 0.0,
            avg_score_low=avg_score_low or 0.0,
        )
        await self._records.create(record)
        logger.info("Saved optimization %s for %s [%s]", record.id, path, label)
        return record

    async def apply(self, record_id: str) -> OptimizationRecord:
        """Write the record's new content into its region.

        Raises:
            RecordNotFoundError: No record has this id.
            NotProposedError: The record is not in ``proposed`` status.
            TargetNotFoundError: The region is gone from the document.
        """
        async with self._lock:
            record = await self._records.get(record_id)
            accepted = record.transition(OptimizationStatus.ACCEPTED)
            self._rewrite(record, record.new_content)
            await self._records.update(accepted)
        logger.info("Applied optimization %s to %s", record_id, record.target_file)
        return accepted

    async def reject(self, record_id: str) -> OptimizationRecord:
        """Mark a proposed record as rejected. The document is not touched.

        Raises:
            RecordNotFoundError: No record has this id.
            NotProposedError: The record is not in ``proposed`` status.
        """
        async with self._lock:
            record = await self._records.get(record_id)
            rejected = record.transition(OptimizationStatus.REJECTED)
            await self._records.update(rejected)
        logger.info("Rejected optimization %s", record_id)
        return rejected

    async def rollback(self, record_id: str) -> OptimizationRecord:
        """Restore the region content that an applied record replaced.

        Raises:
            RecordNotFoundError: No record has this id.
            NotAppliedError: The record is not in ``accepted`` status.
            TargetNotFoundError: The region is gone from the document.
        """
        async with self._lock:
            record = await self._records.get(record_id)
            rolled_back = record.transition(OptimizationStatus.ROLLED_BACK)
            self._rewrite(record, record.previous_content)
            await self._records.update(rolled_back)
        logger.info(
            "Rolled back optimization %s in %s", record_id, record.target_file
        )
        return rolled_back

    async def history(
        self,
        path: Path | str | None = None,
        label: str | None = None,
        limit: int | None = None,
    ) -> list[OptimizationRecord]:
        """Records, most recent first, optionally filtered by file and label."""
        return await self._records.list(
            target_file=None if path is None else str(path),
            label=label,
            limit=self._history_limit if limit is None else limit,
        )

    async def get(self, record_id: str) -> OptimizationRecord:
        return await self._records.get(record_id)

    async def diff(self, record_id: str) -> str:
        return (await self._records.get(record_id)).diff

    def _rewrite(self, record: OptimizationRecord, body: str) -> None:
        path = Path(record.target_file)
        region = find_region(path, record.label, RegionKind.OPTIMIZE)
        if region is None:
            msg = (
                f"optimize region {record.label!r} not found in "
                f"{record.target_file}"
            )
            raise TargetNotFoundError(msg)
        replace_region(region, body)

