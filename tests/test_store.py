"""Tests for trajectory, optimization record, and curated example persistence."""
from __future__ import annotations

from dataclasses import replace

import pytest
from trajmem_core.errors import (
    InsufficientDataError,
    InvalidTrajectoryError,
    OptimizationError,
    RecordNotFoundError,
    TargetNotFoundError,
    TrajectoryNotFoundError,
)
from trajmem_core.types import (
    OptimizationRecord,
    OptimizationStatus,
    Outcome,
    StrategyUsage,
    Trajectory,
    TrajectoryStep,
)
from trajmem_optimizer.markers import find_region
from trajmem_optimizer.types import RegionKind


# ── Trajectories ───────────────────────────────────────────────


class TestTrajectoryStore:
    async def test_save_and_get_round_trip(self, context, make_trajectory):
        trajectory = make_trajectory(0.9, notes="great")
        await context.trajectories.save(trajectory)
        assert await context.trajectories.get(trajectory.id) == trajectory

    async def test_get_missing(self, context):
        assert await context.trajectories.load("missing") is None
        with pytest.raises(TrajectoryNotFoundError):
            await context.trajectories.get("missing")

    async def test_list_most_recent_first(self, context):
        first = Trajectory(task="first", started_at=100.0)
        second = Trajectory(task="second", started_at=200.0)
        await context.trajectories.save(second)
        await context.trajectories.save(first)

        listed = await context.trajectories.list()
        assert [t.task for t in listed] == ["second", "first"]
        assert [t.task for t in await context.trajectories.list(limit=1)] == ["second"]

    async def test_list_by_label(self, context, make_trajectory):
        await context.trajectories.save(make_trajectory(label="research"))
        await context.trajectories.save(make_trajectory(label="coding"))
        labelled = await context.trajectories.list_by_label("coding")
        assert [t.labels for t in labelled] == [["coding"]]

    async def test_score_replaces_outcome(self, context, make_trajectory):
        trajectory = make_trajectory()
        await context.trajectories.save(trajectory)
        assert not trajectory.is_scored

        await context.trajectories.score(trajectory.id, 0.4)
        scored = await context.trajectories.score(trajectory.id, 0.8, notes="redo")
        assert scored.score == 0.8
        assert (await context.trajectories.get(trajectory.id)).outcome.notes == "redo"

    @pytest.mark.parametrize("score", [-0.1, 1.01])
    async def test_score_out_of_range(self, context, make_trajectory, score):
        trajectory = make_trajectory()
        await context.trajectories.save(trajectory)
        with pytest.raises(ValueError):
            await context.trajectories.score(trajectory.id, score)

    async def test_score_missing(self, context):
        with pytest.raises(TrajectoryNotFoundError):
            await context.trajectories.score("missing", 0.5)

    async def test_summarize_and_delete(self, context, make_trajectory):
        trajectory = make_trajectory(summary="")
        await context.trajectories.save(trajectory)
        updated = await context.trajectories.summarize(trajectory.id, "Read first")
        assert updated.summary == "Read first"

        assert await context.trajectories.delete(trajectory.id)
        assert not await context.trajectories.delete(trajectory.id)

    def test_json_round_trip_keeps_steps(self):
        trajectory = Trajectory(
            task="t",
            steps=[TrajectoryStep(action="Read", input_summary="a.md")],
            labels=["x"],
            strategy="inbox-first",
        )
        assert Trajectory.from_json(trajectory.to_json()) == trajectory

    @pytest.mark.parametrize("score", [7.5, -1, "high", True])
    def test_outcome_score_validated(self, score):
        with pytest.raises(ValueError):
            Outcome(score=score)
        with pytest.raises(InvalidTrajectoryError):
            Trajectory.from_dict({"task": "t", "outcome": {"score": score}})

    @pytest.mark.parametrize("payload", ["[1, 2]", "3", "null", '{"steps": [1]}'])
    def test_from_json_rejects_non_trajectories(self, payload):
        with pytest.raises(InvalidTrajectoryError):
            Trajectory.from_json(payload)

    async def test_summarize_rejects_blank(self, context, make_trajectory):
        trajectory = make_trajectory()
        await context.trajectories.save(trajectory)
        with pytest.raises(ValueError):
            await context.trajectories.summarize(trajectory.id, "  ")

    async def test_search_fields_case_and_order(self, context):
        older = Trajectory(task="Plan the offsite", started_at=100.0)
        tagged = Trajectory(task="t", labels=["Offsite-Logistics"], started_at=200.0)
        summarized = Trajectory(
            task="t", summary="Booked the OFFSITE venue", started_at=300.0
        )
        unrelated = Trajectory(task="Fix the build", started_at=400.0)
        for trajectory in (older, tagged, summarized, unrelated):
            await context.trajectories.save(trajectory)

        found = await context.trajectories.search("offsite")
        assert [t.id for t in found] == [summarized.id, tagged.id, older.id]
        assert len(await context.trajectories.search("offsite", limit=2)) == 2

    async def test_search_min_score(self, context, make_trajectory):
        for score in (None, 0.3, 0.9):
            await context.trajectories.save(make_trajectory(score))
        found = await context.trajectories.search("research", min_score=0.5)
        assert [t.score for t in found] == [0.9]

    async def test_search_rejects_blank_query(self, context):
        with pytest.raises(ValueError):
            await context.trajectories.search("   ")


# ── Strategy Usages ────────────────────────────────────────────


class TestStrategyUsageStore:
    async def test_labels_with_separator_do_not_collide(self, context):
        await context.usages.record(StrategyUsage("a:b", "alpha", "c"))
        await context.usages.record(StrategyUsage("a", "beta", "b:c"))

        assert [u.strategy_name for u in await context.usages.list("a:b")] == [
            "alpha"
        ]
        assert [u.strategy_name for u in await context.usages.list("a")] == ["beta"]
        assert len(await context.usages.list()) == 2


# ── Optimization Records ───────────────────────────────────────


def _record(record_id: str = "r1", **overrides) -> OptimizationRecord:
    fields = {
        "id": record_id,
        "target_file": "CLAUDE.md",
        "label": "research",
        "previous_content": "old\n",
        "new_content": "new\n",
    }
    fields.update(overrides)
    return OptimizationRecord(**fields)


class TestOptimizationStore:
    async def test_create_and_get(self, context):
        record = await context.records.create(_record())
        assert await context.records.get("r1") == record

    async def test_create_duplicate(self, context):
        await context.records.create(_record())
        with pytest.raises(OptimizationError):
            await context.records.create(_record())

    async def test_get_missing(self, context):
        with pytest.raises(RecordNotFoundError):
            await context.records.get("missing")

    async def test_update_keeps_previous_content(self, context):
        record = await context.records.create(_record())
        accepted = record.transition(OptimizationStatus.ACCEPTED)
        await context.records.update(accepted)
        assert (await context.records.get("r1")).status is OptimizationStatus.ACCEPTED

        with pytest.raises(OptimizationError):
            await context.records.update(replace(accepted, previous_content="x"))
        with pytest.raises(RecordNotFoundError):
            await context.records.update(_record("r2"))

    async def test_list_filters(self, context):
        await context.records.create(_record("r1", created_at=1.0))
        await context.records.create(
            _record("r2", created_at=2.0, label="coding")
        )
        await context.records.create(
            _record("r3", created_at=3.0, target_file="AGENTS.md")
        )

        assert [r.id for r in await context.records.list()] == ["r3", "r2", "r1"]
        assert [
            r.id for r in await context.records.list(target_file="CLAUDE.md")
        ] == ["r2", "r1"]
        assert [r.id for r in await context.records.list(label="coding")] == ["r2"]
        assert [
            r.id
            for r in await context.records.list(status=OptimizationStatus.PROPOSED)
        ] == ["r3", "r2", "r1"]
        assert [r.id for r in await context.records.list(limit=2)] == ["r3", "r2"]

    def test_transition_stamps_timestamps(self):
        accepted = _record().transition(OptimizationStatus.ACCEPTED, at=10.0)
        assert accepted.applied_at == 10.0
        rolled_back = accepted.transition(OptimizationStatus.ROLLED_BACK, at=20.0)
        assert rolled_back.rolled_back_at == 20.0
        assert rolled_back.applied_at == 10.0


# ── Curated Examples ───────────────────────────────────────────


class TestCuration:
    async def test_curate_persists_selection(self, seeded_context):
        result = await seeded_context.curator.curate("research", max_examples=2)
        positives = [e for e in result.examples if not e.negative]
        negatives = [e for e in result.examples if e.negative]
        assert [e.score for e in positives] == [0.95, 0.85]
        assert [e.score for e in negatives] == [0.30]
        assert await seeded_context.examples.get("research") == result.examples
        assert await seeded_context.examples.get("other") == []

    async def test_curate_insufficient_data(self, context):
        with pytest.raises(InsufficientDataError):
            await context.curator.curate("research")

    async def test_curate_region_uses_marker_parameters(
        self, seeded_context, instructions_doc
    ):
        result = await seeded_context.curator.curate_region(
            instructions_doc, "research"
        )
        assert len(result.examples) == 2
        assert not any(e.negative for e in result.examples)

        region = find_region(instructions_doc, "research", RegionKind.EXAMPLES)
        assert region.content == result.content
        assert "### Example 2" in region.content
        # The optimize region is untouched
        assert find_region(instructions_doc, "research").content == (
            "1. Read sources first.\n2. Cite everything.\n"
        )

    async def test_apply_without_region(self, seeded_context, instructions_doc):
        with pytest.raises(TargetNotFoundError):
            await seeded_context.curator.apply(instructions_doc, "briefing", "x\n")
