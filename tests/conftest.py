from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio
from trajmem_core.types import Outcome, Trajectory, TrajectoryStep

INSTRUCTIONS_DOC = """\
# Agent Instructions

Intro text.

<!-- trajectory-optimize:start tag="research" min_sessions=5 -->
1. Read sources first.
2. Cite everything.
<!-- trajectory-optimize:end -->

<!-- trajectory-examples:start tag="research" max=2 include_negative=false -->
<!-- trajectory-examples:end -->

<!-- trajectory-strategies:briefing -->
strategies:
  - name: inbox-first
    description: Triage mail first
    approach_prompt: Read all unread threads.
  - name: calendar-first
<!-- /trajectory-strategies:briefing -->

Footer.
"""

# Scores spanning all three cohorts: 3 high, 2 medium, 2 low
COHORT_SCORES = [0.95, 0.85, 0.80, 0.65, 0.55, 0.40, 0.30]


# ── State Stores ───────────────────────────────────────────────


@pytest_asyncio.fixture
async def memory_state_store():
    from trajmem_runtime.backends.memory import InProcessStateStore
    return InProcessStateStore()


@pytest_asyncio.fixture
async def sqlite_state_store(tmp_path):
    from trajmem_runtime.backends.sqlite import SQLiteStateStore
    store = await SQLiteStateStore.create(str(tmp_path / "test.db"))
    yield store
    await store.close()


@pytest.fixture(params=["memory", "sqlite"])
def state_store(request):
    backends = {
        "memory": "memory_state_store",
        "sqlite": "sqlite_state_store",
    }
    return request.getfixturevalue(backends[request.param])


@pytest_asyncio.fixture
async def context(state_store):
    from trajmem_optimizer.context import OptimizerContext
    return OptimizerContext.from_state_store(state_store)


# ── Documents ──────────────────────────────────────────────────


@pytest.fixture
def instructions_doc(tmp_path) -> Path:
    path = tmp_path / "CLAUDE.md"
    path.write_text(INSTRUCTIONS_DOC, encoding="utf-8")
    return path


# ── Trajectories ───────────────────────────────────────────────


def thorough_steps() -> list[TrajectoryStep]:
    """Research first, write, re-read the draft, then revise it."""
    return [
        TrajectoryStep(action="Read", input_summary="docs/brief.md"),
        TrajectoryStep(action="Grep", input_summary="pattern in src/"),
        TrajectoryStep(action="Read", input_summary="notes/sources.md"),
        TrajectoryStep(action="Write", input_summary="out/report.md"),
        TrajectoryStep(action="Read", input_summary="out/report.md"),
        TrajectoryStep(action="Edit", input_summary="out/report.md"),
    ]


def rushed_steps() -> list[TrajectoryStep]:
    return [TrajectoryStep(action="Write", input_summary="out/report.md")]


@pytest.fixture
def make_trajectory():
    """Factory for trajectories; high scores get thorough steps by default."""

    def _make(
        score: float | None = None,
        *,
        label: str = "research",
        task: str = "Research the topic",
        summary: str = "Read sources, drafted, revised",
        steps: list[TrajectoryStep] | None = None,
        notes: str = "",
    ) -> Trajectory:
        if steps is None:
            steps = thorough_steps() if (score or 0.0) >= 0.75 else rushed_steps()
        return Trajectory(
            task=task,
            steps=steps,
            labels=[label],
            outcome=None if score is None else Outcome(score=score, notes=notes),
            summary=summary,
        )

    return _make


@pytest_asyncio.fixture
async def seeded_context(context, make_trajectory):
    """Context holding one scored trajectory per COHORT_SCORES entry."""
    tasks = [
        "Research quantum computing market",
        "Summarize weekly engineering meeting",
        "Review authentication pull request",
        "Compare cloud storage pricing",
        "Draft onboarding checklist",
        "Outline conference talk",
        "Collect competitor feature list",
    ]
    for score, task in zip(COHORT_SCORES, tasks):
        await context.trajectories.save(make_trajectory(score, task=task))
    return context
