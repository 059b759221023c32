"""Behavioral heuristics mined from trajectory cohorts.

Each heuristic is a named pure function registered in one of two
registries:

- pattern heuristics take one cohort (the high scorers) and return a
  :class:`Finding` when the behavior is common enough to recommend;
- anti-pattern heuristics take the low and high cohorts and return a
  :class:`Finding` only when the low cohort is worse by a fixed margin.

Every heuristic decides independently; registration order is the order
statements appear in an analysis.
"""
from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from trajmem_optimizer.types import Finding

if TYPE_CHECKING:
    from trajmem_core.types import Trajectory

Cohort = Sequence["Trajectory"]
PatternFn = Callable[[Cohort], Finding | None]
AntiPatternFn = Callable[[Cohort, Cohort], Finding | None]

PATTERNS: dict[str, PatternFn] = {}
ANTI_PATTERNS: dict[str, AntiPatternFn] = {}

# Emission thresholds over the high cohort
RESEARCH_MIN_RATIO = 0.6
RESEARCH_MIN_READS = 2.0
REVISION_MIN_RATIO = 0.5
DIVERSITY_MIN_DISTINCT = 3.0
THOROUGHNESS_MIN_STEPS = 5.0
SELF_REVIEW_MIN_RATIO = 0.3
CHECKPOINT_MIN_RATIO = 0.4

# Margins by which the low cohort must trail the high cohort
RESEARCH_READS_MARGIN = 1.0
REVISION_RATIO_MARGIN = 0.2
DIVERSITY_MARGIN = 1.0
THOROUGHNESS_FRACTION = 0.5

_READ_ACTIONS = frozenset({"read", "grep", "glob"})
_READ_FRAGMENTS = ("search", "fetch")
_WRITE_ACTIONS = frozenset({"write", "edit", "notebookedit"})
_WRITE_FRAGMENTS = ("create", "update")


def pattern(name: str) -> Callable[[PatternFn], PatternFn]:
    """Register a pattern heuristic under ``name``."""

    def decorator(fn: PatternFn) -> PatternFn:
        PATTERNS[name] = fn
        return fn

    return decorator


def anti_pattern(name: str) -> Callable[[AntiPatternFn], AntiPatternFn]:
    """Register an anti-pattern heuristic under ``name``."""

    def decorator(fn: AntiPatternFn) -> AntiPatternFn:
        ANTI_PATTERNS[name] = fn
        return fn

    return decorator


def extract_patterns(high: Cohort) -> list[Finding]:
    """Run every pattern heuristic over the high cohort."""
    if not high:
        return []
    return [
        finding
        for fn in PATTERNS.values()
        if (finding := fn(high)) is not None
    ]


def extract_anti_patterns(low: Cohort, high: Cohort) -> list[Finding]:
    """Run every anti-pattern heuristic, comparing low against high."""
    if not low:
        return []
    return [
        finding
        for fn in ANTI_PATTERNS.values()
        if (finding := fn(low, high)) is not None
    ]


# ── Action Classification ──────────────────────────────────────


def is_read_action(action: str) -> bool:
    name = action.lower()
    return name in _READ_ACTIONS or any(f in name for f in _READ_FRAGMENTS)


def is_write_action(action: str) -> bool:
    name = action.lower()
    return name in _WRITE_ACTIONS or any(f in name for f in _WRITE_FRAGMENTS)


def step_target(input_summary: str) -> str:
    """Best-effort target of a step: the first path-looking token."""
    for word in input_summary.split():
        if "/" in word or "." in word:
            return word.strip("\"'`")
    return input_summary


# ── Measures ───────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ResearchStats:
    ratio: float  # fraction with reads before the first write
    avg_reads: float  # mean reads before first write, among those


def research_stats(cohort: Cohort) -> ResearchStats:
    if not cohort:
        return ResearchStats(0.0, 0.0)
    with_reads = 0
    total_reads = 0
    for trajectory in cohort:
        reads = 0
        for step in trajectory.steps:
            if is_write_action(step.action):
                break
            if is_read_action(step.action):
                reads += 1
        if reads:
            with_reads += 1
            total_reads += reads
    return ResearchStats(
        ratio=with_reads / len(cohort),
        avg_reads=total_reads / with_reads if with_reads else 0.0,
    )


def revision_ratio(cohort: Cohort) -> float:
    """Fraction of trajectories that write the same target more than once."""
    if not cohort:
        return 0.0
    revised = 0
    for trajectory in cohort:
        writes = Counter(
            step_target(step.input_summary)
            for step in trajectory.steps
            if is_write_action(step.action)
        )
        if any(count > 1 for count in writes.values()):
            revised += 1
    return revised / len(cohort)


def mean_distinct_actions(cohort: Cohort) -> float:
    if not cohort:
        return 0.0
    return sum(
        len({step.action for step in t.steps}) for t in cohort
    ) / len(cohort)


def mean_step_count(cohort: Cohort) -> float:
    if not cohort:
        return 0.0
    return sum(len(t.steps) for t in cohort) / len(cohort)


def self_review_ratio(cohort: Cohort) -> float:
    """Fraction of trajectories that read back a target they wrote."""
    if not cohort:
        return 0.0
    reviewed = 0
    for trajectory in cohort:
        written: set[str] = set()
        for step in trajectory.steps:
            target = step_target(step.input_summary)
            if is_write_action(step.action):
                written.add(target)
            elif is_read_action(step.action) and target in written:
                reviewed += 1
                break
    return reviewed / len(cohort)


def checkpoint_ratio(cohort: Cohort) -> float:
    """Fraction of trajectories whose writes have other actions between them."""
    if not cohort:
        return 0.0
    interleaved = 0
    for trajectory in cohort:
        write_indices = [
            i for i, step in enumerate(trajectory.steps)
            if is_write_action(step.action)
        ]
        if any(b - a > 1 for a, b in zip(write_indices, write_indices[1:])):
            interleaved += 1
    return interleaved / len(cohort)


# ── Pattern Heuristics ─────────────────────────────────────────


@pattern("research-before-acting")
def research_pattern(high: Cohort) -> Finding | None:
    stats = research_stats(high)
    if stats.ratio > RESEARCH_MIN_RATIO and stats.avg_reads >= RESEARCH_MIN_READS:
        return Finding(
            heuristic="research-before-acting",
            statement=(
                f"Read source material before writing ({stats.ratio:.0%} of "
                f"sessions read {stats.avg_reads:.1f}+ sources first)"
            ),
            statistic=stats.ratio,
        )
    return None


@pattern("revision")
def revision_pattern(high: Cohort) -> Finding | None:
    ratio = revision_ratio(high)
    if ratio > REVISION_MIN_RATIO:
        return Finding(
            heuristic="revision",
            statement=(
                f"Revise and iterate on output ({ratio:.0%} of sessions "
                f"made revisions)"
            ),
            statistic=ratio,
        )
    return None


@pattern("tool-diversity")
def diversity_pattern(high: Cohort) -> Finding | None:
    distinct = mean_distinct_actions(high)
    if distinct >= DIVERSITY_MIN_DISTINCT:
        return Finding(
            heuristic="tool-diversity",
            statement=(
                f"Use a diverse tool set (average {distinct:.1f} distinct "
                f"tools used)"
            ),
            statistic=distinct,
        )
    return None


@pattern("thoroughness")
def thoroughness_pattern(high: Cohort) -> Finding | None:
    steps = mean_step_count(high)
    if steps >= THOROUGHNESS_MIN_STEPS:
        return Finding(
            heuristic="thoroughness",
            statement=(
                f"Invest in thoroughness with multiple steps (average "
                f"{steps:.0f} steps)"
            ),
            statistic=steps,
        )
    return None


@pattern("self-review")
def self_review_pattern(high: Cohort) -> Finding | None:
    ratio = self_review_ratio(high)
    if ratio > SELF_REVIEW_MIN_RATIO:
        return Finding(
            heuristic="self-review",
            statement=f"Re-read output for self-critique ({ratio:.0%} of sessions)",
            statistic=ratio,
        )
    return None


@pattern("incremental-checkpoints")
def checkpoint_pattern(high: Cohort) -> Finding | None:
    ratio = checkpoint_ratio(high)
    if ratio > CHECKPOINT_MIN_RATIO:
        return Finding(
            heuristic="incremental-checkpoints",
            statement=(
                f"Work incrementally with checkpoints ({ratio:.0%} of sessions)"
            ),
            statistic=ratio,
        )
    return None


# ── Anti-pattern Heuristics ────────────────────────────────────


@anti_pattern("research-before-acting")
def research_anti_pattern(low: Cohort, high: Cohort) -> Finding | None:
    low_reads = research_stats(low).avg_reads
    high_reads = research_stats(high).avg_reads
    if low_reads < high_reads - RESEARCH_READS_MARGIN and high_reads > 1:
        return Finding(
            heuristic="research-before-acting",
            statement=(
                f"Insufficient research before writing ({low_reads:.1f} reads "
                f"vs {high_reads:.1f} in successful sessions)"
            ),
            statistic=high_reads - low_reads,
        )
    return None


@anti_pattern("revision")
def revision_anti_pattern(low: Cohort, high: Cohort) -> Finding | None:
    low_ratio = revision_ratio(low)
    high_ratio = revision_ratio(high)
    if low_ratio < high_ratio - REVISION_RATIO_MARGIN:
        return Finding(
            heuristic="revision",
            statement="No revision pass: submitted first draft without review",
            statistic=high_ratio - low_ratio,
        )
    return None


@anti_pattern("tool-diversity")
def diversity_anti_pattern(low: Cohort, high: Cohort) -> Finding | None:
    low_distinct = mean_distinct_actions(low)
    high_distinct = mean_distinct_actions(high)
    if low_distinct < high_distinct - DIVERSITY_MARGIN:
        return Finding(
            heuristic="tool-diversity",
            statement=(
                f"Limited tool usage ({low_distinct:.1f} tools vs "
                f"{high_distinct:.1f} in successful sessions)"
            ),
            statistic=high_distinct - low_distinct,
        )
    return None


@anti_pattern("thoroughness")
def thoroughness_anti_pattern(low: Cohort, high: Cohort) -> Finding | None:
    low_steps = mean_step_count(low)
    high_steps = mean_step_count(high)
    if low_steps < high_steps * THOROUGHNESS_FRACTION:
        return Finding(
            heuristic="thoroughness",
            statement=(
                f"Rushed execution ({low_steps:.0f} steps vs {high_steps:.0f} "
                f"in successful sessions)"
            ),
            statistic=high_steps - low_steps,
        )
    return None
