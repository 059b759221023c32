"""Cohort analysis over scored trajectories for one label.

Scored trajectories are split into three cohorts by fixed score
thresholds. Pattern heuristics run over the high cohort, anti-pattern
heuristics compare the low cohort against it, and recommendations are
synthesized from both.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from trajmem_core.errors import InsufficientDataError
from trajmem_core.logging import get_logger

from trajmem_optimizer.curation import curate_examples
from trajmem_optimizer.heuristics import extract_anti_patterns, extract_patterns
from trajmem_optimizer.types import AnalysisResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from trajmem_core.types import Trajectory

    from trajmem_optimizer.trajectories import TrajectoryStore
    from trajmem_optimizer.types import Finding

logger = get_logger("optimizer.analyzer")

HIGH_SCORE_THRESHOLD = 0.75  # score >= this is "high"
LOW_SCORE_THRESHOLD = 0.5  # score < this is "low"
ANALYSIS_MAX_EXAMPLES = 3

# (keywords, recommendation); first matching row wins
_RECOMMENDATIONS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("research", "read"), "Read all available context before starting work"),
    (("revision", "review"), "Always review and revise output before finalizing"),
    (("tool",), "Use multiple tools (search, read, validate) for thorough analysis"),
    (("rushed", "steps"), "Take time for thorough analysis and avoid rushing"),
)


def split_cohorts(
    trajectories: Sequence[Trajectory],
) -> tuple[list[Trajectory], list[Trajectory], list[Trajectory]]:
    """Partition scored trajectories into ``(high, medium, low)``.

    Unscored trajectories are ignored. Input order is kept within each
    cohort.
    """
    high: list[Trajectory] = []
    medium: list[Trajectory] = []
    low: list[Trajectory] = []
    for trajectory in trajectories:
        score = trajectory.score
        if score is None:
            continue
        if score >= HIGH_SCORE_THRESHOLD:
            high.append(trajectory)
        elif score < LOW_SCORE_THRESHOLD:
            low.append(trajectory)
        else:
            medium.append(trajectory)
    return high, medium, low


def synthesize_recommendations(
    patterns: Sequence[Finding], anti_patterns: Sequence[Finding]
) -> list[str]:
    """Pattern statements, then one canonical fix per anti-pattern, deduplicated."""
    recommendations = [p.statement for p in patterns]
    for finding in anti_patterns:
        text = finding.statement.lower()
        for keywords, recommendation in _RECOMMENDATIONS:
            if any(k in text for k in keywords):
                recommendations.append(recommendation)
                break
    return list(dict.fromkeys(recommendations))


def _mean_score(cohort: Sequence[Trajectory]) -> float:
    if not cohort:
        return 0.0
    return sum(t.score or 0.0 for t in cohort) / len(cohort)


def analyze_trajectories(
    label: str,
    trajectories: Sequence[Trajectory],
    min_samples: int,
) -> AnalysisResult:
    """Analyze ``trajectories`` already filtered to ``label``.

    Raises:
        InsufficientDataError: Fewer than ``min_samples`` are scored.
    """
    scored = [t for t in trajectories if t.is_scored]
    if len(scored) < min_samples:
        raise InsufficientDataError(label, have=len(scored), need=min_samples)

    high, _medium, low = split_cohorts(scored)
    patterns = extract_patterns(high)
    anti_patterns = extract_anti_patterns(low, high)

    return AnalysisResult(
        label=label,
        total_sessions=len(scored),
        high_sessions=len(high),
        low_sessions=len(low),
        avg_score_high=_mean_score(high),
        avg_score_low=_mean_score(low),
        patterns=patterns,
        anti_patterns=anti_patterns,
        recommendations=synthesize_recommendations(patterns, anti_patterns),
        curated_examples=curate_examples(high, low, ANALYSIS_MAX_EXAMPLES),
    )


class TrajectoryAnalyzer:
    """Analyzes the scored trajectories recorded under a label.

    Usage::

        analyzer = TrajectoryAnalyzer(trajectory_store)
        result = await analyzer.analyze("research", min_samples=10)
        for line in result.recommendations:
            print(line)
    """

    def __init__(self, trajectories: TrajectoryStore) -> None:
        self._trajectories = trajectories

    async def scored(self, label: str, min_samples: int) -> list[Trajectory]:
        """Scored trajectories for ``label``, enforcing the sample floor."""
        scored = [
            t for t in await self._trajectories.list_by_label(label)
            if t.is_scored
        ]
        if len(scored) < min_samples:
            raise InsufficientDataError(label, have=len(scored), need=min_samples)
        return scored

    async def cohorts(
        self, label: str, min_samples: int
    ) -> tuple[list[Trajectory], list[Trajectory]]:
        """The ``(high, low)`` cohorts for ``label``."""
        high, _medium, low = split_cohorts(await self.scored(label, min_samples))
        return high, low

    async def analyze(self, label: str, min_samples: int) -> AnalysisResult:
        """Run the full analysis for ``label``.

        Raises:
            InsufficientDataError: Fewer than ``min_samples`` scored
                trajectories carry the label.
        """
        result = analyze_trajectories(
            label, await self.scored(label, min_samples), min_samples
        )
        logger.info(
            "Analyzed label %r: %d sessions (%d high, %d low), "
            "%d patterns, %d anti-patterns",
            label,
            result.total_sessions,
            result.high_sessions,
            result.low_sessions,
            len(result.patterns),
            len(result.anti_patterns),
        )
        return result
