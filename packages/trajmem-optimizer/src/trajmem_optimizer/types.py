"""Shared data types for the optimization engine.

These types are ephemeral views computed on demand:
- Regions: labeled marker-delimited spans of an instruction document
- Findings and analysis results: what scored trajectories say about a label
- Curated examples: trajectories picked to illustrate good or poor practice
- Strategies and selections: named approaches and the policy's choice
- Proposals: a meta-prompt plus the draft record awaiting rewritten text
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from trajmem_core.types import OptimizationRecord

# Region parameter defaults when a marker leaves them unset
DEFAULT_MIN_SAMPLES = 10
DEFAULT_MAX_EXAMPLES = 3
DEFAULT_INCLUDE_NEGATIVE = True


class RegionKind(StrEnum):
    """Which marker family delimits a region."""

    OPTIMIZE = "optimize"  # rewritable instructions
    EXAMPLES = "examples"  # curated few-shot examples
    STRATEGIES = "strategies"  # named approach definitions


@dataclass(frozen=True, slots=True)
class Region:
    """A labeled, marker-delimited span inside a document.

    ``start_line`` and ``end_line`` are the 1-indexed lines of the start
    and end markers. ``content`` is every line strictly between them,
    line terminators included. Valid only until the document is edited.
    """

    path: str
    kind: RegionKind
    label: str
    start_line: int
    end_line: int
    content: str
    min_samples: int = DEFAULT_MIN_SAMPLES
    max_examples: int = DEFAULT_MAX_EXAMPLES
    include_negative: bool = DEFAULT_INCLUDE_NEGATIVE


@dataclass(frozen=True, slots=True)
class Finding:
    """A pattern statement paired with the statistic that justifies it."""

    heuristic: str
    statement: str
    statistic: float

    def __str__(self) -> str:
        return self.statement


@dataclass(frozen=True, slots=True)
class CuratedExample:
    """A trajectory selected to illustrate good or poor practice."""

    trajectory_id: str
    task: str
    summary: str
    score: float
    notes: str
    why_selected: str
    negative: bool = False


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    """Cohort statistics and mined findings for one label."""

    label: str
    total_sessions: int
    high_sessions: int
    low_sessions: int
    avg_score_high: float
    avg_score_low: float
    patterns: list[Finding] = field(default_factory=list)
    anti_patterns: list[Finding] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    curated_examples: list[CuratedExample] = field(default_factory=list)

    @property
    def medium_sessions(self) -> int:
        return self.total_sessions - self.high_sessions - self.low_sessions


@dataclass(frozen=True, slots=True)
class Strategy:
    """A named approach for a recurring task label.

    ``avg_score`` and ``usage_count`` are filled in when hydrated from
    usage statistics; ``avg_score`` stays None until a usage is scored.
    """

    name: str
    approach_prompt: str = ""
    description: str = ""
    avg_score: float | None = None
    usage_count: int = 0


class SelectionMode(StrEnum):
    """Policy used to choose a strategy."""

    EXPLICIT = "explicit"
    RECOMMEND = "recommend"
    ROTATE = "rotate"


@dataclass(frozen=True, slots=True)
class StrategySelection:
    """The chosen strategy and why it was chosen."""

    strategy: Strategy
    mode: SelectionMode
    reason: str


@dataclass(frozen=True, slots=True)
class StrategyReport:
    """Aggregated performance of every strategy used under a label."""

    label: str
    strategies: list[Strategy]
    total_usages: int
    best: Strategy | None
    least_used: Strategy | None
    exploration_suggested: bool


@dataclass(frozen=True, slots=True)
class Proposal:
    """Everything a caller needs to produce and save a rewrite."""

    region: Region
    analysis: AnalysisResult
    record: OptimizationRecord
    prompt: str
