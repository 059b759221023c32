"""Trajmem Optimizer: trajectory-driven rewriting of instruction documents.

This package provides tools for:
- Locating marker-delimited regions in instruction documents
- Mining scored trajectories for patterns and anti-patterns
- Curating diverse few-shot examples
- Proposing, applying, rejecting, and rolling back region rewrites
- Selecting among named strategies by performance or rotation

Main Components:
    - markers: find_regions / replace_region / check_body
    - TrajectoryAnalyzer: cohort split and heuristic mining per label
    - ExampleCurator: example selection and examples-region updates
    - OptimizationManager: the rewrite lifecycle
    - StrategySelector: strategy selection and usage tracking
    - OptimizerContext: all of the above wired to one state store
"""
from __future__ import annotations

from trajmem_optimizer.analyzer import (
    HIGH_SCORE_THRESHOLD,
    LOW_SCORE_THRESHOLD,
    TrajectoryAnalyzer,
    analyze_trajectories,
    split_cohorts,
)
from trajmem_optimizer.context import OptimizerContext
from trajmem_optimizer.curation import (
    SIMILARITY_THRESHOLD,
    CurationResult,
    ExampleCurator,
    curate_examples,
    select_diverse,
)
from trajmem_optimizer.lifecycle import OptimizationManager
from trajmem_optimizer.markers import (
    check_body,
    find_region,
    find_regions,
    parse_regions,
    replace_region,
)
from trajmem_optimizer.store import (
    CuratedExampleStore,
    OptimizationStore,
    StrategyUsageStore,
)
from trajmem_optimizer.strategies import (
    StrategySelector,
    load_strategies,
    parse_strategies,
)
from trajmem_optimizer.trajectories import TrajectoryStore
from trajmem_optimizer.types import (
    AnalysisResult,
    CuratedExample,
    Finding,
    Proposal,
    Region,
    RegionKind,
    SelectionMode,
    Strategy,
    StrategyReport,
    StrategySelection,
)

__all__ = [
    "HIGH_SCORE_THRESHOLD",
    "LOW_SCORE_THRESHOLD",
    "SIMILARITY_THRESHOLD",
    "AnalysisResult",
    "CuratedExample",
    "CuratedExampleStore",
    "CurationResult",
    "ExampleCurator",
    "Finding",
    "OptimizationManager",
    "OptimizationStore",
    "OptimizerContext",
    "Proposal",
    "Region",
    "RegionKind",
    "SelectionMode",
    "Strategy",
    "StrategyReport",
    "StrategySelection",
    "StrategySelector",
    "StrategyUsageStore",
    "TrajectoryAnalyzer",
    "TrajectoryStore",
    "analyze_trajectories",
    "check_body",
    "curate_examples",
    "find_region",
    "find_regions",
    "load_strategies",
    "parse_regions",
    "replace_region",
    "select_diverse",
    "split_cohorts",
]
