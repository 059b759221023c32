"""Trajmem Core: shared types, config, errors, and logging."""
from __future__ import annotations

from trajmem_core._version import __version__
from trajmem_core.config import (
    BackendConfig,
    LoggingConfig,
    OptimizerConfig,
    TrajmemConfig,
)
from trajmem_core.errors import (
    AnalysisError,
    BackendError,
    ConfigError,
    IllegalTransitionError,
    InsufficientDataError,
    InvalidTrajectoryError,
    MalformedMarkersError,
    MissingLabelError,
    NotAppliedError,
    NotProposedError,
    OptimizationError,
    RecordNotFoundError,
    RegionError,
    StaleRegionError,
    StrategyError,
    StrategyNotFoundError,
    StrategyParseError,
    TargetNotFoundError,
    TrajectoryNotFoundError,
    TrajmemError,
)
from trajmem_core.logging import get_logger, setup_logging
from trajmem_core.types import (
    OptimizationRecord,
    OptimizationStatus,
    Outcome,
    StrategyUsage,
    Trajectory,
    TrajectoryStep,
    new_id,
)

__all__ = [
    "AnalysisError",
    "BackendConfig",
    "BackendError",
    "ConfigError",
    "IllegalTransitionError",
    "InsufficientDataError",
    "InvalidTrajectoryError",
    "LoggingConfig",
    "MalformedMarkersError",
    "MissingLabelError",
    "NotAppliedError",
    "NotProposedError",
    "OptimizationError",
    "OptimizationRecord",
    "OptimizationStatus",
    "OptimizerConfig",
    "Outcome",
    "RecordNotFoundError",
    "RegionError",
    "StaleRegionError",
    "StrategyError",
    "StrategyNotFoundError",
    "StrategyParseError",
    "StrategyUsage",
    "TargetNotFoundError",
    "Trajectory",
    "TrajectoryNotFoundError",
    "TrajectoryStep",
    "TrajmemConfig",
    "TrajmemError",
    "__version__",
    "get_logger",
    "new_id",
    "setup_logging",
]
