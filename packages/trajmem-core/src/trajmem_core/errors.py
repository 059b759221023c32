from __future__ import annotations


class TrajmemError(Exception):
    """Base exception for all Trajmem errors."""


# ── Runtime Errors ───────────────────────────────────────────────────

class BackendError(TrajmemError):
    """Error from a persistence backend adapter."""


# ── Config Errors ────────────────────────────────────────────────────

class ConfigError(TrajmemError):
    """Invalid or missing configuration."""


# ── Region Errors ────────────────────────────────────────────────────

class RegionError(TrajmemError):
    """Base for marker-region errors in instruction documents."""


class MalformedMarkersError(RegionError):
    """Start/end markers are unpaired, mismatched, or nested."""


class MissingLabelError(RegionError):
    """An attributed start marker has no ``tag`` attribute."""


class StaleRegionError(RegionError):
    """The document changed since the region was located."""


# ── Analysis Errors ──────────────────────────────────────────────────

class AnalysisError(TrajmemError):
    """Base for trajectory analysis errors."""


class InsufficientDataError(AnalysisError):
    """Not enough scored trajectories carry the label."""

    def __init__(self, label: str, have: int, need: int) -> None:
        self.label = label
        self.have = have
        self.need = need
        super().__init__(
            f"insufficient scored trajectories for label {label!r}: "
            f"have {have}, need at least {need}"
        )


# ── Trajectory Errors ────────────────────────────────────────────────

class TrajectoryNotFoundError(TrajmemError):
    """Trajectory does not exist in the store."""


class InvalidTrajectoryError(TrajmemError):
    """A trajectory payload is not a well-formed trajectory."""


# ── Optimization Errors ──────────────────────────────────────────────

class OptimizationError(TrajmemError):
    """Base for optimization lifecycle errors."""


class RecordNotFoundError(OptimizationError):
    """Optimization record does not exist."""


class IllegalTransitionError(OptimizationError):
    """The record's status does not permit the requested transition."""


class NotProposedError(IllegalTransitionError):
    """The record is not in ``proposed`` status."""


class NotAppliedError(IllegalTransitionError):
    """The record is not in ``accepted`` status."""


class TargetNotFoundError(OptimizationError):
    """The record's region is no longer present in the target document."""


# ── Strategy Errors ──────────────────────────────────────────────────

class StrategyError(TrajmemError):
    """Base for strategy selection errors."""


class StrategyNotFoundError(StrategyError):
    """No strategy with the requested name is declared."""


class StrategyParseError(StrategyError):
    """A strategies region body could not be parsed."""
