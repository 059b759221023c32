from __future__ import annotations

import json
import time
import uuid
from dataclasses import asdict, dataclass, field, replace
from enum import StrEnum
from typing import Any

from trajmem_core.errors import (
    IllegalTransitionError,
    InvalidTrajectoryError,
    NotAppliedError,
    NotProposedError,
)


def new_id() -> str:
    """Return a creation-ordered opaque id (nanosecond clock + random tail)."""
    return f"{time.time_ns():016x}{uuid.uuid4().hex[:10]}"


# ── Trajectory Types ─────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class TrajectoryStep:
    """A single action taken by the agent during a trajectory."""
    action: str
    input_summary: str = ""
    output_summary: str = ""
    timestamp: float = field(default_factory=time.time)
    duration_ms: float = 0.0


@dataclass(frozen=True, slots=True)
class Outcome:
    """Score attached to a finished trajectory."""
    score: float
    notes: str = ""
    scored_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if isinstance(self.score, bool) or not isinstance(self.score, (int, float)):
            msg = f"score must be a number, got {self.score!r}"
            raise ValueError(msg)
        if not 0.0 <= self.score <= 1.0:
            msg = f"score must be within [0, 1], got {self.score}"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class Trajectory:
    """A recorded action sequence for one task, optionally scored."""

    id: str = field(default_factory=new_id)
    task: str = ""
    steps: list[TrajectoryStep] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    outcome: Outcome | None = None
    summary: str = ""
    strategy: str | None = None
    started_at: float = field(default_factory=time.time)

    @property
    def score(self) -> float | None:
        return self.outcome.score if self.outcome is not None else None

    @property
    def is_scored(self) -> bool:
        return self.outcome is not None

    def to_json(self) -> str:
        """Serialize the trajectory to a JSON string."""
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str | bytes) -> Trajectory:
        """Deserialize a trajectory from a JSON string.

        Raises:
            json.JSONDecodeError: ``raw`` is not JSON.
            InvalidTrajectoryError: The JSON is not a trajectory object, or
                carries unknown fields or an out-of-range score.
        """
        return cls.from_dict(json.loads(raw))

    @classmethod
    def from_dict(cls, data: Any) -> Trajectory:
        if not isinstance(data, dict):
            msg = f"trajectory must be a JSON object, got {type(data).__name__}"
            raise InvalidTrajectoryError(msg)
        try:
            steps = [TrajectoryStep(**step) for step in data.get("steps") or []]
            outcome = data.get("outcome")
            return cls(**{
                **data,
                "steps": steps,
                "outcome": Outcome(**outcome) if outcome else None,
            })
        except (TypeError, ValueError) as exc:
            msg = f"invalid trajectory: {exc}"
            raise InvalidTrajectoryError(msg) from exc


# ── Optimization Types ───────────────────────────────────────────────

class OptimizationStatus(StrEnum):
    """Lifecycle status of an optimization record."""

    PROPOSED = "proposed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ROLLED_BACK = "rolled_back"


# target status -> (required source status, error raised otherwise)
_TRANSITIONS: dict[
    OptimizationStatus,
    tuple[OptimizationStatus, type[IllegalTransitionError]],
] = {
    OptimizationStatus.ACCEPTED: (OptimizationStatus.PROPOSED, NotProposedError),
    OptimizationStatus.REJECTED: (OptimizationStatus.PROPOSED, NotProposedError),
    OptimizationStatus.ROLLED_BACK: (OptimizationStatus.ACCEPTED, NotAppliedError),
}


@dataclass(frozen=True, slots=True)
class OptimizationRecord:
    """A proposed rewrite of one document region and its lifecycle state."""

    id: str
    target_file: str
    label: str
    previous_content: str
    new_content: str = ""
    diff: str = ""
    status: OptimizationStatus = OptimizationStatus.PROPOSED
    sessions_used: int = 0
    avg_score_high: float = 0.0
    avg_score_low: float = 0.0
    created_at: float = field(default_factory=time.time)
    applied_at: float | None = None
    rolled_back_at: float | None = None

    def transition(
        self, target: OptimizationStatus, *, at: float | None = None
    ) -> OptimizationRecord:
        """Return a copy moved to ``target``, stamping the matching timestamp.

        Raises:
            NotProposedError: Accepting/rejecting a record that is not proposed.
            NotAppliedError: Rolling back a record that is not accepted.
            IllegalTransitionError: Any other transition.
        """
        rule = _TRANSITIONS.get(target)
        if rule is None:
            msg = f"optimization {self.id}: cannot move to {target.value}"
            raise IllegalTransitionError(msg)
        source, error = rule
        if self.status is not source:
            msg = (
                f"optimization {self.id} is {self.status.value}, "
                f"expected {source.value}"
            )
            raise error(msg)

        now = time.time() if at is None else at
        if target is OptimizationStatus.ACCEPTED:
            return replace(self, status=target, applied_at=now)
        if target is OptimizationStatus.ROLLED_BACK:
            return replace(self, status=target, rolled_back_at=now)
        return replace(self, status=target)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OptimizationRecord:
        return cls(**{**data, "status": OptimizationStatus(data["status"])})


# ── Strategy Types ───────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class StrategyUsage:
    """Links one trajectory to the strategy it employed."""
    label: str
    strategy_name: str
    trajectory_id: str
    score: float | None = None
    used_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StrategyUsage:
        return cls(**data)
