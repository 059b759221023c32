"""Few-shot example curation from scored trajectories.

Positive examples are picked from the high cohort for diversity: a
candidate is skipped when its task is too similar (Jaccard over
tokenized task descriptions) to one already chosen. One negative
example may be taken from the low cohort.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from trajmem_core.errors import TargetNotFoundError
from trajmem_core.logging import get_logger

from trajmem_optimizer.markers import find_region, replace_region
from trajmem_optimizer.types import CuratedExample, RegionKind

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from trajmem_core.types import Trajectory

    from trajmem_optimizer.analyzer import TrajectoryAnalyzer
    from trajmem_optimizer.store import CuratedExampleStore

logger = get_logger("optimizer.curation")

SIMILARITY_THRESHOLD = 0.6
DEFAULT_CURATE_MIN_SAMPLES = 3

_STOPWORDS = frozenset({
    "the", "a", "an", "and", "or", "to", "in", "for", "of", "on",
    "with", "this", "that", "is", "are",
})
_SPLIT_RE = re.compile(r"[^a-z0-9]+")


# ── Similarity ─────────────────────────────────────────────────


def tokenize(text: str) -> set[str]:
    """Lowercase word set with stopwords and short tokens removed."""
    return {
        token
        for token in _SPLIT_RE.split(text.lower())
        if len(token) > 2 and token not in _STOPWORDS
    }


def jaccard_similarity(a: set[str], b: set[str]) -> float:
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def select_diverse(
    candidates: Sequence[Trajectory], n: int
) -> list[Trajectory]:
    """Pick up to ``n`` high scorers whose tasks are mutually dissimilar.

    Candidates are visited best score first. A candidate is taken when it
    has a summary and its task is no more than
    :data:`SIMILARITY_THRESHOLD` similar to every pick so far. Remaining
    slots are back-filled in score order.
    """
    if n <= 0:
        return []
    ranked = sorted(candidates, key=lambda t: t.score or 0.0, reverse=True)
    if len(ranked) <= n:
        return ranked

    tokens = {t.id: tokenize(t.task) for t in ranked}

    selected: list[Trajectory] = []
    for trajectory in ranked:
        if len(selected) >= n:
            break
        if not trajectory.summary:
            continue
        mine = tokens[trajectory.id]
        if all(
            jaccard_similarity(mine, tokens[other.id]) <= SIMILARITY_THRESHOLD
            for other in selected
        ):
            selected.append(trajectory)

    chosen = {t.id for t in selected}
    for trajectory in ranked:
        if len(selected) >= n:
            break
        if trajectory.id not in chosen:
            selected.append(trajectory)
            chosen.add(trajectory.id)
    return selected


# ── Example Selection ──────────────────────────────────────────


def curate_examples(
    high: Sequence[Trajectory],
    low: Sequence[Trajectory],
    max_examples: int,
    *,
    include_negative: bool = True,
) -> list[CuratedExample]:
    """Select diverse positive examples plus at most one negative."""
    examples = [
        CuratedExample(
            trajectory_id=t.id,
            task=t.task,
            summary=t.summary,
            score=t.score or 0.0,
            notes=t.outcome.notes if t.outcome else "",
            why_selected=(
                f"High-scoring session ({t.score or 0.0:.0%}) with "
                f"{len(t.steps)} steps demonstrating thorough approach"
            ),
        )
        for t in select_diverse(high, max_examples)
    ]

    if include_negative:
        for t in sorted(low, key=lambda t: t.score or 0.0):
            if not t.summary:
                continue
            examples.append(
                CuratedExample(
                    trajectory_id=t.id,
                    task=t.task,
                    summary=t.summary,
                    score=t.score or 0.0,
                    notes=t.outcome.notes if t.outcome else "",
                    why_selected=(
                        f"Low-scoring session ({t.score or 0.0:.0%}) showing "
                        f"common pitfalls to avoid"
                    ),
                    negative=True,
                )
            )
            break
    return examples


def format_examples(examples: Sequence[CuratedExample]) -> str:
    """Render curated examples as the markdown body of an examples region."""
    positives = [e for e in examples if not e.negative]
    negatives = [e for e in examples if e.negative]
    parts: list[str] = []

    for i, example in enumerate(positives, start=1):
        parts.append(_format_example(f"Example {i}", example))
    for example in negatives:
        parts.append(_format_example("Pitfall to avoid", example))

    if not parts:
        return ""
    return "\n".join(parts)


def _format_example(heading: str, example: CuratedExample) -> str:
    lines = [f"### {heading} (score {example.score:.2f})", ""]
    if example.task:
        lines.append(f"**Task:** {example.task}")
    lines.append(f"**Approach:** {example.summary}")
    if example.notes:
        lines.append(f"**Feedback:** {example.notes}")
    lines.append(f"*{example.why_selected}*")
    lines.append("")
    return "\n".join(lines) + "\n"


# ── Curator ────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class CurationResult:
    label: str
    examples: list[CuratedExample]
    content: str


class ExampleCurator:
    """Curates examples for a label and writes them into examples regions.

    Usage::

        curator = ExampleCurator(analyzer, example_store)
        result = await curator.curate("research", max_examples=3)
        await curator.apply(Path("CLAUDE.md"), "research", result.content)
    """

    def __init__(
        self,
        analyzer: TrajectoryAnalyzer,
        store: CuratedExampleStore,
        *,
        min_samples: int = DEFAULT_CURATE_MIN_SAMPLES,
    ) -> None:
        self._analyzer = analyzer
        self._store = store
        self._min_samples = min_samples

    async def curate(
        self,
        label: str,
        max_examples: int = 3,
        *,
        include_negative: bool = True,
        min_samples: int | None = None,
    ) -> CurationResult:
        """Select examples for ``label`` and persist the selection.

        Raises:
            InsufficientDataError: Fewer scored trajectories than required.
        """
        need = self._min_samples if min_samples is None else min_samples
        high, low = await self._analyzer.cohorts(label, need)
        examples = curate_examples(
            high, low, max_examples, include_negative=include_negative
        )
        await self._store.save(label, examples)
        logger.info(
            "Curated %d examples for label %r (%d high, %d low candidates)",
            len(examples),
            label,
            len(high),
            len(low),
        )
        return CurationResult(
            label=label, examples=examples, content=format_examples(examples)
        )

    async def apply(self, path: Path, label: str, content: str) -> None:
        """Write ``content`` into the examples region for ``label``.

        Raises:
            TargetNotFoundError: The document has no such examples region.
        """
        region = find_region(path, label, RegionKind.EXAMPLES)
        if region is None:
            msg = f"no examples region tagged {label!r} in {path}"
            raise TargetNotFoundError(msg)
        replace_region(region, content)

    async def curate_region(self, path: Path, label: str) -> CurationResult:
        """Curate using the examples region's own parameters, then apply."""
        region = find_region(path, label, RegionKind.EXAMPLES)
        if region is None:
            msg = f"no examples region tagged {label!r} in {path}"
            raise TargetNotFoundError(msg)
        result = await self.curate(
            label,
            region.max_examples,
            include_negative=region.include_negative,
        )
        replace_region(region, result.content)
        return result
