"""Strategy selection for recurring task labels.

A strategies region declares named approaches in YAML::

    <!-- trajectory-strategies:daily-briefing -->
    strategies:
      - name: inbox-first
        description: Triage mail before calendar
        approach_prompt: |
          Read every unread thread before drafting the briefing.
      - name: calendar-first
        approach_prompt: Start from today's meetings.
    <!-- /trajectory-strategies:daily-briefing -->

Usages link trajectories to the strategy they followed; once those
trajectories are scored, selection can favor the best performer or rotate
toward under-explored strategies.
"""
from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Any

import yaml

from trajmem_core.errors import StrategyNotFoundError, StrategyParseError
from trajmem_core.logging import get_logger
from trajmem_core.types import StrategyUsage

from trajmem_optimizer.markers import find_region
from trajmem_optimizer.types import (
    RegionKind,
    SelectionMode,
    Strategy,
    StrategyReport,
    StrategySelection,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from trajmem_optimizer.store import StrategyUsageStore

logger = get_logger("optimizer.strategies")

RECOMMEND_MIN_USAGES = 2
EXPLORATION_MIN_USAGES = 3


# ── Parsing ────────────────────────────────────────────────────


def parse_strategies(body: str) -> list[Strategy]:
    """Parse a strategies region body into :class:`Strategy` values.

    Accepts a mapping with a ``strategies`` list or a bare list. An empty
    body yields no strategies.

    Raises:
        StrategyParseError: Invalid YAML, wrong shape, a missing name, or
            a duplicated name.
    """
    try:
        data = yaml.safe_load(body)
    except yaml.YAMLError as exc:
        msg = f"invalid strategies YAML: {exc}"
        raise StrategyParseError(msg) from exc

    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get("strategies")
    if not isinstance(data, list):
        msg = "strategies must be a list of mappings"
        raise StrategyParseError(msg)

    strategies: list[Strategy] = []
    seen: set[str] = set()
    for index, entry in enumerate(data):
        strategy = _parse_entry(index, entry)
        if strategy.name in seen:
            msg = f"duplicate strategy name {strategy.name!r}"
            raise StrategyParseError(msg)
        seen.add(strategy.name)
        strategies.append(strategy)
    return strategies


def _parse_entry(index: int, entry: Any) -> Strategy:
    if not isinstance(entry, dict):
        msg = f"strategy #{index + 1} is not a mapping"
        raise StrategyParseError(msg)
    name = entry.get("name")
    if not isinstance(name, str) or not name.strip():
        msg = f"strategy #{index + 1} has no name"
        raise StrategyParseError(msg)
    return Strategy(
        name=name.strip(),
        description=str(entry.get("description") or ""),
        approach_prompt=str(entry.get("approach_prompt") or ""),
    )


def load_strategies(path: Path | str, label: str) -> list[Strategy]:
    """Strategies declared for ``label`` in the document at ``path``.

    Raises:
        StrategyNotFoundError: The document has no strategies region for
            the label.
        StrategyParseError: The region body is malformed.
    """
    region = find_region(path, label, RegionKind.STRATEGIES)
    if region is None:
        msg = f"no strategies region for label {label!r} in {path}"
        raise StrategyNotFoundError(msg)
    return parse_strategies(region.content)


# ── Selection Policies ─────────────────────────────────────────


def select_explicit(
    strategies: Sequence[Strategy], name: str
) -> StrategySelection:
    for strategy in strategies:
        if strategy.name == name:
            return StrategySelection(
                strategy=strategy,
                mode=SelectionMode.EXPLICIT,
                reason="Explicitly selected",
            )
    msg = f"strategy {name!r} is not declared"
    raise StrategyNotFoundError(msg)


def best_performer(strategies: Sequence[Strategy]) -> Strategy | None:
    """Highest-scoring strategy with at least two usages, if any."""
    best: Strategy | None = None
    for strategy in strategies:
        if strategy.usage_count < RECOMMEND_MIN_USAGES or strategy.avg_score is None:
            continue
        if best is None or strategy.avg_score > (best.avg_score or 0.0):
            best = strategy
    return best


def select_recommended(strategies: Sequence[Strategy]) -> StrategySelection:
    """Highest mean score among strategies with enough usages.

    Ties go to the earlier-declared strategy. Without qualifying data the
    first declared strategy is the default.
    """
    best = best_performer(strategies)
    if best is not None:
        return StrategySelection(
            strategy=best,
            mode=SelectionMode.RECOMMEND,
            reason=(
                f"Best performer ({best.avg_score:.2f} avg over "
                f"{best.usage_count} sessions)"
            ),
        )
    return StrategySelection(
        strategy=strategies[0],
        mode=SelectionMode.RECOMMEND,
        reason="Default (no performance data yet)",
    )


def select_rotation(strategies: Sequence[Strategy]) -> StrategySelection:
    """Least-used strategy; ties go to the earlier-declared one."""
    least = min(strategies, key=lambda s: s.usage_count)
    return StrategySelection(
        strategy=least,
        mode=SelectionMode.ROTATE,
        reason=f"Rotation for exploration ({least.usage_count} previous uses)",
    )


def hydrate(
    strategies: Sequence[Strategy], usages: Sequence[StrategyUsage]
) -> list[Strategy]:
    """Fill in usage counts and mean scores from recorded usages.

    Counts include unscored usages; means cover scored ones only.
    """
    counts: dict[str, int] = {}
    scores: dict[str, list[float]] = {}
    for usage in usages:
        counts[usage.strategy_name] = counts.get(usage.strategy_name, 0) + 1
        if usage.score is not None:
            scores.setdefault(usage.strategy_name, []).append(usage.score)

    hydrated: list[Strategy] = []
    for strategy in strategies:
        values = scores.get(strategy.name)
        hydrated.append(
            replace(
                strategy,
                usage_count=counts.get(strategy.name, 0),
                avg_score=sum(values) / len(values) if values else None,
            )
        )
    return hydrated


# ── Selector ───────────────────────────────────────────────────


class StrategySelector:
    """Chooses strategies and tracks which trajectories used them.

    Usage::

        selector = StrategySelector(usage_store)
        strategies = load_strategies("CLAUDE.md", "daily-briefing")
        choice = await selector.select(
            "daily-briefing", strategies, SelectionMode.RECOMMEND
        )
        await selector.record_usage(
            "daily-briefing", choice.strategy.name, trajectory.id
        )
    """

    def __init__(self, usages: StrategyUsageStore) -> None:
        self._usages = usages

    async def hydrate(
        self, label: str, strategies: Sequence[Strategy]
    ) -> list[Strategy]:
        """Declared strategies with this label's usage statistics."""
        return hydrate(strategies, await self._usages.list(label))

    async def select(
        self,
        label: str,
        strategies: Sequence[Strategy],
        mode: SelectionMode = SelectionMode.RECOMMEND,
        strategy_name: str | None = None,
    ) -> StrategySelection:
        """Pick a strategy under ``mode``.

        Raises:
            StrategyNotFoundError: No strategies are declared, or the
                explicitly named one is not among them.
        """
        if not strategies:
            msg = f"no strategies declared for label {label!r}"
            raise StrategyNotFoundError(msg)

        if mode is SelectionMode.EXPLICIT:
            if strategy_name is None:
                msg = "explicit selection requires a strategy name"
                raise StrategyNotFoundError(msg)
            selection = select_explicit(strategies, strategy_name)
        else:
            hydrated = await self.hydrate(label, strategies)
            if mode is SelectionMode.ROTATE:
                selection = select_rotation(hydrated)
            else:
                selection = select_recommended(hydrated)

        logger.info(
            "Selected strategy %r for %r (%s): %s",
            selection.strategy.name,
            label,
            mode.value,
            selection.reason,
        )
        return selection

    async def record_usage(
        self, label: str, strategy_name: str, trajectory_id: str
    ) -> StrategyUsage:
        """Link a trajectory to its strategy; later calls overwrite."""
        return await self._usages.record(
            StrategyUsage(
                label=label,
                strategy_name=strategy_name,
                trajectory_id=trajectory_id,
            )
        )

    async def update_usage_score(self, trajectory_id: str, score: float) -> int:
        return await self._usages.update_score(trajectory_id, score)

    async def analyze(
        self, label: str, strategies: Sequence[Strategy] | None = None
    ) -> StrategyReport:
        """Per-strategy performance for ``label``.

        When ``strategies`` is given, declared-but-unused strategies are
        reported too; otherwise only strategies seen in usages appear,
        in order of first use.
        """
        usages = await self._usages.list(label)
        if strategies is None:
            names = list(dict.fromkeys(u.strategy_name for u in usages))
            strategies = [Strategy(name=name) for name in names]
        stats = hydrate(strategies, usages)

        return StrategyReport(
            label=label,
            strategies=stats,
            total_usages=len(usages),
            best=best_performer(stats),
            least_used=min(stats, key=lambda s: s.usage_count) if stats else None,
            exploration_suggested=any(
                s.usage_count < EXPLORATION_MIN_USAGES for s in stats
            ),
        )
