from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from trajmem_core.config import TrajmemConfig
from trajmem_runtime.builder import build_state_store

from trajmem_optimizer.analyzer import TrajectoryAnalyzer
from trajmem_optimizer.curation import ExampleCurator
from trajmem_optimizer.lifecycle import OptimizationManager
from trajmem_optimizer.store import (
    CuratedExampleStore,
    OptimizationStore,
    StrategyUsageStore,
)
from trajmem_optimizer.strategies import StrategySelector
from trajmem_optimizer.trajectories import TrajectoryStore

if TYPE_CHECKING:
    from trajmem_runtime.protocols.state_store import StateStoreAdapter


@dataclass(slots=True)
class OptimizerContext:
    """Every store and component of the engine, wired to one state store.

    Created once per process by :meth:`create` (or
    :meth:`from_state_store` in tests) and shared by the MCP server and
    CLI commands.
    """

    state_store: StateStoreAdapter
    trajectories: TrajectoryStore
    records: OptimizationStore
    usages: StrategyUsageStore
    examples: CuratedExampleStore
    analyzer: TrajectoryAnalyzer
    manager: OptimizationManager
    curator: ExampleCurator
    selector: StrategySelector
    config: TrajmemConfig = field(default_factory=TrajmemConfig)

    @classmethod
    def from_state_store(
        cls,
        state_store: StateStoreAdapter,
        config: TrajmemConfig | None = None,
    ) -> OptimizerContext:
        config = config or TrajmemConfig()
        usages = StrategyUsageStore(state_store)
        trajectories = TrajectoryStore(state_store, usages)
        records = OptimizationStore(state_store)
        examples = CuratedExampleStore(state_store)
        analyzer = TrajectoryAnalyzer(trajectories)
        return cls(
            state_store=state_store,
            trajectories=trajectories,
            records=records,
            usages=usages,
            examples=examples,
            analyzer=analyzer,
            manager=OptimizationManager(
                analyzer,
                records,
                history_limit=config.optimizer.history_limit,
            ),
            curator=ExampleCurator(
                analyzer,
                examples,
                min_samples=config.optimizer.curate_min_samples,
            ),
            selector=StrategySelector(usages),
            config=config,
        )

    @classmethod
    async def create(cls, config: TrajmemConfig | None = None) -> OptimizerContext:
        """Build the configured state store and wire everything to it."""
        config = config or TrajmemConfig.load()
        return cls.from_state_store(await build_state_store(config), config)

    async def close(self) -> None:
        close = getattr(self.state_store, "close", None)
        if close is not None:
            await close()
