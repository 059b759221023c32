from __future__ import annotations

from typing import TYPE_CHECKING

from trajmem_core.errors import ConfigError
from trajmem_core.logging import get_logger

if TYPE_CHECKING:
    from trajmem_core.config import TrajmemConfig

    from trajmem_runtime.protocols.state_store import StateStoreAdapter

logger = get_logger("builder")


async def build_state_store(config: TrajmemConfig) -> StateStoreAdapter:
    """Build the state store selected by ``config.backend.tier``.

    Usage:
        config = TrajmemConfig.load()
        store = await build_state_store(config)
    """
    tier = config.backend.tier
    logger.info("Building state store with %s backend", tier)

    if tier == "memory":
        from trajmem_runtime.backends.memory import InProcessStateStore
        return InProcessStateStore()
    elif tier == "sqlite":
        from trajmem_runtime.backends.sqlite import SQLiteStateStore
        return await SQLiteStateStore.create(config.backend.sqlite_path)
    else:
        raise ConfigError(f"Unknown backend tier: {tier!r}")
