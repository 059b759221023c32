from __future__ import annotations

from trajmem_runtime.protocols.state_store import StateStoreAdapter

__all__ = ["StateStoreAdapter"]
