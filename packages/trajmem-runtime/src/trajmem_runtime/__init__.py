"""Trajmem Runtime: key-value persistence adapters."""
from __future__ import annotations

from trajmem_runtime.builder import build_state_store
from trajmem_runtime.protocols.state_store import StateStoreAdapter

__all__ = [
    "StateStoreAdapter",
    "build_state_store",
]
