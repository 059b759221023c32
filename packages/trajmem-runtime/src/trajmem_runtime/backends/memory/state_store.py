from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class InProcessStateStore:
    """T0 state store: a Python dict, lost when the process exits.

    Dict insertion order gives ordered-by-creation key listing; updating
    a key keeps its original position.
    """

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}

    async def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def exists(self, key: str) -> bool:
        return key in self._data

    async def list_keys(self, prefix: str) -> AsyncIterator[str]:
        for key in list(self._data):
            if key.startswith(prefix):
                yield key
