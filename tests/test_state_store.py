from __future__ import annotations

import pytest
from trajmem_core.config import BackendConfig, TrajmemConfig
from trajmem_core.errors import ConfigError
from trajmem_runtime.backends.memory import InProcessStateStore
from trajmem_runtime.backends.sqlite import SQLiteStateStore
from trajmem_runtime.builder import build_state_store


class TestStateStoreConformance:
    """Conformance tests for StateStoreAdapter implementations."""

    async def test_get_nonexistent_returns_none(self, state_store):
        assert await state_store.get("nonexistent-key") is None

    async def test_set_and_get(self, state_store):
        await state_store.set("key1", b"value1")
        assert await state_store.get("key1") == b"value1"

    async def test_set_overwrites(self, state_store):
        await state_store.set("key1", b"old")
        await state_store.set("key1", b"new")
        assert await state_store.get("key1") == b"new"

    async def test_delete(self, state_store):
        await state_store.set("key1", b"value")
        await state_store.delete("key1")
        assert await state_store.get("key1") is None

    async def test_delete_nonexistent(self, state_store):
        await state_store.delete("nonexistent")  # Should not raise

    async def test_exists(self, state_store):
        assert not await state_store.exists("key1")
        await state_store.set("key1", b"value")
        assert await state_store.exists("key1")

    async def test_list_keys_by_prefix(self, state_store):
        await state_store.set("prefix:a", b"1")
        await state_store.set("prefix:b", b"2")
        await state_store.set("other:c", b"3")

        keys = [key async for key in state_store.list_keys("prefix:")]
        assert sorted(keys) == ["prefix:a", "prefix:b"]

    async def test_list_keys_in_insertion_order(self, state_store):
        for name in ("c", "a", "b"):
            await state_store.set(f"k:{name}", b"x")
        await state_store.set("k:c", b"updated")

        keys = [key async for key in state_store.list_keys("k:")]
        assert keys == ["k:c", "k:a", "k:b"]

    async def test_prefix_wildcards_are_literal(self, state_store):
        await state_store.set("a_b:1", b"1")
        await state_store.set("axb:2", b"2")
        keys = [key async for key in state_store.list_keys("a_b:")]
        assert keys == ["a_b:1"]


class TestSQLitePersistence:
    async def test_survives_reopen(self, tmp_path):
        db_path = str(tmp_path / "nested" / "state.db")
        store = await SQLiteStateStore.create(db_path)
        await store.set("key", b"value")
        await store.close()

        reopened = await SQLiteStateStore.create(db_path)
        try:
            assert await reopened.get("key") == b"value"
        finally:
            await reopened.close()


class TestBuildStateStore:
    async def test_memory_tier(self):
        config = TrajmemConfig(backend=BackendConfig(tier="memory"))
        assert isinstance(await build_state_store(config), InProcessStateStore)

    async def test_sqlite_tier(self, tmp_path):
        db_path = str(tmp_path / "test.db")
        config = TrajmemConfig(
            backend=BackendConfig(tier="sqlite", sqlite_path=db_path)
        )
        store = await build_state_store(config)
        try:
            assert isinstance(store, SQLiteStateStore)
        finally:
            await store.close()

    async def test_unknown_tier_raises(self):
        config = TrajmemConfig(backend=BackendConfig(tier="redis"))
        with pytest.raises(ConfigError, match="Unknown backend tier"):
            await build_state_store(config)
