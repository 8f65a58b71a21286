"""
Tests for pagequery/cache.py

Tests cover:
- MemoryCacheStore miss / hit / isolation of stored values
- FileCacheStore JSON documents, namespacing and atomic writes
- Unreadable and mismatched entries
"""

import asyncio
import json
import os
from unittest.mock import patch

import pytest

from pagequery.cache import CacheStore, FileCacheStore, MemoryCacheStore
from pagequery.errors import CacheError, CacheMiss


class TestCacheStoreContract:
    """The abstract store interface."""

    def test_store_without_clear_cannot_be_created(self):
        class GetPutOnly(CacheStore):
            async def get(self, key):
                return None

            async def put(self, key, value):
                pass

        with pytest.raises(TypeError):
            GetPutOnly()

    def test_concrete_stores_implement_clear(self, temp_dir):
        assert isinstance(MemoryCacheStore(), CacheStore)
        assert isinstance(FileCacheStore(cache_dir=str(temp_dir)), CacheStore)


class TestMemoryCacheStore:
    """Tests for the in-process store."""

    @pytest.mark.asyncio
    async def test_miss_raises(self):
        store = MemoryCacheStore()
        with pytest.raises(CacheMiss) as exc_info:
            await store.get("/genes/X")
        assert exc_info.value.key == "/genes/X"

    @pytest.mark.asyncio
    async def test_put_then_get(self):
        store = MemoryCacheStore()
        await store.put("/genes/X", {"symbol": "BRCA1"})

        assert await store.get("/genes/X") == {"symbol": "BRCA1"}
        assert "/genes/X" in store
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_stored_value_isolated_from_callers(self):
        store = MemoryCacheStore()
        value = [{"id": 1}]
        await store.put("/x", value)
        value.append({"id": 2})

        fetched = await store.get("/x")
        fetched[0]["id"] = 99

        assert await store.get("/x") == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_keys_are_exact_request_ids(self):
        store = MemoryCacheStore()
        await store.put("/assoc?query_mode=fast", [])
        await store.put("/assoc?query_mode=slow", [1])

        assert sorted(await store.keys()) == ["/assoc?query_mode=fast", "/assoc?query_mode=slow"]
        with pytest.raises(CacheMiss):
            await store.get("/assoc")

    @pytest.mark.asyncio
    async def test_clear(self):
        store = MemoryCacheStore()
        await store.put("/x", 1)
        await store.clear()
        assert len(store) == 0


class TestFileCacheStore:
    """Tests for the persistent JSON document store."""

    @pytest.fixture
    def store(self, temp_dir):
        return FileCacheStore(cache_dir=str(temp_dir), db_name="test-db")

    @pytest.mark.asyncio
    async def test_miss_raises(self, store):
        with pytest.raises(CacheMiss):
            await store.get("/genes/X")

    @pytest.mark.asyncio
    async def test_put_then_get(self, store):
        await store.put("/genes/X", {"symbol": "BRCA1", "ids": [1, 2]})
        assert await store.get("/genes/X") == {"symbol": "BRCA1", "ids": [1, 2]}

    @pytest.mark.asyncio
    async def test_document_layout(self, store, temp_dir):
        await store.put("/genes/X", [1, 2])

        path = store.path_for("/genes/X")
        assert path.parent == temp_dir / "test-db"
        document = json.loads(path.read_text())
        assert document["_id"] == "/genes/X"
        assert document["data"] == [1, 2]
        assert isinstance(document["stored_at"], float)

    @pytest.mark.asyncio
    async def test_overwrite_replaces_value(self, store):
        await store.put("/x", [1])
        await store.put("/x", [2])
        assert await store.get("/x") == [2]

    @pytest.mark.asyncio
    async def test_no_temp_file_left_behind(self, store):
        await store.put("/x", {"a": 1})
        assert list(store.root.glob("*.tmp")) == []

    @pytest.mark.asyncio
    async def test_concurrent_puts_of_same_key(self, store):
        """Writers racing on one key each use their own temp file."""
        await asyncio.gather(*(store.put("/assoc?query_mode=fast", [i]) for i in range(20)))

        value = await store.get("/assoc?query_mode=fast")
        assert len(value) == 1 and value[0] in range(20)
        assert list(store.root.glob("*.tmp")) == []

    @pytest.mark.asyncio
    async def test_temp_file_named_per_writer(self, store):
        replaced = []
        real_replace = os.replace

        def record_replace(src, dst):
            replaced.append(src)
            real_replace(src, dst)

        with patch("pagequery.cache.os.replace", side_effect=record_replace):
            await store.put("/x", [1])

        temp_path = replaced[0]
        digest = store.path_for("/x").stem
        assert temp_path.parent == store.root
        assert temp_path.name.startswith(f"{digest}.{os.getpid()}.")
        assert temp_path.suffix == ".tmp"
        assert await store.get("/x") == [1]

    @pytest.mark.asyncio
    async def test_databases_are_isolated(self, temp_dir):
        first = FileCacheStore(cache_dir=str(temp_dir), db_name="app-a")
        second = FileCacheStore(cache_dir=str(temp_dir), db_name="app-b")
        await first.put("/genes/X", "from-a")

        with pytest.raises(CacheMiss):
            await second.get("/genes/X")

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, temp_dir):
        await FileCacheStore(cache_dir=str(temp_dir)).put("/x", [1, 2, 3])
        assert await FileCacheStore(cache_dir=str(temp_dir)).get("/x") == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_corrupt_entry_raises_cache_error(self, store):
        await store.put("/x", [1])
        store.path_for("/x").write_text("{not json")

        with pytest.raises(CacheError) as exc_info:
            await store.get("/x")
        assert not isinstance(exc_info.value, CacheMiss)

    @pytest.mark.asyncio
    async def test_mismatched_id_is_a_miss(self, store):
        store.root.mkdir(parents=True)
        store.path_for("/x").write_text(json.dumps({"_id": "/other", "data": 1}))

        with pytest.raises(CacheMiss):
            await store.get("/x")

    @pytest.mark.asyncio
    async def test_unserializable_value_raises(self, store):
        with pytest.raises(CacheError, match="not JSON serializable"):
            await store.put("/x", {"when": object()})
        assert not store.path_for("/x").exists()

    @pytest.mark.asyncio
    async def test_write_failure_cleans_up(self, store):
        with patch("pagequery.cache.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(CacheError, match="disk full"):
                await store.put("/x", [1])

        assert list(store.root.glob("*.tmp")) == []
        assert not store.path_for("/x").exists()

    @pytest.mark.asyncio
    async def test_keys_and_clear(self, store):
        await store.put("/a", 1)
        await store.put("/b?query_mode=fast", [])

        assert sorted(await store.keys()) == ["/a", "/b?query_mode=fast"]

        await store.clear()
        assert await store.keys() == []
        with pytest.raises(CacheMiss):
            await store.get("/a")

    @pytest.mark.asyncio
    async def test_keys_on_empty_store(self, store):
        assert await store.keys() == []
        await store.clear()
