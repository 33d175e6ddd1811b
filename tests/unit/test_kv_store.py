"""Unit tests for key-value stores."""

import fnmatch
import json
from typing import Dict, Optional

import pytest

from sync_engine.storage.kv_store import InMemoryKeyValueStore
from sync_engine.storage.redis import RedisKeyValueStore


class StubRedis:
    """Minimal async stand-in for ``redis.asyncio.Redis``."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.expiry: Dict[str, Optional[int]] = {}
        self.closed = False

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex

    async def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0

    async def scan_iter(self, match="*"):
        for key in list(self.data):
            if fnmatch.fnmatch(key, match):
                yield key

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
async def test_in_memory_put_get_delete(store):
    await store.put("a", {"v": 1})
    assert await store.get("a") == {"v": 1}
    assert await store.delete("a") == 1
    assert await store.delete("a") == 0
    assert await store.get("a") is None


@pytest.mark.asyncio
async def test_in_memory_ttl(store, clock):
    await store.put("a", {"v": 1}, ttl=10)
    await store.put("b", {"v": 2})
    clock.advance(10)
    assert await store.get("a") is None
    assert await store.get("b") == {"v": 2}
    assert await store.keys() == ["b"]


@pytest.mark.asyncio
async def test_in_memory_keys_pattern():
    store = InMemoryKeyValueStore()
    await store.put("sync:entry:1", {})
    await store.put("snapshot:view", {})
    assert await store.keys("sync:*") == ["sync:entry:1"]
    assert len(store) == 2


@pytest.mark.asyncio
async def test_redis_store_serialises_json_and_rounds_ttl():
    client = StubRedis()
    store = RedisKeyValueStore("redis://localhost:6379/0", client=client)

    await store.put("k", {"v": [1, 2]}, ttl=1.2)

    assert json.loads(client.data["k"]) == {"v": [1, 2]}
    assert client.expiry["k"] == 2
    assert await store.get("k") == {"v": [1, 2]}
    assert await store.keys("k*") == ["k"]
    assert await store.delete("k") == 1


@pytest.mark.asyncio
async def test_redis_store_ignores_undecodable_values():
    client = StubRedis()
    client.data["k"] = "{not json"
    store = RedisKeyValueStore("redis://localhost:6379/0", client=client)
    assert await store.get("k") is None


@pytest.mark.asyncio
async def test_redis_store_close():
    client = StubRedis()
    store = RedisKeyValueStore("redis://localhost:6379/0", client=client)
    await store.close()
    assert client.closed
    assert not store.is_connected
