"""
Unit tests for Key-Value Store module.

Tests InMemoryKVStore expiry, RedisKVStore serialization and the factory.
"""
import pytest
from unittest.mock import AsyncMock


class TestInMemoryKVStore:
    """Tests for InMemoryKVStore class."""

    @pytest.mark.asyncio
    async def test_put_and_get(self, store):
        """Stored values should round-trip as JSON structures."""
        await store.put("key", {"count": 1, "items": ["a"]})
        assert await store.get("key") == {"count": 1, "items": ["a"]}

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        """Missing keys should return None."""
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_expiry(self, store, clock):
        """Keys should disappear once their TTL elapses."""
        await store.put("key", "value", expiration_ttl=60)

        clock.advance(59)
        assert await store.get("key") == "value"

        clock.advance(1)
        assert await store.get("key") is None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_no_ttl_never_expires(self, store, clock):
        """Keys without a TTL should persist."""
        await store.put("key", 42)
        clock.advance(10 ** 6)
        assert await store.get("key") == 42

    @pytest.mark.asyncio
    async def test_overwrite(self, store):
        """Writes should overwrite by key."""
        await store.put("key", 1)
        await store.put("key", 2)
        assert await store.get("key") == 2

    @pytest.mark.asyncio
    async def test_values_are_copied(self, store):
        """Mutating a returned value should not change the stored one."""
        await store.put("key", {"items": []})
        value = await store.get("key")
        value["items"].append("x")
        assert await store.get("key") == {"items": []}

    @pytest.mark.asyncio
    async def test_delete(self, store):
        """Delete should remove keys and ignore missing ones."""
        await store.put("key", 1)
        await store.delete("key")
        await store.delete("missing")
        assert await store.get("key") is None

    @pytest.mark.asyncio
    async def test_purge_expired(self, store, clock):
        """Purge should drop expired keys that are never read again."""
        await store.put("short", 1, expiration_ttl=60)
        await store.put("long", 2, expiration_ttl=3600)
        await store.put("forever", 3)

        clock.advance(60)

        assert await store.purge_expired() == 1
        assert len(store) == 2
        assert await store.get("long") == 2

    @pytest.mark.asyncio
    async def test_purge_reclaims_usage_records(self, store, clock):
        """Usage records should not accumulate once their TTL has passed."""
        from voice_agent.utils import CostMonitor

        monitor = CostMonitor(store, time_func=clock)
        for _ in range(500):
            await monitor.track(endpoint="chat", model="gpt-4o-mini", input_tokens=100, output_tokens=50)
        assert len(store) == 501

        clock.advance(3 * 86400)

        assert await store.purge_expired() == 501
        assert len(store) == 0

    def test_satisfies_protocol(self, store):
        """In-memory store should satisfy the KeyValueStore protocol."""
        from voice_agent.storage import KeyValueStore
        assert isinstance(store, KeyValueStore)


class TestRedisKVStore:
    """Tests for RedisKVStore class."""

    def _make_store(self):
        from voice_agent.storage import RedisKVStore

        client = AsyncMock()
        return RedisKVStore(client=client), client

    @pytest.mark.asyncio
    async def test_put_serializes_with_ttl(self):
        """Values should be written as JSON with native expiry."""
        store, client = self._make_store()
        await store.put("key", {"a": 1}, expiration_ttl=30)
        client.set.assert_awaited_once_with("key", '{"a": 1}', ex=30)

    @pytest.mark.asyncio
    async def test_get_deserializes(self):
        """Stored JSON should be decoded."""
        store, client = self._make_store()
        client.get.return_value = b'{"a": 1}'
        assert await store.get("key") == {"a": 1}

    @pytest.mark.asyncio
    async def test_get_missing(self):
        """Missing keys should return None."""
        store, client = self._make_store()
        client.get.return_value = None
        assert await store.get("key") is None

    @pytest.mark.asyncio
    async def test_delete(self):
        """Delete should be forwarded to Redis."""
        store, client = self._make_store()
        await store.delete("key")
        client.delete.assert_awaited_once_with("key")

    @pytest.mark.asyncio
    async def test_purge_is_left_to_redis(self):
        """Redis expires keys itself, so purge should not touch the client."""
        store, client = self._make_store()
        assert await store.purge_expired() == 0
        client.scan_iter.assert_not_called()

    def test_requires_url_or_client(self):
        """Construction without a URL or client should fail."""
        from voice_agent.storage import RedisKVStore

        with pytest.raises(ValueError):
            RedisKVStore()


class TestCreateKVStore:
    """Tests for create_kv_store factory."""

    def test_memory_backend(self):
        """Memory backend should build an in-memory store."""
        from voice_agent.storage import InMemoryKVStore, create_kv_store

        assert isinstance(create_kv_store("memory"), InMemoryKVStore)

    def test_redis_backend(self):
        """Redis backend should build a Redis store without connecting."""
        from voice_agent.storage import RedisKVStore, create_kv_store

        store = create_kv_store("redis", "redis://localhost:6379")
        assert isinstance(store, RedisKVStore)
        assert store.backend == "redis"

    def test_unknown_backend_raises(self):
        """Unknown backends should raise ValueError."""
        from voice_agent.storage import create_kv_store

        with pytest.raises(ValueError):
            create_kv_store("memcached")
