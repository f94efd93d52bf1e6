"""
Key-Value Store module.

Provides the async TTL key-value interface shared by the rate limiter,
cost monitor, response cache and session store, with an in-memory
backend for local development and a Redis backend for deployments.
"""
import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, runtime_checkable

import redis.asyncio as redis

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """
    Protocol for key-value storage backends.

    Values are JSON-serializable structures. Writes overwrite by key;
    there are no conditional writes.
    """

    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if absent or expired."""
        ...

    async def put(self, key: str, value: Any, expiration_ttl: Optional[int] = None) -> None:
        """Store a value, optionally expiring after `expiration_ttl` seconds."""
        ...

    async def delete(self, key: str) -> None:
        """Remove a key. Missing keys are ignored."""
        ...

    async def purge_expired(self) -> int:
        """Drop expired keys, returning how many were removed."""
        ...


class InMemoryKVStore:
    """
    In-process key-value store with per-key expiry.

    Expired keys are dropped on read or by purge_expired().
    """

    backend = "memory"

    def __init__(self, time_func: Callable[[], float] = time.time):
        """
        Initialize in-memory store.

        Args:
            time_func: Clock returning epoch seconds.
        """
        self._time = time_func
        # key -> (serialized value, expires_at or None)
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    async def get(self, key: str) -> Optional[Any]:
        item = self._data.get(key)
        if item is None:
            return None

        raw, expires_at = item
        if expires_at is not None and self._time() >= expires_at:
            del self._data[key]
            return None

        return json.loads(raw)

    async def put(self, key: str, value: Any, expiration_ttl: Optional[int] = None) -> None:
        # Serialize so callers never share mutable state with the store
        raw = json.dumps(value)
        expires_at = self._time() + expiration_ttl if expiration_ttl else None
        self._data[key] = (raw, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def purge_expired(self) -> int:
        now = self._time()
        expired = [
            key for key, (_, expires_at) in self._data.items()
            if expires_at is not None and now >= expires_at
        ]
        for key in expired:
            del self._data[key]

        if expired:
            logger.info(f"Purged {len(expired)} expired keys")
        return len(expired)

    async def close(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class RedisKVStore:
    """
    Redis-backed key-value store.

    Values are stored as JSON strings; TTLs use native Redis expiry.
    """

    backend = "redis"

    def __init__(self, redis_url: Optional[str] = None, client: Optional[redis.Redis] = None):
        """
        Initialize Redis store.

        Args:
            redis_url: Redis connection URL.
            client: Optional pre-built async client (takes precedence).
        """
        if client is None and not redis_url:
            raise ValueError("Either redis_url or client is required")

        self._client = client or redis.from_url(redis_url, decode_responses=True)
        logger.info("RedisKVStore initialized")

    async def get(self, key: str) -> Optional[Any]:
        raw = await self._client.get(key)
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode()
        return json.loads(raw)

    async def put(self, key: str, value: Any, expiration_ttl: Optional[int] = None) -> None:
        await self._client.set(key, json.dumps(value), ex=expiration_ttl)

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def purge_expired(self) -> int:
        # Redis evicts expired keys itself
        return 0

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()


# Factory function
def create_kv_store(
    backend: str = "memory",
    redis_url: Optional[str] = None
) -> KeyValueStore:
    """Create a key-value store for the configured backend."""
    if backend == "redis":
        return RedisKVStore(redis_url=redis_url)
    if backend == "memory":
        logger.info("Using in-memory key-value store")
        return InMemoryKVStore()
    raise ValueError(f"Unknown KV backend: {backend!r}")
