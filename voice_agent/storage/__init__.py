"""
Storage module.

Async TTL key-value backends shared by every request-guard component.
"""

from .kv_store import (
    KeyValueStore,
    InMemoryKVStore,
    RedisKVStore,
    create_kv_store
)

__all__ = [
    "KeyValueStore",
    "InMemoryKVStore",
    "RedisKVStore",
    "create_kv_store",
]
