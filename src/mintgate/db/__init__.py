"""Key-value storage configuration and utilities."""

from .kv import (
    KeyValueStore,
    KeyValueStoreError,
    MemoryKeyValueStore,
    RedisKeyValueStore,
    create_kv_store,
)

__all__ = [
    "KeyValueStore",
    "KeyValueStoreError",
    "MemoryKeyValueStore",
    "RedisKeyValueStore",
    "create_kv_store",
]
