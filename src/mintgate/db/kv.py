"""Key-value storage backends for the mint ledger and event catalogue."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from redis import asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class KeyValueStoreError(RuntimeError):
    """Raised when the backing store cannot complete an operation."""


@runtime_checkable
class KeyValueStore(Protocol):
    """Async string key-value interface the ledger is written against.

    The interface has no conditional writes, so callers cannot make
    check-then-set sequences atomic.
    """

    async def get(self, key: str) -> str | None:
        """Return the stored value or None."""

    async def set(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        """Store a value, optionally expiring after ``ttl_seconds``."""

    async def delete(self, key: str) -> None:
        """Remove a key; missing keys are ignored."""

    async def close(self) -> None:
        """Release backend resources."""


class RedisKeyValueStore:
    """Redis adapter built on ``redis.asyncio``."""

    def __init__(self, client: aioredis.Redis) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> RedisKeyValueStore:
        return cls(aioredis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> str | None:
        try:
            value = await self._redis.get(key)
        except RedisError as exc:
            raise KeyValueStoreError(f"redis GET failed: {exc}") from exc
        if value is None:
            return None
        return value if isinstance(value, str) else value.decode()

    async def set(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        try:
            await self._redis.set(key, value, ex=ttl_seconds)
        except RedisError as exc:
            raise KeyValueStoreError(f"redis SET failed: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as exc:
            raise KeyValueStoreError(f"redis DEL failed: {exc}") from exc

    async def close(self) -> None:
        await self._redis.aclose()


class MemoryKeyValueStore:
    """In-process store with TTL support, for local development and tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            self._data.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def close(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        """Return the live keys (expired entries excluded)."""
        now = self._clock()
        return [
            key
            for key, (_, expires_at) in self._data.items()
            if expires_at is None or expires_at > now
        ]


def create_kv_store(backend: str, redis_url: str) -> KeyValueStore:
    """Build the configured backend."""
    if backend == "redis":
        logger.info("Using Redis key-value store at %s", redis_url.rsplit("@", 1)[-1])
        return RedisKeyValueStore.from_url(redis_url)
    if backend == "memory":
        logger.warning("Using in-process key-value store; data is lost on restart")
        return MemoryKeyValueStore()
    raise ValueError(f"Unknown key-value backend: {backend}")
