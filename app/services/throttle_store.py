"""Expiring integer stores backing the login throttle.

Every backend exposes the same small contract::

    get(key) -> int | None
    set_if_absent(key, value, ttl) -> bool
    set(key, value, ttl) -> None
    incr_with_ttl(key, ttl) -> int

Entries disappear on their own once their TTL runs out; nothing here deletes
keys explicitly.
"""
from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import structlog
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from app.core.config import Settings

logger = structlog.get_logger(__name__)


class StoreUnavailableError(Exception):
    pass


class ThrottleStore(Protocol):
    async def get(self, key: str) -> int | None: ...

    async def set_if_absent(self, key: str, value: int, ttl: int) -> bool: ...

    async def set(self, key: str, value: int, ttl: int) -> None: ...

    async def incr_with_ttl(self, key: str, ttl: int) -> int: ...


@dataclass
class _Entry:
    value: int
    expires_at: float


class MemoryThrottleStore:
    """Process-local store. Safe under a single event loop only.

    Expired entries are dropped when read, and swept in bulk at most once per
    ``purge_interval`` seconds on write.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        purge_interval: float = 60.0,
    ) -> None:
        self._clock = clock
        self._purge_interval = purge_interval
        self._last_purge = clock()
        self._entries: dict[str, _Entry] = {}

    def _live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry

    def _purge(self) -> None:
        now = self._clock()
        self._last_purge = now
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]

    async def get(self, key: str) -> int | None:
        entry = self._live(key)
        return entry.value if entry else None

    async def set_if_absent(self, key: str, value: int, ttl: int) -> bool:
        if self._live(key) is not None:
            return False
        self._entries[key] = _Entry(value, self._clock() + ttl)
        return True

    async def set(self, key: str, value: int, ttl: int) -> None:
        if self._clock() - self._last_purge >= self._purge_interval:
            self._purge()
        self._entries[key] = _Entry(value, self._clock() + ttl)

    async def incr_with_ttl(self, key: str, ttl: int) -> int:
        entry = self._live(key)
        value = (entry.value if entry else 0) + 1
        self._entries[key] = _Entry(value, self._clock() + ttl)
        return value

    def __len__(self) -> int:
        self._purge()
        return len(self._entries)


class RedisThrottleStore:
    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, timeout: float) -> RedisThrottleStore:
        client = aioredis.Redis.from_url(
            url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            decode_responses=True,
        )
        return cls(client)

    async def get(self, key: str) -> int | None:
        try:
            raw = await self._client.get(key)
        except RedisError as exc:
            raise StoreUnavailableError(f"Throttle store read failed: {exc}") from exc
        if raw is None:
            return None
        return int(raw)

    async def set_if_absent(self, key: str, value: int, ttl: int) -> bool:
        try:
            created = await self._client.set(key, value, ex=ttl, nx=True)
        except RedisError as exc:
            raise StoreUnavailableError(f"Throttle store write failed: {exc}") from exc
        return bool(created)

    async def set(self, key: str, value: int, ttl: int) -> None:
        try:
            await self._client.set(key, value, ex=ttl)
        except RedisError as exc:
            raise StoreUnavailableError(f"Throttle store write failed: {exc}") from exc

    async def incr_with_ttl(self, key: str, ttl: int) -> int:
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, ttl)
                value, _ = await pipe.execute()
        except RedisError as exc:
            raise StoreUnavailableError(f"Throttle store write failed: {exc}") from exc
        return int(value)

    async def close(self) -> None:
        await self._client.aclose()


def build_throttle_store(settings: Settings) -> MemoryThrottleStore | RedisThrottleStore:
    backend = settings.LOGIN_THROTTLE_BACKEND.lower()
    if backend == "redis":
        logger.info("throttle_store_selected", backend="redis")
        return RedisThrottleStore.from_url(settings.REDIS_URL, settings.REDIS_TIMEOUT_SEC)
    if backend == "memory":
        logger.info("throttle_store_selected", backend="memory")
        return MemoryThrottleStore()
    raise ValueError(f"Unknown LOGIN_THROTTLE_BACKEND: {settings.LOGIN_THROTTLE_BACKEND}")
