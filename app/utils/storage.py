"""Key/value storage backends shared by the content cache, the generation lock
and the report view ledgers.

Values are opaque strings (callers serialise JSON themselves).  Two backends:

- ``InMemoryStore``: process-local dict guarded by an ``asyncio.Lock``.
- ``RedisStore``: ``redis.asyncio`` client; ``SET NX`` for set-if-absent
  and ``WATCH``/``MULTI`` for compare-and-set.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Optional

import structlog
from redis.exceptions import WatchError

from app.config import get_settings

logger = structlog.get_logger(__name__)


class KeyValueStore:
    """Async key/value interface."""

    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        raise NotImplementedError

    async def delete(self, *keys: str) -> int:
        raise NotImplementedError

    async def keys(self, prefix: str) -> list[str]:
        raise NotImplementedError

    async def set_if_absent(
        self, key: str, value: str, ttl_seconds: Optional[float] = None
    ) -> bool:
        """Atomically store ``value`` only when ``key`` is unset."""
        raise NotImplementedError

    async def compare_and_set(
        self, key: str, expected: Optional[str], value: str
    ) -> bool:
        """Atomically replace ``key`` only when it currently holds ``expected``
        (``None`` meaning absent)."""
        raise NotImplementedError

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        """Atomically delete ``key`` only when it currently holds ``expected``."""
        raise NotImplementedError

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class InMemoryStore(KeyValueStore):
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._data: dict[str, tuple[str, Optional[float]]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    def _live(self, key: str) -> Optional[str]:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def _expiry(self, ttl_seconds: Optional[float]) -> Optional[float]:
        return None if ttl_seconds is None else self._clock() + ttl_seconds

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._live(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        async with self._lock:
            self._data[key] = (value, self._expiry(ttl_seconds))

    async def delete(self, *keys: str) -> int:
        async with self._lock:
            removed = 0
            for key in keys:
                if self._data.pop(key, None) is not None:
                    removed += 1
            return removed

    async def keys(self, prefix: str) -> list[str]:
        async with self._lock:
            return [k for k in list(self._data) if k.startswith(prefix) and self._live(k) is not None]

    async def set_if_absent(
        self, key: str, value: str, ttl_seconds: Optional[float] = None
    ) -> bool:
        async with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = (value, self._expiry(ttl_seconds))
            return True

    async def compare_and_set(
        self, key: str, expected: Optional[str], value: str
    ) -> bool:
        async with self._lock:
            if self._live(key) != expected:
                return False
            self._data[key] = (value, None)
            return True

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        async with self._lock:
            if self._live(key) != expected:
                return False
            del self._data[key]
            return True


class RedisStore(KeyValueStore):
    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisStore":
        import redis.asyncio as aioredis

        client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
        )
        return cls(client)

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        if ttl_seconds is None:
            await self._client.set(key, value)
        else:
            await self._client.set(key, value, px=int(ttl_seconds * 1000))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._client.delete(*keys))

    async def keys(self, prefix: str) -> list[str]:
        return [key async for key in self._client.scan_iter(match=f"{prefix}*")]

    async def set_if_absent(
        self, key: str, value: str, ttl_seconds: Optional[float] = None
    ) -> bool:
        px = None if ttl_seconds is None else int(ttl_seconds * 1000)
        return bool(await self._client.set(key, value, nx=True, px=px))

    async def compare_and_set(
        self, key: str, expected: Optional[str], value: str
    ) -> bool:
        async with self._client.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                current = await pipe.get(key)
                if current != expected:
                    await pipe.unwatch()
                    return False
                pipe.multi()
                pipe.set(key, value)
                await pipe.execute()
                return True
            except WatchError:
                logger.info("store_cas_conflict", key=key)
                return False

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        async with self._client.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                if await pipe.get(key) != expected:
                    await pipe.unwatch()
                    return False
                pipe.multi()
                pipe.delete(key)
                await pipe.execute()
                return True
            except WatchError:
                logger.info("store_cad_conflict", key=key)
                return False

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()


def build_store() -> KeyValueStore:
    """Return the store selected by configuration."""
    settings = get_settings()
    if settings.uses_redis:
        logger.info("store_backend_selected", backend="redis")
        return RedisStore.from_url(settings.REDIS_URL)
    logger.info("store_backend_selected", backend="memory")
    return InMemoryStore()


_store: Optional[KeyValueStore] = None


def get_store() -> KeyValueStore:
    """Process-wide store; FastAPI dependency for the API routers."""
    global _store
    if _store is None:
        _store = build_store()
    return _store


async def close_store() -> None:
    global _store
    if _store is not None:
        await _store.close()
        _store = None
        logger.info("store_closed")
