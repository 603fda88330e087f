"""
Cache backends for the JWKS key set.

The key set cache only needs string values with a TTL, so a backend exposes
get/set plus a get-or-compute helper. Two implementations are provided:

- MemoryCacheBackend: per-process dictionary, entries replaced wholesale
- RedisCacheBackend: shared cache across processes via redis.asyncio

Redis failures are logged as warnings, not errors. Caching is a performance
optimization; a broken cache degrades to fetching from the provider.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Optional

import redis.asyncio as redis

from cognito_guard.core.config import Settings, settings

logger = logging.getLogger(__name__)


class CacheBackend(ABC):
    """Abstract string cache with TTL support."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the cached value, or None on miss or expiry."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int) -> None:
        """Store value under key for ttl seconds, replacing any previous entry."""

    async def remember(
        self,
        key: str,
        ttl: int,
        factory: Callable[[], Awaitable[str]],
    ) -> str:
        """
        Return the cached value for key, computing and storing it on a miss.

        Exceptions raised by factory propagate and nothing is stored, so a
        failed computation is retried on the next call.

        Args:
            key: Cache key
            ttl: Time-to-live in seconds for a freshly computed value
            factory: Coroutine function producing the value on a miss

        Returns:
            Cached or freshly computed value
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await factory()
        await self.set(key, value, ttl)
        return value

    async def close(self) -> None:
        """Release backend resources."""


class MemoryCacheBackend(CacheBackend):
    """
    In-process cache.

    Each entry is an immutable (value, expires_at) tuple and is replaced as a
    whole on set, so a reader never observes a partially updated entry.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if self._clock() >= expires_at:
            # Only drop the entry we looked at; a concurrent set may have replaced it
            if self._entries.get(key) is entry:
                del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        self._entries[key] = (value, self._clock() + ttl)


class RedisCacheBackend(CacheBackend):
    """Redis-backed cache using SETEX for atomic value+TTL writes."""

    def __init__(self, redis_client: redis.Redis, prefix: str = "cognito:"):
        """
        Initialize Redis cache backend.

        Args:
            redis_client: Async Redis client (decode_responses=True)
            prefix: Namespace prepended to every key
        """
        self.redis_client = redis_client
        self.prefix = prefix

    async def get(self, key: str) -> Optional[str]:
        cache_key = f"{self.prefix}{key}"
        try:
            cached = await self.redis_client.get(cache_key)
        except redis.RedisError as e:
            logger.warning(
                "Redis cache read failed",
                extra={"cache_key": cache_key, "error": str(e)},
            )
            return None  # Fail gracefully, fetch from provider

        if isinstance(cached, bytes):
            cached = cached.decode("utf-8")
        return cached

    async def set(self, key: str, value: str, ttl: int) -> None:
        cache_key = f"{self.prefix}{key}"
        try:
            await self.redis_client.setex(cache_key, ttl, value)
        except redis.RedisError as e:
            logger.warning(
                "Redis cache write failed",
                extra={"cache_key": cache_key, "error": str(e)},
            )
            # Continue without caching - not a critical failure

    async def close(self) -> None:
        await self.redis_client.aclose()
        logger.info("redis_connection_closed")


def create_cache_backend(config: Settings = settings) -> CacheBackend:
    """
    Build the cache backend selected by configuration.

    Returns a RedisCacheBackend when REDIS_URL is set, otherwise a
    MemoryCacheBackend. The Redis client connects lazily on first use.
    """
    if not config.REDIS_URL:
        logger.info("REDIS_URL not set, using in-process JWKS cache")
        return MemoryCacheBackend()

    redis_client = redis.from_url(
        config.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
    )
    logger.info(
        f"Redis JWKS cache configured: redis_url={config.REDIS_URL.split('@')[-1]}"  # Hide credentials
    )
    return RedisCacheBackend(redis_client)
