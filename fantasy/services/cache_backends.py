"""
Key-value cache backends.

Services depend on the CacheBackend interface only; production wires a
RedisCache, tests and Redis-less deployments use InMemoryCache.
"""

import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, Optional

from fantasy.constants import CacheConstants

logger = logging.getLogger(__name__)


class CacheBackend:
    """Async key-value cache storing JSON-serializable values with a TTL."""

    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def set(self, key: str, value: Any, ttl: int = CacheConstants.DEFAULT_CACHE_TTL) -> None:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError


class InMemoryCache(CacheBackend):
    """
    Process-local TTL cache.

    The clock is injectable so expiry can be tested without sleeping.
    """

    def __init__(self, max_size: int = CacheConstants.DEFAULT_MAX_CACHE_SIZE,
                 clock: Callable[[], float] = time.time):
        self._cache: Dict[str, Any] = {}
        self._cache_expiry: Dict[str, float] = {}
        self._cache_max_size = max_size
        self._cache_lock = asyncio.Lock()
        self._clock = clock

    async def get(self, key: str) -> Optional[Any]:
        async with self._cache_lock:
            expires_at = self._cache_expiry.get(key)
            if expires_at is None:
                return None
            if self._clock() >= expires_at:
                self._cache.pop(key, None)
                self._cache_expiry.pop(key, None)
                return None
            return self._cache[key]

    async def set(self, key: str, value: Any, ttl: int = CacheConstants.DEFAULT_CACHE_TTL) -> None:
        async with self._cache_lock:
            self._cache[key] = value
            self._cache_expiry[key] = self._clock() + ttl
            self._cleanup_locked()

    async def delete(self, key: str) -> None:
        async with self._cache_lock:
            self._cache.pop(key, None)
            self._cache_expiry.pop(key, None)

    def _cleanup_locked(self):
        """Remove expired entries and enforce the size limit. Caller holds the lock."""
        now = self._clock()
        expired_keys = [key for key, expires_at in self._cache_expiry.items() if now >= expires_at]
        for key in expired_keys:
            self._cache.pop(key, None)
            self._cache_expiry.pop(key, None)

        # Evict entries closest to expiry first
        if len(self._cache) > self._cache_max_size:
            sorted_keys = sorted(self._cache_expiry.items(), key=lambda x: x[1])
            for key, _ in sorted_keys[:len(self._cache) - self._cache_max_size]:
                self._cache.pop(key, None)
                self._cache_expiry.pop(key, None)


class RedisCache(CacheBackend):
    """Cache stored in Redis as JSON strings with a native expiry."""

    def __init__(self, client):
        self.client = client

    async def get(self, key: str) -> Optional[Any]:
        raw = await self.client.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            await self.client.delete(key)
            return None

    async def set(self, key: str, value: Any, ttl: int = CacheConstants.DEFAULT_CACHE_TTL) -> None:
        await self.client.set(key, json.dumps(value), ex=ttl)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)
