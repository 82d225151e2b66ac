"""
Cache Stores

Key-value backends behind the redirect cache. Both stores speak the same
small contract: ``get(key)`` returns a JSON-compatible dict or None,
``put(key, value, ttl)`` stores it for ``ttl`` seconds. Backend failures
are raised as CacheStoreError; deciding what a failure means is left to
the caller.
"""

import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, Protocol

import redis.asyncio as redis

from langredirect.exceptions import CacheStoreError

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    @property
    def connected(self) -> bool: ...

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def get(self, key: str) -> dict[str, Any] | None: ...

    async def put(self, key: str, value: dict[str, Any], ttl: int) -> None: ...


class MemoryCacheStore:
    """
    In-process LRU cache with per-entry expiry.

    Used when no Redis URL is configured. Entries are evicted least recently
    used first once ``max_size`` is exceeded.
    """

    def __init__(self, max_size: int = 10_000, clock: Callable[[], float] = time.monotonic):
        self._cache: OrderedDict[str, tuple[str, float]] = OrderedDict()
        self._max_size = max_size
        self._clock = clock

    @property
    def connected(self) -> bool:
        return True

    async def connect(self) -> None:
        return None

    async def disconnect(self) -> None:
        self._cache.clear()

    async def get(self, key: str) -> dict[str, Any] | None:
        """Get value and move to end (most recently used)."""
        entry = self._cache.get(key)
        if entry is None:
            return None
        serialized, expiry = entry
        if self._clock() >= expiry:
            del self._cache[key]
            return None
        self._cache.move_to_end(key)
        return json.loads(serialized)

    async def put(self, key: str, value: dict[str, Any], ttl: int) -> None:
        # Stored serialized so callers never share a mutable dict
        serialized = json.dumps(value)
        if key in self._cache:
            self._cache.move_to_end(key)
        self._cache[key] = (serialized, self._clock() + ttl)

        while len(self._cache) > self._max_size:
            self._cache.popitem(last=False)

    def __len__(self) -> int:
        return len(self._cache)


class RedisCacheStore:
    """
    Redis-backed store shared by every redirector process.

    A failed connect disables the store; the next operation after a
    30-second cooldown retries the connection.
    """

    RETRY_COOLDOWN = 30

    def __init__(self, url: str, client: redis.Redis | None = None):
        self._url = url
        self._redis: redis.Redis | None = client
        self._pool: redis.ConnectionPool | None = None
        self._enabled = True
        self._last_connect_attempt: float = 0

    @property
    def connected(self) -> bool:
        return self._enabled and self._redis is not None

    async def connect(self) -> None:
        """Establish the connection pool and verify it with PING."""
        if self._redis is not None:
            return

        self._last_connect_attempt = time.time()
        try:
            self._pool = redis.ConnectionPool.from_url(self._url, decode_responses=True)
            self._redis = redis.Redis(connection_pool=self._pool)
            await self._redis.ping()
            self._enabled = True
            logger.info("Cache: Successfully connected to Redis")
        except Exception as e:
            logger.warning(f"Cache: Failed to connect to Redis: {e}. Caching disabled.")
            self._redis = None
            self._pool = None
            self._enabled = False

    async def disconnect(self) -> None:
        """Close Redis connection"""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
        if self._pool:
            await self._pool.aclose()
            self._pool = None
        logger.info("Cache: Disconnected from Redis")

    async def _ensure_connected(self) -> bool:
        if not self._enabled and time.time() - self._last_connect_attempt >= self.RETRY_COOLDOWN:
            logger.info("Cache: retrying Redis connection after cooldown...")
            self._enabled = True
        if self._enabled and self._redis is None:
            await self.connect()
        return self.connected

    async def get(self, key: str) -> dict[str, Any] | None:
        if not await self._ensure_connected():
            return None

        try:
            data = await self._redis.get(key)
        except Exception as e:
            raise CacheStoreError("get", key, str(e)) from e

        if data is None:
            return None
        try:
            return json.loads(data)
        except ValueError as e:
            raise CacheStoreError("get", key, f"undecodable entry: {e}") from e

    async def put(self, key: str, value: dict[str, Any], ttl: int) -> None:
        if not await self._ensure_connected():
            return

        try:
            await self._redis.setex(key, ttl, json.dumps(value))
        except Exception as e:
            raise CacheStoreError("put", key, str(e)) from e
        logger.debug(f"Cache SET: {key} (TTL: {ttl}s)")


def create_cache_store(redis_url: str | None, max_entries: int) -> CacheStore:
    """Redis when a URL is configured, otherwise the in-process store."""
    if redis_url:
        return RedisCacheStore(redis_url)
    return MemoryCacheStore(max_size=max_entries)
