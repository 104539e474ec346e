"""
Ephemeral key/value cache with per-key TTL.

The cache only holds disposable projections of durable data (credential
records and refresh markers). Nothing stored here is authoritative:
entries may be evicted or missing at any time.

Contract:
- get(key) -> value | None
- set(key, value, ttl_seconds)   (ttl_seconds=None means no expiry)
- has(key) -> bool
- delete(key)

has() followed by set() is NOT atomic across callers.

Backend failures are logged and degrade to a cache miss. They are never
raised to callers.

Configuration:
- REDIS_URL: when set, build_cache() returns a Redis-backed cache;
  otherwise a process-local in-memory cache is used.
"""

from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict, Optional, Protocol, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

# ValueError: malformed REDIS_URL, raised when the client is first created
_BACKEND_ERRORS = (RedisError, ValueError)


class EphemeralCache(Protocol):
    """Async key/value cache with per-key TTL."""

    async def get(self, key: str) -> Optional[Any]:
        ...

    async def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ...

    async def has(self, key: str) -> bool:
        ...

    async def delete(self, key: str) -> None:
        ...


class InMemoryCache:
    """
    Process-local cache.

    Survives between invocations handled by the same warm process. Expired
    entries are evicted lazily on read.
    """

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, Optional[float]]] = {}

    def _live_entry(self, key: str) -> Optional[Tuple[Any, Optional[float]]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return entry

    async def get(self, key: str) -> Optional[Any]:
        entry = self._live_entry(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        expires_at = None if ttl_seconds is None else self._clock() + ttl_seconds
        self._entries[key] = (value, expires_at)

    async def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        """Cache size and live keys (for debugging)."""
        for key in list(self._entries):
            self._live_entry(key)
        return {"size": len(self._entries), "keys": sorted(self._entries)}


class RedisCache:
    """
    Redis-backed cache shared across processes.

    Values are stored as JSON. Callers store plain JSON-compatible values
    (strings, numbers, booleans, dicts).
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        client: Optional[aioredis.Redis] = None,
    ) -> None:
        self.redis_url = redis_url
        self._redis = client

    def _get_redis(self) -> aioredis.Redis:
        """
        Get or create the Redis connection.

        Created lazily so the module can be imported before Redis is
        reachable.
        """
        if self._redis is None:
            self._redis = aioredis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
        return self._redis

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self._get_redis().get(key)
        except _BACKEND_ERRORS as e:
            logger.warning(
                "Cache read failed, treating as miss",
                extra={"cache_key": key, "error": str(e)}
            )
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry", extra={"cache_key": key})
            return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        # Redis expiries are whole seconds; never round a short TTL to zero
        expiry = None if ttl_seconds is None else max(1, int(ttl_seconds))
        payload = json.dumps(value)
        try:
            await self._get_redis().set(key, payload, ex=expiry)
        except _BACKEND_ERRORS as e:
            logger.warning(
                "Cache write failed",
                extra={"cache_key": key, "error": str(e)}
            )

    async def has(self, key: str) -> bool:
        try:
            return bool(await self._get_redis().exists(key))
        except _BACKEND_ERRORS as e:
            logger.warning(
                "Cache lookup failed, treating as miss",
                extra={"cache_key": key, "error": str(e)}
            )
            return False

    async def delete(self, key: str) -> None:
        try:
            await self._get_redis().delete(key)
        except _BACKEND_ERRORS as e:
            logger.warning(
                "Cache delete failed",
                extra={"cache_key": key, "error": str(e)}
            )

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()


def build_cache(redis_url: Optional[str] = None) -> EphemeralCache:
    """Redis-backed cache when REDIS_URL is configured, in-memory otherwise."""
    redis_url = redis_url or os.getenv("REDIS_URL")
    if redis_url:
        cache = RedisCache(redis_url=redis_url)
        try:
            # from_url does not connect; it only parses the URL
            cache._get_redis()
        except ValueError as e:
            logger.warning(
                "Invalid REDIS_URL, using in-memory credential cache",
                extra={"error": str(e)}
            )
            return InMemoryCache()
        return cache
    logger.info("REDIS_URL not configured, using in-memory credential cache")
    return InMemoryCache()
