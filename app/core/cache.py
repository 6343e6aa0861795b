"""Result cache for computed analytics responses.

The cache is an acceleration layer only: a miss, an expired entry or a
failing backend all fall through to direct computation. Invalidation is
coarse - any write to records or rollups drops every cached entry.

Backends:
- ``memory``: per-process TTL map (default, single worker).
- ``redis``: shared cache for multi-worker deployments, keys namespaced.
- ``none``: disables caching.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from redis.asyncio import Redis
from starlette.requests import Request

from app.core.config import Settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# Upper bound for a single cache round-trip before it is treated as a miss
CACHE_OP_TIMEOUT_SECONDS = 1.0


@runtime_checkable
class ResultCache(Protocol):
    """Protocol for result cache backends."""

    async def get(self, key: str) -> Any | None:
        """Return the cached value or None."""
        ...

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store a JSON-serializable value for ttl seconds."""
        ...

    async def invalidate_all(self) -> int:
        """Drop every entry; return the number removed."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...


class InMemoryResultCache:
    """Per-process TTL cache.

    Values are stored JSON-encoded so callers never share mutable objects
    across requests.
    """

    def __init__(
        self,
        default_ttl: int = 600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, str]] = {}

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, payload = entry
        if expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return json.loads(payload)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        now = self._clock()
        self._purge_expired(now)
        effective_ttl = ttl or self.default_ttl
        self._entries[key] = (now + effective_ttl, json.dumps(value, default=str))

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    async def invalidate_all(self) -> int:
        removed = len(self._entries)
        self._entries.clear()
        return removed

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisResultCache:
    """Redis-backed cache with namespaced keys.

    Example:
        cache = RedisResultCache.from_url("redis://localhost:6379/0")
        await cache.set("dashboard:acct-1:monthly:6", payload, ttl=600)
    """

    def __init__(self, client: Redis, namespace: str = "analytics", default_ttl: int = 600) -> None:
        self._client = client
        self.namespace = namespace
        self.default_ttl = default_ttl

    @classmethod
    def from_url(cls, url: str, namespace: str = "analytics", default_ttl: int = 600) -> RedisResultCache:
        """Build a cache on a lazily-connecting client."""
        client = Redis.from_url(url, decode_responses=True, socket_timeout=CACHE_OP_TIMEOUT_SECONDS)
        return cls(client, namespace=namespace, default_ttl=default_ttl)

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Any | None:
        payload = await self._client.get(self._key(key))
        if payload is None:
            return None
        return json.loads(payload)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        await self._client.setex(
            self._key(key),
            ttl or self.default_ttl,
            json.dumps(value, default=str),
        )

    async def invalidate_all(self) -> int:
        keys = [key async for key in self._client.scan_iter(match=f"{self.namespace}:*", count=500)]
        if not keys:
            return 0
        return int(await self._client.delete(*keys))

    async def close(self) -> None:
        await self._client.aclose()


class NullResultCache:
    """Cache that stores nothing."""

    async def get(self, key: str) -> Any | None:
        return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        return None

    async def invalidate_all(self) -> int:
        return 0

    async def close(self) -> None:
        return None


def build_result_cache(settings: Settings) -> ResultCache:
    """Create the cache backend selected in settings.

    Args:
        settings: Application settings.

    Returns:
        Cache instance owned by the caller (close it on shutdown).
    """
    backend = settings.analytics_cache_backend
    ttl = settings.analytics_cache_ttl_seconds

    if backend == "redis":
        cache: ResultCache = RedisResultCache.from_url(
            settings.redis_url,
            namespace=settings.analytics_cache_namespace,
            default_ttl=ttl,
        )
    elif backend == "memory":
        cache = InMemoryResultCache(default_ttl=ttl)
    else:
        cache = NullResultCache()

    logger.info("cache.backend_configured", backend=backend, ttl_seconds=ttl)
    return cache


def get_result_cache(request: Request) -> ResultCache:
    """FastAPI dependency returning the application's cache instance."""
    cache: ResultCache = request.app.state.result_cache
    return cache


# =============================================================================
# Best-effort access
# =============================================================================


async def cache_get(cache: ResultCache, key: str) -> Any | None:
    """Read from cache, treating any backend failure as a miss."""
    try:
        async with asyncio.timeout(CACHE_OP_TIMEOUT_SECONDS):
            return await cache.get(key)
    except Exception as e:
        logger.warning("cache.get_failed", key=key, error=str(e), error_type=type(e).__name__)
        return None


async def cache_set(cache: ResultCache, key: str, value: Any, ttl: int | None = None) -> bool:
    """Write to cache; return False instead of raising on failure."""
    try:
        async with asyncio.timeout(CACHE_OP_TIMEOUT_SECONDS):
            await cache.set(key, value, ttl)
        return True
    except Exception as e:
        logger.warning("cache.set_failed", key=key, error=str(e), error_type=type(e).__name__)
        return False


async def cache_invalidate_all(cache: ResultCache) -> int:
    """Drop all entries after a write; failures are logged, never raised."""
    try:
        async with asyncio.timeout(CACHE_OP_TIMEOUT_SECONDS):
            removed = await cache.invalidate_all()
    except Exception as e:
        logger.warning("cache.invalidate_failed", error=str(e), error_type=type(e).__name__)
        return 0
    logger.debug("cache.invalidated", removed=removed)
    return removed
