"""Tests for result cache backends and best-effort helpers."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.cache import (
    InMemoryResultCache,
    NullResultCache,
    RedisResultCache,
    ResultCache,
    build_result_cache,
    cache_get,
    cache_invalidate_all,
    cache_set,
)
from app.core.config import Settings


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class BrokenCache:
    """Backend whose every call fails."""

    async def get(self, key):
        raise ConnectionError("cache down")

    async def set(self, key, value, ttl=None):
        raise ConnectionError("cache down")

    async def invalidate_all(self):
        raise ConnectionError("cache down")

    async def close(self):
        return None


class HangingCache(BrokenCache):
    async def get(self, key):
        await asyncio.sleep(60)


# =============================================================================
# In-memory backend
# =============================================================================


class TestInMemoryResultCache:
    async def test_set_then_get(self):
        cache = InMemoryResultCache()
        await cache.set("k", {"total": 1.5})

        assert await cache.get("k") == {"total": 1.5}

    async def test_miss_returns_none(self):
        assert await InMemoryResultCache().get("absent") is None

    async def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        cache = InMemoryResultCache(default_ttl=10, clock=clock)
        await cache.set("k", 1)

        clock.now += 9
        assert await cache.get("k") == 1
        clock.now += 1
        assert await cache.get("k") is None
        assert len(cache) == 0

    async def test_set_drops_expired_entries(self):
        clock = FakeClock()
        cache = InMemoryResultCache(clock=clock)

        for day in range(1000):
            await cache.set(f"revenue_trends:acct:daily:30:{day}", {"day": day}, ttl=600)
            clock.now += 86_400

        assert len(cache) == 1

    async def test_set_keeps_live_entries(self):
        clock = FakeClock()
        cache = InMemoryResultCache(default_ttl=10, clock=clock)
        await cache.set("a", 1)
        clock.now += 5
        await cache.set("b", 2)

        assert len(cache) == 2
        assert await cache.get("a") == 1

    async def test_explicit_ttl_overrides_default(self):
        clock = FakeClock()
        cache = InMemoryResultCache(default_ttl=600, clock=clock)
        await cache.set("k", 1, ttl=5)

        clock.now += 6
        assert await cache.get("k") is None

    async def test_values_are_copies(self):
        cache = InMemoryResultCache()
        value = {"items": [1]}
        await cache.set("k", value)
        value["items"].append(2)

        first = await cache.get("k")
        first["items"].append(3)

        assert await cache.get("k") == {"items": [1]}

    async def test_invalidate_all_drops_everything(self):
        cache = InMemoryResultCache()
        await cache.set("a", 1)
        await cache.set("b", 2)

        assert await cache.invalidate_all() == 2
        assert await cache.get("a") is None
        assert len(cache) == 0

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryResultCache(), ResultCache)
        assert isinstance(NullResultCache(), ResultCache)


# =============================================================================
# Redis backend
# =============================================================================


class TestRedisResultCache:
    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.get = AsyncMock(return_value=None)
        client.setex = AsyncMock()
        client.delete = AsyncMock(return_value=2)
        client.aclose = AsyncMock()
        return client

    async def test_keys_are_namespaced(self, client):
        cache = RedisResultCache(client, namespace="ns", default_ttl=30)
        await cache.set("dashboard:a", {"x": 1})

        client.setex.assert_awaited_once_with("ns:dashboard:a", 30, '{"x": 1}')

    async def test_get_decodes_json(self, client):
        client.get.return_value = '{"x": 1}'
        cache = RedisResultCache(client, namespace="ns")

        assert await cache.get("k") == {"x": 1}
        client.get.assert_awaited_once_with("ns:k")

    async def test_invalidate_all_scans_namespace(self, client):
        seen_patterns = []

        async def scan_iter(match, count):
            seen_patterns.append(match)
            for key in ("ns:a", "ns:b"):
                yield key

        client.scan_iter = scan_iter
        cache = RedisResultCache(client, namespace="ns")

        assert await cache.invalidate_all() == 2
        assert seen_patterns == ["ns:*"]
        client.delete.assert_awaited_once_with("ns:a", "ns:b")

    async def test_invalidate_all_with_no_keys(self, client):
        async def scan_iter(match, count):
            for key in ():
                yield key

        client.scan_iter = scan_iter
        cache = RedisResultCache(client)

        assert await cache.invalidate_all() == 0
        client.delete.assert_not_awaited()

    async def test_close_releases_client(self, client):
        await RedisResultCache(client).close()
        client.aclose.assert_awaited_once()


# =============================================================================
# Factory
# =============================================================================


@pytest.mark.parametrize(
    ("backend", "expected"),
    [
        ("memory", InMemoryResultCache),
        ("redis", RedisResultCache),
        ("none", NullResultCache),
    ],
)
def test_build_result_cache_selects_backend(backend, expected):
    cache = build_result_cache(Settings(analytics_cache_backend=backend))
    assert isinstance(cache, expected)


# =============================================================================
# Best-effort helpers
# =============================================================================


class TestBestEffortHelpers:
    async def test_get_failure_is_a_miss(self):
        assert await cache_get(BrokenCache(), "k") is None

    async def test_get_timeout_is_a_miss(self, monkeypatch):
        monkeypatch.setattr("app.core.cache.CACHE_OP_TIMEOUT_SECONDS", 0.01)
        assert await cache_get(HangingCache(), "k") is None

    async def test_set_failure_returns_false(self):
        assert await cache_set(BrokenCache(), "k", 1) is False

    async def test_set_success_returns_true(self):
        cache = InMemoryResultCache()
        assert await cache_set(cache, "k", 1) is True
        assert await cache_get(cache, "k") == 1

    async def test_invalidate_failure_returns_zero(self):
        assert await cache_invalidate_all(BrokenCache()) == 0
