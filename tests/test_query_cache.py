"""
Tests for the compute-or-fetch query cache.

These tests verify:
- Producers run on a miss only
- Producer errors propagate and are never cached
- None results are cached
- TTL resolution order
- Concurrent misses with and without de-duplication
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from replivity.cache.config import CacheTTL
from replivity.cache.query_cache import PassthroughQueryCache, QueryCache, cached


# =============================================================================
# COMPUTE OR FETCH
# =============================================================================

@pytest.mark.asyncio
class TestCacheQuery:

    async def test_producer_not_called_on_hit(self, query_cache):
        producer = AsyncMock(return_value={"id": 1})

        first = await query_cache.cache_query("user:profile", producer, {"user_id": 1}, ["user"])
        second = await query_cache.cache_query("user:profile", producer, {"user_id": 1}, ["user"])

        assert first == second == {"id": 1}
        producer.assert_awaited_once()

    async def test_different_params_are_different_entries(self, query_cache):
        producer = AsyncMock(side_effect=[1, 2])

        assert await query_cache.cache_query("q", producer, {"page": 1}) == 1
        assert await query_cache.cache_query("q", producer, {"page": 2}) == 2
        assert producer.await_count == 2

    async def test_errors_propagate_and_are_not_cached(self, query_cache, manager):
        failing = AsyncMock(side_effect=ValueError("database unavailable"))

        with pytest.raises(ValueError, match="database unavailable"):
            await query_cache.cache_query("q", failing)
        assert manager.get_stats().sets == 0

        producer = AsyncMock(return_value="fresh")
        assert await query_cache.cache_query("q", producer) == "fresh"
        producer.assert_awaited_once()

    async def test_none_is_cached(self, query_cache):
        producer = AsyncMock(return_value=None)

        assert await query_cache.cache_query("user:profile", producer, {"user_id": "x"}) is None
        assert await query_cache.cache_query("user:profile", producer, {"user_id": "x"}) is None
        producer.assert_awaited_once()

    async def test_cache_data(self, query_cache):
        producer = AsyncMock(return_value=[1, 2])
        assert await query_cache.cache_data("static:data", producer, ["static"]) == [1, 2]
        assert await query_cache.cache_data("static:data", producer, ["static"]) == [1, 2]
        producer.assert_awaited_once()

    async def test_expired_entry_is_recomputed(self, query_cache, clock):
        producer = AsyncMock(side_effect=["old", "new"])

        await query_cache.cache_query("q", producer, ttl=timedelta(seconds=5))
        clock.advance(6)
        assert await query_cache.cache_query("q", producer, ttl=timedelta(seconds=5)) == "new"

    async def test_invalidate(self, query_cache):
        producer = AsyncMock(side_effect=["old", "new"])

        await query_cache.cache_query("q", producer, tags=["t"])
        assert await query_cache.invalidate(["t"]) == 1
        assert await query_cache.cache_query("q", producer, tags=["t"]) == "new"

    async def test_misses_are_timed(self, query_cache, query_monitor):
        producer = AsyncMock(return_value=1)

        await query_cache.cache_query("user:profile", producer)
        await query_cache.cache_query("user:profile", producer)

        assert query_monitor.get_stats("user:profile").count == 1

    async def test_failed_producers_are_timed(self, query_cache, query_monitor):
        with pytest.raises(RuntimeError):
            await query_cache.cache_query("q", AsyncMock(side_effect=RuntimeError()))
        assert query_monitor.get_stats("q").count == 1


class TestResolveTTL:

    def test_explicit_ttl_wins(self, query_cache):
        assert query_cache.resolve_ttl("user:profile", timedelta(seconds=7)) == timedelta(seconds=7)

    def test_strategy_ttl(self, query_cache):
        assert query_cache.resolve_ttl("user:profile") == CacheTTL.USER_DATA
        assert query_cache.resolve_ttl("analytics:realtime") == CacheTTL.REAL_TIME_ANALYTICS

    def test_default_ttl(self, query_cache):
        assert query_cache.resolve_ttl("unknown:kind") == timedelta(seconds=300)


# =============================================================================
# CONCURRENCY
# =============================================================================

@pytest.mark.asyncio
class TestConcurrentMisses:

    async def _race(self, query_cache):
        gate = asyncio.Event()
        calls = 0

        async def producer():
            nonlocal calls
            calls += 1
            await gate.wait()
            return "value"

        tasks = [
            asyncio.create_task(query_cache.cache_query("q", producer, {"id": 1}))
            for _ in range(3)
        ]
        await asyncio.sleep(0.01)
        gate.set()
        results = await asyncio.gather(*tasks)
        return calls, results

    async def test_each_miss_runs_producer_by_default(self, query_cache):
        calls, results = await self._race(query_cache)
        assert calls == 3
        assert results == ["value"] * 3

    async def test_deduplicated_misses_share_one_call(self, manager, query_monitor):
        query_cache = QueryCache(manager, monitor=query_monitor, deduplicate=True)
        calls, results = await self._race(query_cache)

        assert calls == 1
        assert results == ["value"] * 3
        assert query_cache._inflight == {}

    async def test_deduplicated_error_reaches_every_caller(self, manager):
        query_cache = QueryCache(manager, deduplicate=True)
        gate = asyncio.Event()

        async def producer():
            await gate.wait()
            raise ValueError("boom")

        tasks = [asyncio.create_task(query_cache.cache_query("q", producer)) for _ in range(2)]
        await asyncio.sleep(0.01)
        gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(result, ValueError) for result in results)
        assert manager.get_stats().sets == 0


# =============================================================================
# WRAPPERS
# =============================================================================

@pytest.mark.asyncio
class TestCachedWrapper:

    async def test_wraps_function(self, query_cache):
        calls = []

        async def fetch_profile(user_id):
            calls.append(user_id)
            return {"id": user_id}

        get_profile = cached(
            query_cache,
            "user:profile",
            fetch_profile,
            tags=lambda user_id: ["user", f"user:{user_id}"],
            key_params=lambda user_id: {"user_id": user_id},
        )

        assert await get_profile(1) == {"id": 1}
        assert await get_profile(1) == {"id": 1}
        assert await get_profile(2) == {"id": 2}
        assert calls == [1, 2]
        assert get_profile.__name__ == "fetch_profile"

        assert await query_cache.invalidate(["user:1"]) == 1

    async def test_default_key_params(self, query_cache):
        fn = AsyncMock(return_value="x")
        wrapped = cached(query_cache, "q", fn, tags=["t"])

        await wrapped(1, flag=True)
        await wrapped(1, flag=True)
        await wrapped(1, flag=False)
        assert fn.await_count == 2


@pytest.mark.asyncio
class TestPassthrough:

    async def test_always_runs_producer(self, query_monitor):
        query_cache = PassthroughQueryCache(monitor=query_monitor)
        producer = AsyncMock(return_value=1)

        await query_cache.cache_query("q", producer)
        await query_cache.cache_query("q", producer)

        assert producer.await_count == 2
        assert query_monitor.get_stats("q").count == 2
        assert await query_cache.invalidate(["t"]) == 0
