"""
Tests for the Redis remote tier.

Uses an in-memory client double; no Redis server is needed.
"""

import pytest

from redis.asyncio import Redis

from replivity.cache.config import RedisSettings
from replivity.cache.redis_cache import RedisTier


# =============================================================================
# CONFIGURATION
# =============================================================================

class TestConfiguration:

    def test_unconfigured_tier(self):
        tier = RedisTier(RedisSettings(url=None, host=None))
        assert tier.configured is False
        assert tier.connected is False

    def test_injected_client_counts_as_configured(self, fake_redis):
        tier = RedisTier(RedisSettings(url=None, host=None), client=fake_redis)
        assert tier.configured is True

    def test_build_client_from_url(self):
        tier = RedisTier(RedisSettings(url="redis://localhost:6379/2", socket_timeout=1.5))
        client = tier._build_client()

        assert isinstance(client, Redis)
        kwargs = client.connection_pool.connection_kwargs
        assert kwargs["decode_responses"] is True
        assert kwargs["socket_timeout"] == 1.5
        assert kwargs["db"] == 2


@pytest.mark.asyncio
class TestUnconfigured:

    async def test_operations_are_neutral(self):
        tier = RedisTier(RedisSettings(url=None, host=None))

        assert await tier.connect() is False
        assert await tier.get("k") is None
        assert await tier.set_with_expiry("k", 10, "v") is False
        assert await tier.delete("k") == 0
        assert await tier.keys_by_pattern("*") == []
        assert await tier.ping() is False


# =============================================================================
# OPERATIONS
# =============================================================================

@pytest.mark.asyncio
class TestOperations:

    async def test_set_and_get(self, remote, fake_redis):
        assert await remote.set_with_expiry("k", 60, "value") is True
        assert await remote.get("k") == "value"
        assert fake_redis.ttls["k"] == 60

    async def test_fractional_ttl_rounds_up(self, remote, fake_redis):
        await remote.set_with_expiry("a", 0.2, "v")
        await remote.set_with_expiry("b", 1.5, "v")
        assert fake_redis.ttls == {"a": 1, "b": 2}

    async def test_delete_counts_removed_keys(self, remote):
        await remote.set_with_expiry("a", 60, "1")
        await remote.set_with_expiry("b", 60, "2")

        assert await remote.delete("a", "b", "c") == 2
        assert await remote.delete() == 0

    async def test_keys_by_pattern(self, remote):
        await remote.set_with_expiry("user:1", 60, "1")
        await remote.set_with_expiry("user:2", 60, "2")
        await remote.set_with_expiry("blog:1", 60, "3")

        assert sorted(await remote.keys_by_pattern("user:*")) == ["user:1", "user:2"]

    async def test_first_operation_connects(self, remote, fake_redis):
        assert remote.connected is False
        await remote.get("k")
        assert remote.connected is True
        assert fake_redis.ping_calls == 1


@pytest.mark.asyncio
class TestFailureHandling:

    async def test_failure_marks_tier_down(self, remote, fake_redis):
        await remote.set_with_expiry("k", 60, "v")
        fake_redis.fail = True

        assert await remote.get("k") is None
        assert remote.connected is False
        assert remote.state.failures == 1
        assert "Connection refused" in remote.state.last_error

    async def test_no_probe_before_reconnect_interval(self, remote, fake_redis, clock):
        fake_redis.fail = True
        await remote.get("k")
        assert fake_redis.ping_calls == 1

        clock.advance(10)
        await remote.get("k")
        await remote.set_with_expiry("k", 60, "v")
        assert fake_redis.ping_calls == 1

    async def test_probe_after_reconnect_interval(self, remote, fake_redis, clock):
        fake_redis.fail = True
        await remote.get("k")

        fake_redis.fail = False
        clock.advance(30)
        assert await remote.set_with_expiry("k", 60, "v") is True
        assert remote.connected is True
        assert remote.state.failures == 0
        assert remote.state.last_error is None

    async def test_failed_probe_waits_another_interval(self, remote, fake_redis, clock):
        fake_redis.fail = True
        await remote.get("k")
        clock.advance(30)
        await remote.get("k")
        assert fake_redis.ping_calls == 2
        assert remote.state.failures == 2

        clock.advance(5)
        await remote.get("k")
        assert fake_redis.ping_calls == 2

    async def test_ping_ignores_reconnect_interval(self, remote, fake_redis):
        fake_redis.fail = True
        assert await remote.ping() is False

        fake_redis.fail = False
        assert await remote.ping() is True
        assert remote.connected is True


@pytest.mark.asyncio
class TestClose:

    async def test_close_keeps_injected_client(self, remote, fake_redis):
        await remote.connect()
        await remote.close()

        assert fake_redis.closed is True
        assert remote.connected is False
        assert remote._client is fake_redis

    async def test_reconnects_after_close(self, remote, fake_redis):
        await remote.connect()
        await remote.close()

        assert await remote.get("k") is None
        assert remote.connected is True
