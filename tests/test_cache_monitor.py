"""
Tests for cache health checks and metrics.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from replivity.cache.manager import CacheHealth, CacheState, CacheStatsSnapshot
from replivity.cache.monitoring import CacheMonitor, HealthStatus


def make_stats(**overrides) -> CacheStatsSnapshot:
    values = dict(
        hits=0, misses=0, sets=0, deletes=0, errors=0,
        memory_usage=0, memory_entry_count=0, remote_connected=False,
    )
    values.update(overrides)
    return CacheStatsSnapshot(**values)


def make_manager(cache_config, remote_up=True, memory_ok=True, remote_configured=True, **stats):
    snapshot = make_stats(remote_connected=remote_up, **stats)
    manager = MagicMock()
    manager.config = cache_config
    manager.get_stats.return_value = snapshot
    manager.get_health = AsyncMock(return_value=CacheHealth(
        healthy=memory_ok and (remote_up or not remote_configured),
        remote_up=remote_up,
        memory_ok=memory_ok,
        remote_configured=remote_configured,
        state=CacheState.READY,
        stats=snapshot,
    ))
    return manager


@pytest.mark.asyncio
class TestHealthCheck:

    async def test_healthy(self, manager, query_monitor):
        monitor = CacheMonitor(manager, query_monitor=query_monitor)
        result = await monitor.health_check()

        assert result.status is HealthStatus.HEALTHY
        assert result.checks == {"remote": True, "memory": True, "hit_rate": True, "slow_queries": True}
        assert result.issues == []
        assert result.metrics is not None

    async def test_low_hit_rate_degrades(self, cache_config):
        manager = make_manager(cache_config, hits=10, misses=200)
        result = await CacheMonitor(manager).health_check()

        assert result.status is HealthStatus.DEGRADED
        assert result.checks["hit_rate"] is False
        assert result.issues[0]["type"] == "hit_rate"

    async def test_hit_rate_ignored_before_enough_lookups(self, cache_config):
        manager = make_manager(cache_config, hits=1, misses=50)
        result = await CacheMonitor(manager).health_check()
        assert result.status is HealthStatus.HEALTHY

    async def test_remote_down_degrades(self, cache_config):
        manager = make_manager(cache_config, remote_up=False)
        result = await CacheMonitor(manager).health_check()

        assert result.status is HealthStatus.DEGRADED
        assert result.issues[0]["severity"] == "critical"

    async def test_remote_down_and_memory_full_is_unhealthy(self, cache_config):
        manager = make_manager(cache_config, remote_up=False, memory_ok=False)
        result = await CacheMonitor(manager).health_check()
        assert result.status is HealthStatus.UNHEALTHY

    async def test_slow_queries_degrade(self, manager, query_monitor):
        query_monitor.record("analytics:dashboard", 2500)
        result = await CacheMonitor(manager, query_monitor=query_monitor).health_check()

        assert result.status is HealthStatus.DEGRADED
        assert result.issues[0]["queries"] == ["analytics:dashboard"]

    async def test_manager_error_is_unhealthy(self, cache_config):
        manager = make_manager(cache_config)
        manager.get_health = AsyncMock(side_effect=RuntimeError("boom"))

        result = await CacheMonitor(manager).health_check()
        assert result.status is HealthStatus.UNHEALTHY
        assert result.issues[0]["message"] == "boom"


class TestMetrics:

    def test_collect_sample(self, cache_config):
        manager = make_manager(cache_config, hits=3, misses=1, memory_entry_count=10)
        metrics = CacheMonitor(manager).collect_sample()

        assert metrics.hit_rate == 0.75
        assert metrics.memory_utilization == 10 / cache_config.memory_max_size

    def test_history_is_bounded(self, cache_config):
        monitor = CacheMonitor(make_manager(cache_config), max_history=3)
        for _ in range(5):
            monitor.collect_sample()

        assert len(monitor.get_metrics_history()) == 3
        assert len(monitor.get_metrics_history(limit=2)) == 2

    def test_recommendations(self, cache_config, query_monitor):
        manager = make_manager(
            cache_config, hits=10, misses=200, errors=2,
            memory_entry_count=int(cache_config.memory_max_size * 0.9),
        )
        monitor = CacheMonitor(manager, query_monitor=query_monitor)
        query_monitor.record("billing:revenue", 1800)

        health = MagicMock(checks={"remote": False})
        recommendations = monitor.get_recommendations(manager.get_stats(), health)
        text = " ".join(recommendations)

        assert "below 50%" in text
        assert "CACHE_MEMORY_MAX_SIZE" in text
        assert "Remote tier is down" in text
        assert "billing:revenue" in text
        assert "2 cache errors" in text


@pytest.mark.asyncio
class TestSummary:

    async def test_summary_sections(self, manager, query_monitor):
        await manager.set("q", 1)
        await manager.get("q")

        summary = await CacheMonitor(manager, query_monitor=query_monitor).get_summary()

        assert summary["health"]["status"] == "healthy"
        assert summary["performance"]["hit_rate_percent"] == 100.0
        assert summary["performance"]["hit_rate_trend"] == "stable"
        assert summary["storage"]["memory_entries"] == 1
        assert summary["storage"]["peak_memory_entries"] == 1
        assert summary["reliability"]["remote_connected"] is False
        assert summary["queries"]["total_queries"] == 0
        assert isinstance(summary["recommendations"], list)
