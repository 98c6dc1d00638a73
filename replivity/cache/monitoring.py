"""
Cache Monitoring

Health checks, metrics collection and recommendations for the cache
store. Used by the monitor CLI and the cache management API.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from replivity.cache.config import CacheConfig, get_cache_config
from replivity.cache.manager import CacheStatsSnapshot
from replivity.database.monitoring import QueryMonitor


logger = logging.getLogger(__name__)

# Hit rate is meaningless before this many lookups
MIN_LOOKUPS_FOR_HIT_RATE = 100


class HealthStatus(Enum):
    """Health check status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class CacheMetrics:
    """Point-in-time cache metrics."""
    timestamp: datetime

    # Hit/miss statistics
    hits: int
    misses: int
    hit_rate: float

    # Writes
    sets: int
    deletes: int

    # Memory
    memory_usage_bytes: int
    memory_entries: int
    memory_utilization: float

    # Errors
    errors: int
    error_rate: float

    remote_connected: bool


@dataclass
class HealthCheckResult:
    """Result of a health check."""
    status: HealthStatus
    latency_ms: float
    checks: Dict[str, bool]
    issues: List[Dict[str, Any]]
    metrics: Optional[CacheMetrics] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)


class CacheMonitor:
    """
    Monitors cache health and performance.

    Provides:
    - Health checks (remote connectivity, memory ceiling, hit rate, slow queries)
    - Metric samples with a bounded history
    - Trend analysis and recommendations
    """

    def __init__(
        self,
        manager,
        config: Optional[CacheConfig] = None,
        query_monitor: Optional[QueryMonitor] = None,
        max_history: int = 1000,
    ):
        self.manager = manager
        self._config = config or getattr(manager, "config", None) or get_cache_config()
        self.query_monitor = query_monitor
        self._metrics_history: List[CacheMetrics] = []
        self._max_history = max_history

    async def health_check(self) -> HealthCheckResult:
        """
        Perform a health check.

        Returns:
            HealthCheckResult with status, latency and issues
        """
        start_time = time.perf_counter()
        checks = {}
        issues = []

        try:
            health = await self.manager.get_health()
            stats = health.stats

            # Check 1: Remote tier
            checks["remote"] = health.remote_up or not health.remote_configured
            if not checks["remote"]:
                issues.append({
                    "type": "remote",
                    "severity": "critical",
                    "message": "Remote cache tier is configured but unreachable",
                    "action": "Check Redis server status and network connectivity",
                })

            # Check 2: Memory ceiling
            checks["memory"] = health.memory_ok
            if not checks["memory"]:
                issues.append({
                    "type": "memory",
                    "severity": "warning",
                    "message": (
                        f"In-process cache at capacity: {stats.memory_entry_count} entries"
                    ),
                    "threshold": self._config.memory_max_size,
                    "action": "Raise CACHE_MEMORY_MAX_SIZE or shorten TTLs",
                })

            # Check 3: Hit rate
            hit_rate = stats.hit_rate / 100
            checks["hit_rate"] = (
                hit_rate >= self._config.min_hit_rate
                or stats.total_requests <= MIN_LOOKUPS_FOR_HIT_RATE
            )
            if not checks["hit_rate"]:
                issues.append({
                    "type": "hit_rate",
                    "severity": "warning",
                    "message": f"Low cache hit rate: {stats.hit_rate:.1f}%",
                    "threshold": self._config.min_hit_rate * 100,
                    "action": "Review cache TTLs and warmup coverage",
                })

            # Check 4: Slow queries
            if self.query_monitor is not None:
                slow = self.query_monitor.get_slow_queries()
                checks["slow_queries"] = not slow
                if slow:
                    issues.append({
                        "type": "slow_queries",
                        "severity": "warning",
                        "message": f"{len(slow)} query kinds average above "
                                   f"{self.query_monitor.slow_query_threshold_ms:.0f}ms",
                        "queries": [item["query"] for item in slow],
                        "action": "Review indexes and cache coverage of these queries",
                    })

            if not checks["remote"] and not checks["memory"]:
                status = HealthStatus.UNHEALTHY
            elif not all(checks.values()):
                status = HealthStatus.DEGRADED
            else:
                status = HealthStatus.HEALTHY

            metrics = self.collect_sample(stats)

        except Exception as e:
            logger.error(f"Health check error: {e}")
            status = HealthStatus.UNHEALTHY
            issues.append({
                "type": "error",
                "severity": "critical",
                "message": str(e),
                "action": "Check cache infrastructure",
            })
            metrics = None

        return HealthCheckResult(
            status=status,
            latency_ms=(time.perf_counter() - start_time) * 1000,
            checks=checks,
            issues=issues,
            metrics=metrics,
        )

    def collect_sample(self, stats: Optional[CacheStatsSnapshot] = None) -> CacheMetrics:
        """Record a metrics sample from the current (or given) stats."""
        stats = stats or self.manager.get_stats()
        max_size = max(1, self._config.memory_max_size)
        lookups = stats.total_requests

        metrics = CacheMetrics(
            timestamp=datetime.utcnow(),
            hits=stats.hits,
            misses=stats.misses,
            hit_rate=stats.hit_rate / 100,
            sets=stats.sets,
            deletes=stats.deletes,
            memory_usage_bytes=stats.memory_usage,
            memory_entries=stats.memory_entry_count,
            memory_utilization=stats.memory_entry_count / max_size,
            errors=stats.errors,
            error_rate=stats.errors / max(1, lookups + stats.sets),
            remote_connected=stats.remote_connected,
        )

        self._metrics_history.append(metrics)
        if len(self._metrics_history) > self._max_history:
            self._metrics_history = self._metrics_history[-self._max_history:]

        return metrics

    def get_metrics_history(
        self,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[CacheMetrics]:
        """Get metrics history."""
        history = self._metrics_history

        if since:
            history = [m for m in history if m.timestamp >= since]

        return history[-limit:]

    def _trend(self, values: List[float], tolerance: float) -> str:
        if len(values) < 10:
            return "stable"
        half = len(values) // 2
        first = sum(values[:half]) / half
        second = sum(values[half:]) / (len(values) - half)
        if second > first + tolerance:
            return "rising"
        if second < first - tolerance:
            return "falling"
        return "stable"

    def get_recommendations(
        self,
        stats: CacheStatsSnapshot,
        health: HealthCheckResult,
    ) -> List[str]:
        recommendations = []

        if stats.total_requests > MIN_LOOKUPS_FOR_HIT_RATE:
            if stats.hit_rate < 50:
                recommendations.append(
                    "Hit rate is below 50%: lengthen TTLs of stable data or warm more query kinds"
                )
            elif stats.hit_rate > 95:
                recommendations.append(
                    "Hit rate is above 95%: some TTLs may be long enough to serve stale data"
                )

        utilization = stats.memory_entry_count / max(1, self._config.memory_max_size)
        if utilization > 0.8:
            recommendations.append(
                f"In-process tier is {utilization * 100:.0f}% full: raise CACHE_MEMORY_MAX_SIZE"
            )

        if not health.checks.get("remote", True):
            recommendations.append("Remote tier is down: instances are not sharing cached data")

        if self.query_monitor is not None:
            for item in self.query_monitor.get_slow_queries()[:3]:
                recommendations.append(
                    f"Query {item['query']} averages {item['avg']:.0f}ms: add an index or cache it longer"
                )

        if stats.errors > 0:
            recommendations.append(f"{stats.errors} cache errors recorded: check logs for details")

        return recommendations

    async def get_summary(self) -> Dict[str, Any]:
        """Get summary of cache performance."""
        health = await self.health_check()
        stats = self.manager.get_stats()

        recent = self.get_metrics_history(
            since=datetime.utcnow() - timedelta(hours=1),
            limit=60,
        )
        remote_samples = [m.remote_connected for m in recent]

        summary = {
            "health": {
                "status": health.status.value,
                "issues_count": len(health.issues),
                "critical_issues": len([i for i in health.issues if i.get("severity") == "critical"]),
                "issues": health.issues,
            },
            "performance": {
                "hit_rate_percent": stats.hit_rate,
                "hit_rate_trend": self._trend([m.hit_rate for m in recent], 0.05),
                "hits": stats.hits,
                "misses": stats.misses,
                "sets": stats.sets,
                "deletes": stats.deletes,
            },
            "storage": {
                "memory_entries": stats.memory_entry_count,
                "memory_usage_bytes": stats.memory_usage,
                "memory_max_entries": self._config.memory_max_size,
                "memory_trend": self._trend([float(m.memory_entries) for m in recent], 1.0),
                "peak_memory_entries": max((m.memory_entries for m in recent), default=0),
            },
            "reliability": {
                "errors": stats.errors,
                "remote_connected": stats.remote_connected,
                "remote_uptime_percent": (
                    round(sum(remote_samples) / len(remote_samples) * 100, 1)
                    if remote_samples else 0.0
                ),
            },
            "recommendations": self.get_recommendations(stats, health),
            "timestamp": datetime.utcnow().isoformat(),
        }

        if self.query_monitor is not None:
            summary["queries"] = self.query_monitor.get_performance_summary()

        return summary
