"""
Replivity Caching Layer

Two-tier query/result cache for the dashboard's read paths:
- Layer 1: In-process bounded map (always on)
- Layer 2: Redis (optional, shared across instances)
- Layer 3: Database (source of truth)

Key components:
- CacheManager: Two-tier store with tag index, sweep and health
- QueryCache: Compute-or-fetch façade over the store
- CachedQueries: Typed per-domain accessors (see replivity.queries)
- CacheInvalidator: Event -> tag purge dispatcher
- CacheWarmer: Batched pre-population
- CacheMonitor: Health checks, metrics and recommendations

CacheWarmer (replivity.cache.warming) and CacheRuntime (replivity.cache.runtime)
sit on top of replivity.queries and are imported from their modules.

Usage:
    from replivity.cache.runtime import CacheRuntime

    runtime = CacheRuntime.create()
    await runtime.start()

    with get_db_context() as db:
        queries = runtime.queries(db)
        dashboard = await queries.users.get_user_dashboard_data(user_id)

    # Invalidate on writes
    await runtime.invalidator.invalidate_by_event(CacheEvent.GENERATION_CREATED, user_id)

    await runtime.stop()
"""

from replivity.cache.config import (
    CacheConfig,
    CachePriority,
    CacheStrategy,
    CacheTags,
    CacheTTL,
    CACHE_STRATEGIES,
    RedisSettings,
    find_cache_strategy,
    get_cache_config,
    get_cache_strategy,
    warmup_strategies,
)
from replivity.cache.exceptions import (
    CacheError,
    CacheNotInitializedError,
    CacheSerializationError,
    RemoteTierUnavailableError,
)
from replivity.cache.keys import KeyIndex, TagIndex, generate_key
from replivity.cache.serialization import CacheEntry
from replivity.cache.redis_cache import RedisTier
from replivity.cache.manager import (
    CacheHealth,
    CacheManager,
    CacheState,
    CacheStatsSnapshot,
    NullCacheManager,
    create_cache_manager,
)
from replivity.cache.query_cache import PassthroughQueryCache, QueryCache, cached
from replivity.cache.invalidation import (
    CacheEvent,
    CacheInvalidator,
    INVALIDATION_EVENTS,
    InvalidationResult,
)
from replivity.cache.monitoring import CacheMonitor, CacheMetrics, HealthStatus

__all__ = [
    # Config
    "CacheConfig",
    "CachePriority",
    "CacheStrategy",
    "CacheTags",
    "CacheTTL",
    "CACHE_STRATEGIES",
    "RedisSettings",
    "find_cache_strategy",
    "get_cache_config",
    "get_cache_strategy",
    "warmup_strategies",
    # Errors
    "CacheError",
    "CacheNotInitializedError",
    "CacheSerializationError",
    "RemoteTierUnavailableError",
    # Store
    "CacheEntry",
    "KeyIndex",
    "TagIndex",
    "generate_key",
    "RedisTier",
    "CacheHealth",
    "CacheManager",
    "CacheState",
    "CacheStatsSnapshot",
    "NullCacheManager",
    "create_cache_manager",
    # Façade
    "QueryCache",
    "PassthroughQueryCache",
    "cached",
    # Invalidation
    "CacheEvent",
    "CacheInvalidator",
    "INVALIDATION_EVENTS",
    "InvalidationResult",
    # Monitoring
    "CacheMonitor",
    "CacheMetrics",
    "HealthStatus",
]
