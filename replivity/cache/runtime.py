"""
Cache runtime: the process-wide set of cache collaborators.

Built once at startup and passed to whatever needs it (API app state,
CLI commands, tests), so no module keeps global cache state.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy.orm import Session

from replivity.cache.config import CacheConfig, get_cache_config
from replivity.cache.invalidation import CacheInvalidator
from replivity.cache.manager import CacheManager, NullCacheManager, create_cache_manager
from replivity.cache.monitoring import CacheMonitor
from replivity.cache.query_cache import PassthroughQueryCache, QueryCache
from replivity.cache.redis_cache import RedisTier
from replivity.cache.warming import CacheWarmer
from replivity.database.monitoring import QueryMonitor
from replivity.queries.cached import CachedQueries


logger = logging.getLogger(__name__)


@dataclass
class CacheRuntime:
    config: CacheConfig
    manager: Union[CacheManager, NullCacheManager]
    query_cache: Union[QueryCache, PassthroughQueryCache]
    query_monitor: QueryMonitor
    invalidator: CacheInvalidator
    monitor: CacheMonitor

    @classmethod
    def create(
        cls,
        config: Optional[CacheConfig] = None,
        remote: Optional[RedisTier] = None,
        deduplicate: bool = False,
    ) -> "CacheRuntime":
        config = config or get_cache_config()
        manager = create_cache_manager(config, remote=remote)
        query_monitor = QueryMonitor(
            max_samples=config.query_samples,
            slow_query_threshold_ms=config.slow_query_ms,
        )

        if isinstance(manager, NullCacheManager):
            query_cache = PassthroughQueryCache(monitor=query_monitor)
        else:
            query_cache = QueryCache(manager, monitor=query_monitor, deduplicate=deduplicate)

        return cls(
            config=config,
            manager=manager,
            query_cache=query_cache,
            query_monitor=query_monitor,
            invalidator=CacheInvalidator(manager),
            monitor=CacheMonitor(manager, config, query_monitor=query_monitor),
        )

    async def start(self, require_remote: bool = False):
        await self.manager.init(require_remote=require_remote)

    async def stop(self):
        await self.manager.shutdown()

    def queries(self, db: Session) -> CachedQueries:
        return CachedQueries(
            self.query_cache,
            db,
            retry_attempts=self.config.retry_attempts,
            retry_base_delay=self.config.retry_base_delay,
        )

    def warmer(self, db: Session, concurrency: int = 5) -> CacheWarmer:
        return CacheWarmer(self.queries(db), concurrency=concurrency)
