"""
Query Cache

Compute-or-fetch wrapper around the cache store. Given a query identity
and a producer, returns the cached result or runs the producer, stores
what it returns and hands it back.

- Producer errors propagate unchanged and nothing is cached
- ``None`` results are cached like any other value
- TTL resolution: explicit argument, then the strategy table, then the
  configured default

Concurrent misses on one key each run the producer unless the cache is
built with ``deduplicate=True``, in which case callers share a single
in-flight producer call.
"""

import asyncio
import functools
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, TypeVar, Union

from replivity.cache.config import find_cache_strategy
from replivity.cache.manager import CacheManager, NullCacheManager
from replivity.database.monitoring import QueryMonitor


logger = logging.getLogger(__name__)

T = TypeVar('T')

Producer = Callable[[], Awaitable[T]]
TagsArg = Union[Iterable[str], Callable[..., Iterable[str]], None]

_MISS = object()


class QueryCache:
    """Compute-or-fetch façade over a cache store."""

    def __init__(
        self,
        manager: Union[CacheManager, NullCacheManager],
        monitor: Optional[QueryMonitor] = None,
        deduplicate: bool = False,
    ):
        self.manager = manager
        self.monitor = monitor
        self.deduplicate = deduplicate
        self._inflight: Dict[str, asyncio.Task] = {}

    def resolve_ttl(self, identity: str, ttl: Optional[timedelta] = None) -> timedelta:
        if ttl is not None:
            return ttl
        strategy = find_cache_strategy(identity)
        if strategy is not None:
            return strategy.ttl
        return self.manager.config.default_ttl

    async def cache_query(
        self,
        identity: str,
        producer: Producer,
        params: Optional[Dict[str, Any]] = None,
        tags: Optional[Iterable[str]] = None,
        ttl: Optional[timedelta] = None,
    ) -> Any:
        tags = list(tags or ())
        cached = await self.manager.get(identity, params, tags, default=_MISS)
        if cached is not _MISS:
            return cached

        if not self.deduplicate:
            return await self._compute(identity, producer, params, tags, ttl)

        key = self.manager.key_for(identity, params, tags)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._compute(identity, producer, params, tags, ttl))
            self._inflight[key] = task
            task.add_done_callback(functools.partial(self._forget, key))
        else:
            logger.debug(f"Joining in-flight query for {identity}")

        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task):
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _compute(self, identity, producer, params, tags, ttl) -> Any:
        stop_timer = self.monitor.start_timer(identity) if self.monitor else None
        try:
            result = await producer()
        finally:
            if stop_timer is not None:
                stop_timer()

        await self.manager.set(identity, result, params, tags, self.resolve_ttl(identity, ttl))
        return result

    async def cache_data(
        self,
        key: str,
        producer: Producer,
        tags: Optional[Iterable[str]] = None,
        ttl: Optional[timedelta] = None,
    ) -> Any:
        """Cache a parameterless value under a plain key."""
        return await self.cache_query(key, producer, None, tags, ttl)

    async def invalidate(self, tags: Iterable[str]) -> int:
        return await self.manager.invalidate_by_tags(tags)

    async def clear(self):
        await self.manager.clear()


class PassthroughQueryCache:
    """Same interface as QueryCache, always runs the producer."""

    def __init__(self, monitor: Optional[QueryMonitor] = None):
        self.monitor = monitor

    async def cache_query(self, identity, producer, params=None, tags=None, ttl=None):
        stop_timer = self.monitor.start_timer(identity) if self.monitor else None
        try:
            return await producer()
        finally:
            if stop_timer is not None:
                stop_timer()

    async def cache_data(self, key, producer, tags=None, ttl=None):
        return await self.cache_query(key, producer)

    async def invalidate(self, tags) -> int:
        return 0

    async def clear(self):
        pass


def cached(
    query_cache: Union[QueryCache, PassthroughQueryCache],
    identity: str,
    fn: Callable[..., Awaitable[T]],
    tags: TagsArg = None,
    ttl: Optional[timedelta] = None,
    key_params: Optional[Callable[..., Dict[str, Any]]] = None,
) -> Callable[..., Awaitable[T]]:
    """
    Wrap an async function so calls go through the query cache.

    Args:
        query_cache: Cache to route calls through
        identity: Query identity shared by every call
        fn: The async function to wrap
        tags: Tag list, or a callable building tags from the call arguments
        ttl: Explicit TTL (default: strategy table)
        key_params: Builds the key parameters from the call arguments
            (default: positional and keyword arguments as given)

    Example:
        get_profile = cached(query_cache, "user:profile", fetch_profile,
                             tags=lambda user_id: ["user", f"user:{user_id}"])
        profile = await get_profile(42)
    """

    @functools.wraps(fn)
    async def cached_fn(*args, **kwargs):
        if key_params is not None:
            params = key_params(*args, **kwargs)
        else:
            params = {"args": list(args), "kwargs": kwargs}
        call_tags = tags(*args, **kwargs) if callable(tags) else tags
        return await query_cache.cache_query(
            identity,
            lambda: fn(*args, **kwargs),
            params,
            call_tags,
            ttl,
        )

    return cached_fn
