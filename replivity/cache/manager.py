"""
Cache Manager

Two-tier cache store:
- Remote tier (Redis) shared across instances, optional
- In-process tier (bounded map) always present

Owns entry storage, the tag index and the running statistics. Remote
failures degrade the store to the in-process tier without raising.

Usage:
    manager = CacheManager()
    await manager.init()

    await manager.set("user:profile", user, {"user_id": 1}, ["user"])
    user = await manager.get("user:profile", {"user_id": 1}, ["user"])

    await manager.invalidate_by_tags(["user"])
    await manager.shutdown()

Multi-instance note: the tag index lives in-process, so tag invalidation
removes remote copies of the keys this instance knows about. Other
instances keep serving their local copies until those expire.
"""

import asyncio
import logging
import time
from contextlib import suppress
from dataclasses import asdict, dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union

from replivity.cache.config import CacheConfig, get_cache_config
from replivity.cache.exceptions import CacheSerializationError, RemoteTierUnavailableError
from replivity.cache.keys import generate_key, glob_match
from replivity.cache.memory import MemoryTier
from replivity.cache.redis_cache import RedisTier
from replivity.cache.serialization import CacheEntry, deserialize_entry, serialize_entry


logger = logging.getLogger(__name__)

_MISS = object()


class CacheState(Enum):
    """Lifecycle state of the store."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    DEGRADED = "degraded"


@dataclass
class CacheCounters:
    """Running counters, reset only on restart."""
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    errors: int = 0


@dataclass
class CacheStatsSnapshot:
    """Read-only view of the counters at one instant."""
    hits: int
    misses: int
    sets: int
    deletes: int
    errors: int
    memory_usage: int
    memory_entry_count: int
    remote_connected: bool

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Hit rate in percent."""
        total = self.total_requests
        return round(self.hits / total * 100, 2) if total > 0 else 0.0

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["hit_rate"] = self.hit_rate
        return data


@dataclass
class CacheHealth:
    """Health report of the store."""
    healthy: bool
    remote_up: bool
    memory_ok: bool
    remote_configured: bool
    state: CacheState
    stats: CacheStatsSnapshot

    def as_dict(self) -> Dict[str, Any]:
        return {
            "healthy": self.healthy,
            "remote_up": self.remote_up,
            "memory_ok": self.memory_ok,
            "remote_configured": self.remote_configured,
            "state": self.state.value,
            "stats": self.stats.as_dict(),
        }


class CacheManager:
    """
    Two-tier cache store.

    Construct one per process and pass it to every consumer. Public
    operations initialize the store lazily; call ``init()`` explicitly to
    fail fast when the remote tier is required.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        remote: Optional[RedisTier] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or get_cache_config()
        if remote is None and self.config.redis.configured:
            remote = RedisTier(self.config.redis)
        self._remote = remote
        self._memory = MemoryTier(self.config.memory_max_size)
        self._clock = clock
        self._counters = CacheCounters()
        self._state = CacheState.UNINITIALIZED
        self._sweep_task: Optional[asyncio.Task] = None
        self._lock: Optional[asyncio.Lock] = None
        # Remote copies that a failed write or delete may have left stale
        self._stale_keys: Set[str] = set()
        self._stale_patterns: Set[str] = set()

    @property
    def prefix(self) -> str:
        return self.config.key_prefix

    @property
    def remote_configured(self) -> bool:
        return self._remote is not None and self._remote.configured

    @property
    def state(self) -> CacheState:
        if self._state in (CacheState.UNINITIALIZED, CacheState.INITIALIZING):
            return self._state
        if self.remote_configured and self._remote.state.last_error is not None:
            return CacheState.DEGRADED
        return CacheState.READY

    def key_for(
        self,
        identity: str,
        params: Optional[Dict[str, Any]] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> str:
        return generate_key(identity, params, tags, prefix=self.prefix)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def init(self, require_remote: bool = False):
        """
        Initialize the store.

        Connects the remote tier eagerly when lazy connect is off or the
        remote tier is required, then starts the background sweep.

        Raises:
            RemoteTierUnavailableError: require_remote and no reachable remote
        """
        if self._state in (CacheState.READY, CacheState.DEGRADED):
            if require_remote and not await self._remote_reachable():
                raise RemoteTierUnavailableError("Remote cache tier is not reachable")
            return

        if self._lock is None:
            self._lock = asyncio.Lock()

        async with self._lock:
            if self._state is not CacheState.UNINITIALIZED:
                return

            self._state = CacheState.INITIALIZING
            remote_up = False

            if self.remote_configured and (require_remote or not self.config.redis.lazy_connect):
                remote_up = await self._remote.connect()

            if require_remote and not remote_up:
                self._state = CacheState.UNINITIALIZED
                if not self.remote_configured:
                    raise RemoteTierUnavailableError(
                        "Remote cache tier is required but REDIS_URL/REDIS_HOST is not set"
                    )
                raise RemoteTierUnavailableError(
                    f"Remote cache tier is unreachable: {self._remote.state.last_error}"
                )

            self._start_sweeper()
            self._state = CacheState.READY

            logger.info(
                f"Cache initialized (prefix={self.prefix}, "
                f"remote={'configured' if self.remote_configured else 'none'}, "
                f"memory_max={self.config.memory_max_size})"
            )

    async def shutdown(self):
        """Stop the sweep task and close the remote tier."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

        if self._remote is not None:
            await self._remote.close()

        self._state = CacheState.UNINITIALIZED
        self._lock = None
        logger.info("Cache shut down")

    async def __aenter__(self) -> "CacheManager":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.shutdown()

    async def _ensure_initialized(self):
        if self._state is CacheState.UNINITIALIZED:
            await self.init()

    async def _remote_reachable(self) -> bool:
        return self.remote_configured and await self._remote.ping()

    def _start_sweeper(self):
        if self.config.sweep_interval <= 0 or self._sweep_task is not None:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def _sweep_loop(self):
        while True:
            await asyncio.sleep(self.config.sweep_interval)
            try:
                self.sweep_expired()
                if self.remote_configured and not self._remote.connected:
                    await self._remote.ping()
                await self._sync_remote()
            except Exception as e:
                logger.error(f"Cache sweep error: {e}")

    # =========================================================================
    # Core Operations
    # =========================================================================

    async def get(
        self,
        identity: str,
        params: Optional[Dict[str, Any]] = None,
        tags: Optional[Iterable[str]] = None,
        default: Any = None,
    ) -> Any:
        """
        Get a cached value.

        Returns ``default`` on a miss, so a cached ``None`` stays
        distinguishable when a sentinel default is passed.
        """
        await self._ensure_initialized()

        key = self.key_for(identity, params, tags)
        value = await self._lookup(key)

        if value is _MISS:
            self._counters.misses += 1
            return default

        self._counters.hits += 1
        return value

    async def _lookup(self, key: str) -> Any:
        await self._sync_remote()
        if self._remote is not None and not self._remote_is_stale(key):
            raw = await self._remote.get(key)
            if raw is not None:
                return await self._read_remote_entry(key, raw)

        entry = self._memory.get(key)
        if entry is None:
            return _MISS

        if not entry.is_valid(self._clock()):
            self._memory.remove(key)
            return _MISS

        return entry.data

    async def _read_remote_entry(self, key: str, raw) -> Any:
        try:
            entry = deserialize_entry(raw)
        except CacheSerializationError as e:
            logger.warning(f"Discarding corrupt cache entry {key}: {e}")
            self._counters.errors += 1
            self._memory.remove(key)
            await self._remote.delete(key)
            return _MISS

        now = self._clock()
        if not entry.is_valid(now):
            self._memory.remove(key)
            await self._remote.delete(key)
            return _MISS

        # Back-fill so the entry survives a remote outage
        if key not in self._memory:
            size = len(raw.encode("utf-8")) if isinstance(raw, str) else len(raw)
            self._memory.put(key, entry, size, now)
        return entry.data

    async def set(
        self,
        identity: str,
        data: Any,
        params: Optional[Dict[str, Any]] = None,
        tags: Optional[Iterable[str]] = None,
        ttl: Optional[timedelta] = None,
    ) -> str:
        """
        Store a value in both tiers. The remote write is best-effort.

        Returns the cache key.
        """
        await self._ensure_initialized()

        key = self.key_for(identity, params, tags)
        ttl_seconds = (ttl if ttl is not None else self.config.default_ttl).total_seconds()
        entry = CacheEntry(
            data=data,
            timestamp=self._clock(),
            ttl=ttl_seconds,
            tags=frozenset(tags or ()),
        )

        try:
            payload = serialize_entry(entry)
        except CacheSerializationError as e:
            logger.warning(f"Cache value for {key} is not serializable, keeping it local: {e}")
            self._counters.errors += 1
            payload = None

        await self._sync_remote()
        if self.remote_configured:
            if payload is not None:
                stored = await self._remote.set_with_expiry(key, ttl_seconds, payload)
            else:
                # An older serializable value must not outlive this write
                await self._remote.delete(key)
                stored = self._remote.connected
            if stored:
                self._stale_keys.discard(key)
            else:
                self._stale_keys.add(key)
                if payload is not None:
                    self._counters.errors += 1

        size = len(payload.encode("utf-8")) if payload is not None else 0
        self._memory.put(key, entry, size, self._clock())
        self._counters.sets += 1
        return key

    async def delete(
        self,
        key_or_pattern: Union[str, Iterable[str]] = "*",
        tags: Optional[Iterable[str]] = None,
    ) -> int:
        """
        Delete by exact key, list of keys, ``*`` glob, and/or tags.

        With tags, the pattern restricts which tagged keys go; ``*`` takes
        them all and drops the tag from the index. Deleting what is not
        there returns 0.
        """
        await self._ensure_initialized()
        await self._sync_remote()

        if tags:
            pattern = key_or_pattern if isinstance(key_or_pattern, str) else "*"
            count = await self._delete_tags(list(tags), self._qualify(pattern))
        elif isinstance(key_or_pattern, str):
            qualified = self._qualify(key_or_pattern)
            if "*" in qualified:
                count = await self._delete_pattern(qualified)
            else:
                count = await self._delete_keys([qualified])
        else:
            count = await self._delete_keys([self._qualify(key) for key in key_or_pattern])

        self._counters.deletes += count
        return count

    async def invalidate_by_tags(self, tags: Iterable[str]) -> int:
        """Primary invalidation entry point."""
        tags = list(tags)
        count = await self.delete("*", tags)
        logger.info(f"Invalidated {count} cache entries for tags {tags}")
        return count

    async def clear(self):
        """Flush both tiers and every index."""
        await self._ensure_initialized()

        remote_count = 0
        if self.remote_configured:
            remote_count = len(await self._delete_remote_pattern(f"{self.prefix}*"))
            if self._remote.connected:
                self._stale_keys.clear()
                self._stale_patterns.clear()

        local_count = len(self._memory)
        self._memory.clear()
        logger.info(f"Cache cleared ({local_count} local, {remote_count} remote entries)")

    def _qualify(self, key_or_pattern: str) -> str:
        if key_or_pattern.startswith(self.prefix):
            return key_or_pattern
        return f"{self.prefix}{key_or_pattern}"

    async def _delete_keys(self, keys: List[str]) -> int:
        removed = self._memory.remove_many(keys)
        remote_count = 0
        if self.remote_configured and keys:
            remote_count = await self._remote.delete(*keys)
            if self._remote.connected:
                self._stale_keys.difference_update(keys)
            else:
                self._stale_keys.update(keys)
        return max(len(removed), remote_count)

    async def _delete_pattern(self, pattern: str) -> int:
        removed = set(self._memory.remove_many(self._memory.match(pattern)))
        if self.remote_configured:
            removed.update(await self._delete_remote_pattern(pattern))
        return len(removed)

    async def _delete_remote_pattern(self, pattern: str) -> List[str]:
        """SCAN+DEL on the remote tier. A failure leaves the pattern pending."""
        remote_keys = await self._remote.keys_by_pattern(pattern)
        if remote_keys:
            await self._remote.delete(*remote_keys)

        if not self._remote.connected:
            self._stale_patterns.add(pattern)
            return []
        self._stale_patterns.discard(pattern)
        return remote_keys

    def _remote_is_stale(self, key: str) -> bool:
        if key in self._stale_keys:
            return True
        return any(glob_match(pattern, key) for pattern in self._stale_patterns)

    async def _sync_remote(self):
        """
        Replay the deletes and writes the remote tier missed while down.

        Until a key is replayed its remote copy is never read, so an entry
        invalidated or overwritten during an outage cannot come back. The
        in-process tier is the source of truth for the replay.
        """
        if not self.remote_configured or not (self._stale_keys or self._stale_patterns):
            return

        for pattern in list(self._stale_patterns):
            await self._delete_remote_pattern(pattern)
            if not self._remote.connected:
                return

        now = self._clock()
        for key in list(self._stale_keys):
            entry = self._memory.get(key)
            payload = None
            if entry is not None and entry.is_valid(now):
                try:
                    payload = serialize_entry(entry)
                except CacheSerializationError:
                    payload = None

            if payload is not None:
                await self._remote.set_with_expiry(key, entry.expires_in(now), payload)
            else:
                await self._remote.delete(key)

            if not self._remote.connected:
                return
            self._stale_keys.discard(key)

        logger.info("Remote cache tier resynchronized after outage")

    async def _delete_tags(self, tags: List[str], pattern: str) -> int:
        match_all = pattern == f"{self.prefix}*"
        keys = set()
        for tag in tags:
            tagged = self._memory.tags.keys_for(tag)
            if not match_all:
                tagged = {key for key in tagged if glob_match(pattern, key)}
            keys.update(tagged)

        count = await self._delete_keys(sorted(keys))

        if match_all:
            for tag in tags:
                self._memory.tags.pop(tag)
        return count

    # =========================================================================
    # Maintenance, Statistics and Health
    # =========================================================================

    def sweep_expired(self) -> int:
        """Evict expired in-process entries. Returns the count evicted."""
        expired = self._memory.purge_expired(self._clock())
        if expired:
            logger.info(f"Swept {len(expired)} expired cache entries")
        else:
            logger.debug("Cache sweep found no expired entries")
        return len(expired)

    def get_stats(self) -> CacheStatsSnapshot:
        return CacheStatsSnapshot(
            hits=self._counters.hits,
            misses=self._counters.misses,
            sets=self._counters.sets,
            deletes=self._counters.deletes,
            errors=self._counters.errors,
            memory_usage=self._memory.memory_usage,
            memory_entry_count=len(self._memory),
            remote_connected=self._remote is not None and self._remote.connected,
        )

    async def get_health(self) -> CacheHealth:
        """
        Health report using a live ping.

        No remote configured is healthy; configured but unreachable is not.
        """
        remote_up = await self._remote_reachable()
        memory_ok = len(self._memory) < self.config.memory_max_size
        healthy = memory_ok and (remote_up or not self.remote_configured)

        return CacheHealth(
            healthy=healthy,
            remote_up=remote_up,
            memory_ok=memory_ok,
            remote_configured=self.remote_configured,
            state=self.state,
            stats=self.get_stats(),
        )


class NullCacheManager:
    """
    Cache store that stores nothing.

    Selected when caching is disabled; every read misses and every
    producer runs.
    """

    def __init__(self, config: Optional[CacheConfig] = None):
        self.config = config or get_cache_config()
        self._counters = CacheCounters()

    @property
    def prefix(self) -> str:
        return self.config.key_prefix

    @property
    def remote_configured(self) -> bool:
        return False

    @property
    def state(self) -> CacheState:
        return CacheState.READY

    def key_for(self, identity, params=None, tags=None) -> str:
        return generate_key(identity, params, tags, prefix=self.prefix)

    async def init(self, require_remote: bool = False):
        if require_remote:
            raise RemoteTierUnavailableError("Caching is disabled")

    async def shutdown(self):
        pass

    async def get(self, identity, params=None, tags=None, default=None):
        self._counters.misses += 1
        return default

    async def set(self, identity, data, params=None, tags=None, ttl=None) -> str:
        return self.key_for(identity, params, tags)

    async def delete(self, key_or_pattern="*", tags=None) -> int:
        return 0

    async def invalidate_by_tags(self, tags) -> int:
        return 0

    async def clear(self):
        pass

    def sweep_expired(self) -> int:
        return 0

    def get_stats(self) -> CacheStatsSnapshot:
        return CacheStatsSnapshot(
            hits=0,
            misses=self._counters.misses,
            sets=0,
            deletes=0,
            errors=0,
            memory_usage=0,
            memory_entry_count=0,
            remote_connected=False,
        )

    async def get_health(self) -> CacheHealth:
        return CacheHealth(
            healthy=True,
            remote_up=False,
            memory_ok=True,
            remote_configured=False,
            state=self.state,
            stats=self.get_stats(),
        )


def create_cache_manager(
    config: Optional[CacheConfig] = None,
    remote: Optional[RedisTier] = None,
) -> Union[CacheManager, NullCacheManager]:
    """Pick the store implementation for this configuration."""
    config = config or get_cache_config()
    if not config.enabled:
        logger.info("Caching disabled, using pass-through store")
        return NullCacheManager(config)
    return CacheManager(config, remote=remote)
