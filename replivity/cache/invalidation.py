"""
Cache Invalidation Service

Event-driven cache invalidation. Every write path that changes data a
cached read depends on must fire the matching event:

    invalidator = CacheInvalidator(manager)
    await invalidator.invalidate_by_event(CacheEvent.GENERATION_CREATED, scope_id=user_id)

An event purges its tags, then (with a scope id) the scope tags built from
its patterns by putting the id in place of the wildcard, so
``GENERATION_CREATED`` scoped to user 42 also purges ``generation:42``.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from replivity.cache.config import CacheTags


logger = logging.getLogger(__name__)


class CacheEvent(Enum):
    """Domain write events that trigger cache invalidation."""

    # User lifecycle
    USER_CREATED = "user_created"
    USER_UPDATED = "user_updated"
    USER_DELETED = "user_deleted"

    # Generations
    GENERATION_CREATED = "generation_created"
    GENERATION_UPDATED = "generation_updated"
    GENERATION_DELETED = "generation_deleted"

    # Billing
    BILLING_CREATED = "billing_created"
    BILLING_UPDATED = "billing_updated"
    BILLING_DELETED = "billing_deleted"

    # Blog
    BLOG_CREATED = "blog_created"
    BLOG_UPDATED = "blog_updated"
    BLOG_DELETED = "blog_deleted"

    # Settings and security
    SETTINGS_UPDATED = "settings_updated"
    SECURITY_EVENT = "security_event"

    # Hashtags
    HASHTAG_CREATED = "hashtag_created"
    HASHTAG_UPDATED = "hashtag_updated"
    HASHTAG_DELETED = "hashtag_deleted"


@dataclass(frozen=True)
class EventInvalidation:
    """Tags and scope patterns purged by one event."""
    tags: Tuple[str, ...]
    patterns: Tuple[str, ...]


def _purges(*tags: str) -> EventInvalidation:
    return EventInvalidation(tags=tags, patterns=tuple(f"{tag}:*" for tag in tags))


INVALIDATION_EVENTS: Dict[CacheEvent, EventInvalidation] = {
    CacheEvent.USER_CREATED: _purges(CacheTags.USER, CacheTags.ANALYTICS),
    CacheEvent.USER_UPDATED: _purges(
        CacheTags.USER, CacheTags.USER_PROFILE, CacheTags.USER_DASHBOARD,
    ),
    CacheEvent.USER_DELETED: _purges(
        CacheTags.USER, CacheTags.GENERATION, CacheTags.BILLING, CacheTags.ANALYTICS,
    ),

    CacheEvent.GENERATION_CREATED: _purges(
        CacheTags.GENERATION, CacheTags.ANALYTICS, CacheTags.PLATFORM,
    ),
    CacheEvent.GENERATION_UPDATED: _purges(CacheTags.GENERATION, CacheTags.ANALYTICS),
    CacheEvent.GENERATION_DELETED: _purges(CacheTags.GENERATION, CacheTags.ANALYTICS),

    CacheEvent.BILLING_CREATED: _purges(
        CacheTags.BILLING, CacheTags.SUBSCRIPTION, CacheTags.ANALYTICS,
    ),
    CacheEvent.BILLING_UPDATED: _purges(
        CacheTags.BILLING, CacheTags.SUBSCRIPTION, CacheTags.USER,
    ),
    CacheEvent.BILLING_DELETED: _purges(
        CacheTags.BILLING, CacheTags.SUBSCRIPTION, CacheTags.ANALYTICS,
    ),

    CacheEvent.BLOG_CREATED: _purges(CacheTags.BLOG, CacheTags.POST, CacheTags.ANALYTICS),
    CacheEvent.BLOG_UPDATED: _purges(CacheTags.BLOG, CacheTags.POST),
    CacheEvent.BLOG_DELETED: _purges(CacheTags.BLOG, CacheTags.POST, CacheTags.ANALYTICS),

    CacheEvent.SETTINGS_UPDATED: _purges(CacheTags.SETTINGS, CacheTags.USER),
    CacheEvent.SECURITY_EVENT: _purges(CacheTags.SECURITY, CacheTags.ANALYTICS),

    CacheEvent.HASHTAG_CREATED: _purges(CacheTags.HASHTAG, CacheTags.SET),
    CacheEvent.HASHTAG_UPDATED: _purges(CacheTags.HASHTAG, CacheTags.PERFORMANCE),
    CacheEvent.HASHTAG_DELETED: _purges(CacheTags.HASHTAG, CacheTags.SET, CacheTags.PERFORMANCE),
}


@dataclass
class InvalidationResult:
    """Result of a cache invalidation operation."""
    event: Optional[CacheEvent]
    success: bool
    keys_invalidated: int
    duration_ms: float
    errors: List[str] = field(default_factory=list)
    scope_id: Optional[str] = None


def resolve_event(event: Union[CacheEvent, str]) -> Optional[CacheEvent]:
    """Accept an event, its name (``GENERATION_CREATED``) or its value."""
    if isinstance(event, CacheEvent):
        return event
    try:
        return CacheEvent[event.upper()]
    except KeyError:
        pass
    try:
        return CacheEvent(event.lower())
    except ValueError:
        return None


class CacheInvalidator:
    """
    Maps domain events to tag purges on a cache store.

    Principle: the table decides what goes; callers only say what happened.
    """

    def __init__(self, manager):
        self.manager = manager

    async def invalidate_by_event(
        self,
        event: Union[CacheEvent, str],
        scope_id: Optional[str] = None,
    ) -> InvalidationResult:
        start = time.perf_counter()
        resolved = resolve_event(event)

        if resolved is None:
            logger.warning(f"Unknown cache invalidation event: {event}")
            return InvalidationResult(
                event=None,
                success=False,
                keys_invalidated=0,
                duration_ms=(time.perf_counter() - start) * 1000,
                errors=[f"Unknown event: {event}"],
                scope_id=scope_id,
            )

        plan = INVALIDATION_EVENTS[resolved]
        tags = list(plan.tags)
        if scope_id is not None:
            tags.extend(pattern.replace("*", str(scope_id), 1) for pattern in plan.patterns)

        result = await self._purge(tags, resolved, start)
        result.scope_id = scope_id

        logger.info(
            f"Cache invalidation for {resolved.value}"
            f"{f' (scope {scope_id})' if scope_id is not None else ''}: "
            f"{result.keys_invalidated} keys in {result.duration_ms:.1f}ms"
        )
        return result

    async def _purge(
        self,
        tags: List[str],
        event: Optional[CacheEvent],
        start: float,
    ) -> InvalidationResult:
        errors = []
        count = 0
        try:
            count = await self.manager.invalidate_by_tags(tags)
        except Exception as e:
            logger.error(f"Cache invalidation failed for tags {tags}: {e}")
            errors.append(str(e))

        return InvalidationResult(
            event=event,
            success=not errors,
            keys_invalidated=count,
            duration_ms=(time.perf_counter() - start) * 1000,
            errors=errors,
        )

    # =========================================================================
    # Domain helpers
    # =========================================================================

    async def invalidate_user(self, user_id: str) -> InvalidationResult:
        return await self.invalidate_by_event(CacheEvent.USER_UPDATED, user_id)

    async def invalidate_generation(self, user_id: Optional[str] = None) -> InvalidationResult:
        return await self.invalidate_by_event(CacheEvent.GENERATION_UPDATED, user_id)

    async def invalidate_billing(self, user_id: Optional[str] = None) -> InvalidationResult:
        return await self.invalidate_by_event(CacheEvent.BILLING_UPDATED, user_id)

    async def invalidate_blog(self) -> InvalidationResult:
        return await self.invalidate_by_event(CacheEvent.BLOG_UPDATED)

    async def invalidate_settings(self, user_id: Optional[str] = None) -> InvalidationResult:
        return await self.invalidate_by_event(CacheEvent.SETTINGS_UPDATED, user_id)

    async def invalidate_security(self) -> InvalidationResult:
        return await self.invalidate_by_event(CacheEvent.SECURITY_EVENT)

    async def invalidate_hashtag(self, user_id: Optional[str] = None) -> InvalidationResult:
        return await self.invalidate_by_event(CacheEvent.HASHTAG_UPDATED, user_id)

    async def invalidate_analytics(self) -> InvalidationResult:
        result = await self._purge([CacheTags.ANALYTICS], None, time.perf_counter())
        logger.info(f"Invalidated {result.keys_invalidated} analytics cache entries")
        return result

    async def invalidate_tags(self, tags: List[str]) -> InvalidationResult:
        return await self._purge(list(tags), None, time.perf_counter())

    async def invalidate_all(self) -> InvalidationResult:
        """Flush everything. Use sparingly."""
        start = time.perf_counter()
        errors = []
        count = self.manager.get_stats().memory_entry_count
        try:
            await self.manager.clear()
        except Exception as e:
            logger.error(f"Cache clear failed: {e}")
            errors.append(str(e))
            count = 0

        logger.warning("Invalidated all cache entries")
        return InvalidationResult(
            event=None,
            success=not errors,
            keys_invalidated=count,
            duration_ms=(time.perf_counter() - start) * 1000,
            errors=errors,
        )
