"""
Cache Warming Service

Pre-populates caches so the first requests after a deploy or flush are
served warm.

Strategies:
1. Common warming: the platform-wide reads flagged for warmup in the
   strategy table (stats, published posts, global settings)
2. User warming: profile, dashboard, billing and settings of given users,
   in batches with bounded concurrency

A failing task is logged and counted, never fatal to its batch.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from replivity.cache.config import find_cache_strategy, get_cache_strategy
from replivity.queries.cached import CachedQueries


logger = logging.getLogger(__name__)

CommonTask = Callable[[CachedQueries], Awaitable[Any]]
UserTask = Callable[[CachedQueries, str], Awaitable[Any]]
ProgressCallback = Callable[[int, int], None]


# Keyed by strategy key so the table's priority decides the order
COMMON_WARMUP_TASKS: Dict[str, CommonTask] = {
    "analytics:dashboard": lambda q: q.analytics.get_dashboard_analytics(),
    "generation:stats": lambda q: q.generations.get_generation_stats(),
    "generation:platform": lambda q: q.generations.get_platform_stats(),
    "analytics:platform": lambda q: q.analytics.get_platform_analytics(),
    "blog:posts": lambda q: q.blog.get_published_posts(10, 0),
    "blog:stats": lambda q: q.blog.get_blog_stats(),
    "settings:global": lambda q: q.settings.get_all_settings(),
    "analytics:users:total": lambda q: q.users.get_total_users(),
}

USER_WARMUP_TASKS: Dict[str, UserTask] = {
    "user:profile": lambda q, user_id: q.users.get_user_by_id(user_id),
    "user:dashboard": lambda q, user_id: q.users.get_user_dashboard_data(user_id),
    "billing:user": lambda q, user_id: q.billing.get_user_billing(user_id),
    "settings:user": lambda q, user_id: q.settings.get_user_settings(user_id),
}


@dataclass
class WarmupReport:
    """Aggregate outcome of a warmup run."""
    succeeded: int = 0
    failed: int = 0
    duration_seconds: float = 0.0
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    def record_failure(self, name: str, error: BaseException):
        self.failed += 1
        self.failures[name] = str(error) or type(error).__name__

    def merge(self, other: "WarmupReport") -> "WarmupReport":
        return WarmupReport(
            succeeded=self.succeeded + other.succeeded,
            failed=self.failed + other.failed,
            duration_seconds=self.duration_seconds + other.duration_seconds,
            failures={**self.failures, **other.failures},
        )


class CacheWarmer:
    """
    Proactive cache warming.

    Args:
        queries: Cached accessors to run
        concurrency: Maximum tasks in flight at once
        common_tasks: Override of the platform-wide task registry
        user_tasks: Override of the per-user task registry
    """

    def __init__(
        self,
        queries: CachedQueries,
        concurrency: int = 5,
        common_tasks: Optional[Dict[str, CommonTask]] = None,
        user_tasks: Optional[Dict[str, UserTask]] = None,
    ):
        self.queries = queries
        self.concurrency = max(1, concurrency)
        self.common_tasks = dict(COMMON_WARMUP_TASKS if common_tasks is None else common_tasks)
        self.user_tasks = dict(USER_WARMUP_TASKS if user_tasks is None else user_tasks)

    def ordered_common_tasks(self) -> List[Tuple[str, CommonTask]]:
        """
        Common tasks, high priority first.

        A task whose strategy is in the table but not flagged for warmup is
        skipped. Tasks without a strategy of their own always run.
        """
        enabled = []
        for name, task in self.common_tasks.items():
            strategy = find_cache_strategy(name)
            if strategy is not None and not strategy.warmup:
                logger.debug(f"Skipping {name}: not flagged for warmup")
                continue
            enabled.append((name, task))
        return sorted(enabled, key=lambda item: get_cache_strategy(item[0]).priority.rank)

    async def warmup_common(self) -> WarmupReport:
        tasks = self.ordered_common_tasks()
        logger.info(f"Warming {len(tasks)} common cache entries")
        start = time.perf_counter()
        report = WarmupReport()
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(name: str, task: CommonTask):
            async with semaphore:
                try:
                    await task(self.queries)
                    report.succeeded += 1
                    logger.debug(f"Warmed {name}")
                except Exception as e:
                    report.record_failure(name, e)
                    logger.warning(f"Failed to warm {name}: {e}")

        await asyncio.gather(*(run(name, task) for name, task in tasks))

        report.duration_seconds = time.perf_counter() - start
        logger.info(
            f"Common cache warming complete: {report.succeeded}/{report.total} "
            f"in {report.duration_seconds:.2f}s"
        )
        return report

    async def warmup_user(self, user_id: str):
        """Warm every per-user entry concurrently. Raises if any task fails."""
        await asyncio.gather(*(task(self.queries, user_id) for task in self.user_tasks.values()))
        logger.debug(f"Warmed cache for user {user_id}")

    async def warmup_users(
        self,
        user_ids: Iterable[str],
        batch_size: int = 10,
        concurrency: Optional[int] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> WarmupReport:
        """
        Warm users in batches.

        Each batch fans out with at most ``concurrency`` users in flight
        (default: the batch size). A failing user is counted, the rest of
        the batch carries on.
        """
        user_ids = list(user_ids)
        batch_size = max(1, batch_size)
        start = time.perf_counter()
        report = WarmupReport()
        batches = (len(user_ids) + batch_size - 1) // batch_size

        for number, offset in enumerate(range(0, len(user_ids), batch_size), start=1):
            batch = user_ids[offset:offset + batch_size]
            semaphore = asyncio.Semaphore(concurrency or batch_size)

            async def run(user_id: str):
                async with semaphore:
                    try:
                        await self.warmup_user(user_id)
                        report.succeeded += 1
                    except Exception as e:
                        report.record_failure(str(user_id), e)
                        logger.warning(f"Failed to warm cache for user {user_id}: {e}")

            await asyncio.gather(*(run(user_id) for user_id in batch))
            logger.info(f"Warmed user batch {number}/{batches} ({len(batch)} users)")

            if progress is not None:
                progress(min(offset + batch_size, len(user_ids)), len(user_ids))

        report.duration_seconds = time.perf_counter() - start
        if user_ids and report.succeeded == 0:
            logger.error(f"User cache warming failed for all {report.failed} users")
        else:
            logger.info(
                f"User cache warming complete: {report.succeeded} succeeded, "
                f"{report.failed} failed in {report.duration_seconds:.2f}s"
            )
        return report
