"""
Tests for cache warming.
"""

import pytest
from unittest.mock import MagicMock

from replivity.cache.config import CACHE_STRATEGIES, CachePriority
from replivity.cache.warming import COMMON_WARMUP_TASKS, CacheWarmer, WarmupReport


async def _ok(*args):
    return "ok"


async def _fail(*args):
    raise RuntimeError("query failed")


class TestWarmupReport:

    def test_record_failure(self):
        report = WarmupReport(succeeded=2)
        report.record_failure("blog:stats", ValueError("bad"))

        assert report.total == 3
        assert report.failures == {"blog:stats": "bad"}

    def test_merge(self):
        merged = WarmupReport(1, 0, 1.0).merge(WarmupReport(2, 1, 0.5, {"x": "err"}))
        assert (merged.succeeded, merged.failed, merged.duration_seconds) == (3, 1, 1.5)
        assert merged.failures == {"x": "err"}


class TestTaskOrder:

    def test_high_priority_first(self):
        warmer = CacheWarmer(MagicMock())
        order = [name for name, _ in warmer.ordered_common_tasks()]

        ranks = [CACHE_STRATEGIES[name].priority.rank for name in order if name in CACHE_STRATEGIES]
        assert ranks == sorted(ranks)
        assert CACHE_STRATEGIES[order[0]].priority is CachePriority.HIGH

    def test_default_tasks_cover_warmup_strategies(self):
        flagged = {key for key, strategy in CACHE_STRATEGIES.items() if strategy.warmup}
        # Per-user strategies need an id and static data has no query of its own
        assert flagged - set(COMMON_WARMUP_TASKS) <= {"user:profile", "user:dashboard", "static:data"}


@pytest.mark.asyncio
class TestWarmupCommon:

    async def test_failures_are_counted_not_raised(self):
        warmer = CacheWarmer(
            MagicMock(),
            common_tasks={"analytics:dashboard": _ok, "blog:posts": _ok, "blog:stats": _fail},
        )

        report = await warmer.warmup_common()

        assert report.succeeded == 2
        assert report.failed == 1
        assert report.failures == {"blog:stats": "query failed"}
        assert report.duration_seconds >= 0

    async def test_skips_strategies_not_flagged_for_warmup(self):
        calls = []

        def track(name):
            async def task(queries):
                calls.append(name)
            return task

        warmer = CacheWarmer(
            MagicMock(),
            common_tasks={
                "analytics:realtime": track("analytics:realtime"),
                "security:events": track("security:events"),
                "blog:posts": track("blog:posts"),
                "custom:report": track("custom:report"),
            },
        )

        report = await warmer.warmup_common()

        assert sorted(calls) == ["blog:posts", "custom:report"]
        assert report.succeeded == 2
        assert report.failed == 0

    async def test_warms_real_queries(self, queries, seeded_db, manager):
        report = await CacheWarmer(queries).warmup_common()

        assert report.failed == 0
        assert report.succeeded == len(COMMON_WARMUP_TASKS)
        assert manager.get_stats().sets == len(COMMON_WARMUP_TASKS)

        # A second pass is served entirely from the cache
        await CacheWarmer(queries).warmup_common()
        assert manager.get_stats().sets == len(COMMON_WARMUP_TASKS)


@pytest.mark.asyncio
class TestWarmupUsers:

    async def test_warmup_user_raises_on_failure(self):
        warmer = CacheWarmer(MagicMock(), user_tasks={"user:profile": _ok, "billing:user": _fail})
        with pytest.raises(RuntimeError):
            await warmer.warmup_user("u1")

    async def test_failing_user_does_not_stop_batch(self):
        async def profile(queries, user_id):
            if user_id == "bad":
                raise LookupError("no such user")

        warmer = CacheWarmer(MagicMock(), user_tasks={"user:profile": profile})
        progress = []

        report = await warmer.warmup_users(
            ["u1", "bad", "u2"],
            batch_size=2,
            progress=lambda done, total: progress.append((done, total)),
        )

        assert report.succeeded == 2
        assert report.failed == 1
        assert report.failures == {"bad": "no such user"}
        assert progress == [(2, 3), (3, 3)]

    async def test_no_users(self):
        report = await CacheWarmer(MagicMock()).warmup_users([])
        assert report.total == 0

    async def test_warms_real_user_queries(self, queries, seeded_db, manager):
        report = await CacheWarmer(queries).warmup_users([seeded_db["alice"], seeded_db["bob"]])

        assert report.succeeded == 2
        assert manager.get_stats().sets == 8
