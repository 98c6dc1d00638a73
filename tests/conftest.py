"""
Pytest Configuration and Shared Fixtures

Provides common fixtures and configuration for all test modules.
"""

import pytest
from datetime import datetime, timedelta
from typing import Dict, Optional

from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from replivity.cache.config import CacheConfig, RedisSettings
from replivity.cache.keys import glob_match
from replivity.cache.manager import CacheManager
from replivity.cache.query_cache import QueryCache
from replivity.cache.redis_cache import RedisTier
from replivity.database.models import (
    Billing,
    BlogPost,
    Generation,
    HashtagPerformance,
    HashtagSet,
    PostStatus,
    SecurityEvent,
    SecuritySeverity,
    Setting,
    SubscriptionStatus,
    Usage,
    User,
)
from replivity.database.monitoring import QueryMonitor
from replivity.database.session import create_db_engine, init_db
from replivity.queries.cached import CachedQueries


# ============================================================================
# Test Doubles
# ============================================================================

class FakeClock:
    """Manually advanced clock in seconds."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeRedis:
    """In-memory stand-in for a redis.asyncio client (decode_responses=True)."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.fail = False
        self.ping_calls = 0
        self.closed = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("Connection refused")

    async def ping(self):
        self.ping_calls += 1
        self._check()
        return True

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.store.get(key)

    async def setex(self, key: str, ttl: int, value: str):
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def scan_iter(self, match: str = "*", count: int = 10):
        self._check()
        for key in list(self.store):
            if glob_match(match, key):
                yield key

    async def aclose(self):
        self.closed = True


# ============================================================================
# Cache Fixtures
# ============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_config() -> CacheConfig:
    """Cache configuration without a remote tier or background sweep."""
    return CacheConfig(
        key_prefix="test:cache:",
        enabled=True,
        default_ttl=timedelta(seconds=300),
        memory_max_size=100,
        sweep_interval=0,
        redis=RedisSettings(url=None, host=None),
        redis_required=False,
        retry_attempts=1,
        retry_base_delay=0.0,
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def remote(fake_redis, clock) -> RedisTier:
    settings = RedisSettings(url="redis://fake:6379/0", host=None, reconnect_interval=30)
    return RedisTier(settings, client=fake_redis, clock=clock)


@pytest.fixture
async def manager(cache_config, clock):
    cache = CacheManager(cache_config, clock=clock)
    await cache.init()
    yield cache
    await cache.shutdown()


@pytest.fixture
async def remote_manager(cache_config, remote, clock):
    cache = CacheManager(cache_config, remote=remote, clock=clock)
    await cache.init()
    yield cache
    await cache.shutdown()


@pytest.fixture
def query_monitor() -> QueryMonitor:
    return QueryMonitor(max_samples=100, slow_query_threshold_ms=1000)


@pytest.fixture
def query_cache(manager, query_monitor) -> QueryCache:
    return QueryCache(manager, monitor=query_monitor)


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def engine():
    """In-memory SQLite shared by every connection of the test."""
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def seeded_db(db_session) -> Dict[str, str]:
    """Two users with generations, billing, posts, settings and hashtags."""
    now = datetime.utcnow()

    alice = User(id="user-1", email="alice@example.com", name="Alice", plan="pro")
    bob = User(id="user-2", email="bob@example.com", name="Bob", plan="free")
    db_session.add_all([alice, bob])
    db_session.flush()

    db_session.add_all([
        Generation(user_id="user-1", platform="instagram", tool="bio", tokens_used=100, success=True),
        Generation(user_id="user-1", platform="instagram", tool="caption", tokens_used=150, success=True),
        Generation(user_id="user-1", platform="tiktok", tool="hashtags", tokens_used=50, success=False),
        Generation(user_id="user-2", platform="linkedin", tool="bio", tokens_used=200, success=True),
    ])

    db_session.add_all([
        Billing(
            user_id="user-1", plan="pro", status=SubscriptionStatus.ACTIVE,
            amount=2900, currency="usd", current_period_end=now + timedelta(days=20),
        ),
        Billing(
            user_id="user-2", plan="starter", status=SubscriptionStatus.CANCELED,
            amount=900, currency="usd",
        ),
        Usage(user_id="user-1", metric="generations", count=3, quota=500, period_start=now),
    ])

    db_session.add_all([
        BlogPost(
            title="Growing on TikTok", slug="growing-on-tiktok", status=PostStatus.PUBLISHED,
            view_count=120, published_at=now - timedelta(days=2),
        ),
        BlogPost(
            title="Instagram Bios", slug="instagram-bios", status=PostStatus.PUBLISHED,
            view_count=80, published_at=now - timedelta(days=1),
        ),
        BlogPost(title="Draft", slug="draft-post", status=PostStatus.DRAFT),
    ])

    db_session.add_all([
        Setting(user_id=None, key="maintenance_mode", value=False),
        Setting(user_id=None, key="max_generations_free", value=10),
        Setting(user_id="user-1", key="theme", value="dark"),
    ])

    db_session.add_all([
        SecurityEvent(user_id="user-1", event_type="login_failed", severity=SecuritySeverity.LOW),
        SecurityEvent(user_id="user-1", event_type="login_failed", severity=SecuritySeverity.LOW),
        SecurityEvent(user_id=None, event_type="rate_limited", severity=SecuritySeverity.HIGH),
    ])

    public_set = HashtagSet(
        id="set-public", user_id=None, name="Trending", platform="instagram",
        hashtags=["#growth", "#marketing"], is_public=True,
    )
    own_set = HashtagSet(
        id="set-alice", user_id="user-1", name="Alice's tags", platform="tiktok",
        hashtags=["#fyp"], is_public=False,
    )
    other_set = HashtagSet(
        id="set-bob", user_id="user-2", name="Bob's tags", platform="linkedin",
        hashtags=["#career"], is_public=False,
    )
    db_session.add_all([public_set, own_set, other_set])
    db_session.flush()

    db_session.add_all([
        HashtagPerformance(hashtag_set_id="set-alice", impressions=1000, engagements=50, clicks=10),
        HashtagPerformance(hashtag_set_id="set-alice", impressions=1000, engagements=150, clicks=30),
    ])
    db_session.commit()

    return {"alice": "user-1", "bob": "user-2"}


@pytest.fixture
def queries(query_cache, db_session) -> CachedQueries:
    return CachedQueries(query_cache, db_session, retry_attempts=1, retry_base_delay=0.0)
