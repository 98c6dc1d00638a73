"""
Cache Configuration

Centralized configuration for the caching layer:
- TTLs by data type (volatility decides the window)
- Tag names used for group invalidation
- Per query-kind strategies (ttl, tags, patterns, warmup, priority)
- Runtime settings read from the environment

The strategy table is defined once at import time and is read-only
thereafter.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from functools import lru_cache
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class CacheTTL:
    """
    Cache TTL configuration by data type.

    Short windows for data that changes with every request (real-time
    analytics, API responses), long windows for data that users rarely
    edit (global settings, static data).
    """

    # User data
    USER_DATA: timedelta = timedelta(minutes=10)

    # Generation data
    GENERATION_STATS: timedelta = timedelta(minutes=5)
    GENERATION_QUERIES: timedelta = timedelta(minutes=3)

    # Billing data (changes on webhook only)
    BILLING_DATA: timedelta = timedelta(minutes=15)
    SUBSCRIPTION_DATA: timedelta = timedelta(minutes=10)

    # Blog data
    BLOG_POSTS: timedelta = timedelta(minutes=2)
    BLOG_STATS: timedelta = timedelta(minutes=5)

    # Analytics
    ANALYTICS: timedelta = timedelta(minutes=1)
    DASHBOARD_ANALYTICS: timedelta = timedelta(minutes=2)
    REAL_TIME_ANALYTICS: timedelta = timedelta(seconds=30)

    # Settings
    SETTINGS: timedelta = timedelta(minutes=30)
    USER_SETTINGS: timedelta = timedelta(minutes=15)

    # Security
    SECURITY_EVENTS: timedelta = timedelta(minutes=5)
    SECURITY_STATS: timedelta = timedelta(minutes=2)

    # Hashtags
    HASHTAG_DATA: timedelta = timedelta(minutes=10)
    HASHTAG_PERFORMANCE: timedelta = timedelta(minutes=5)

    # Long-lived
    SESSION_DATA: timedelta = timedelta(hours=1)
    STATIC_DATA: timedelta = timedelta(hours=1)

    # API responses
    API_RESPONSES: timedelta = timedelta(seconds=30)


@dataclass(frozen=True)
class CacheTags:
    """Tag names used for group invalidation."""

    USER: str = "user"
    GENERATION: str = "generation"
    BILLING: str = "billing"
    BLOG: str = "blog"
    ANALYTICS: str = "analytics"
    SETTINGS: str = "settings"
    SECURITY: str = "security"
    HASHTAG: str = "hashtag"
    SESSION: str = "session"
    API: str = "api"
    STATIC: str = "static"

    # Finer-grained tags named by invalidation events
    USER_PROFILE: str = "user_profile"
    USER_DASHBOARD: str = "user_dashboard"
    PLATFORM: str = "platform"
    SUBSCRIPTION: str = "subscription"
    POST: str = "post"
    SET: str = "set"
    PERFORMANCE: str = "performance"

    @staticmethod
    def scoped(tag: str, scope_id) -> str:
        """Build a scope tag such as ``user:42``."""
        return f"{tag}:{scope_id}"


class CachePriority(Enum):
    """Warmup priority of a strategy."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"high": 0, "medium": 1, "low": 2}[self.value]


@dataclass(frozen=True)
class CacheStrategy:
    """Static caching behaviour of one logical query kind."""
    ttl: timedelta
    tags: Tuple[str, ...]
    invalidation_patterns: Tuple[str, ...]
    warmup: bool = False
    priority: CachePriority = CachePriority.LOW


def _strategy(
    ttl: timedelta,
    tags: List[str],
    patterns: List[str],
    warmup: bool,
    priority: CachePriority,
) -> CacheStrategy:
    return CacheStrategy(
        ttl=ttl,
        tags=tuple(tags),
        invalidation_patterns=tuple(patterns),
        warmup=warmup,
        priority=priority,
    )


_TTL = CacheTTL()
_TAGS = CacheTags()

_STRATEGIES = {
    # User strategies
    "user:profile": _strategy(
        _TTL.USER_DATA, [_TAGS.USER], ["user:*", "user:profile:*"],
        True, CachePriority.HIGH,
    ),
    "user:dashboard": _strategy(
        _TTL.DASHBOARD_ANALYTICS, [_TAGS.USER, _TAGS.ANALYTICS],
        ["user:*", "dashboard:*"], True, CachePriority.HIGH,
    ),
    "user:settings": _strategy(
        _TTL.USER_SETTINGS, [_TAGS.USER, _TAGS.SETTINGS],
        ["user:*", "settings:*"], False, CachePriority.MEDIUM,
    ),

    # Generation strategies
    "generation:stats": _strategy(
        _TTL.GENERATION_STATS, [_TAGS.GENERATION, _TAGS.ANALYTICS],
        ["generation:*", "stats:*"], True, CachePriority.HIGH,
    ),
    "generation:platform": _strategy(
        _TTL.GENERATION_STATS, [_TAGS.GENERATION, _TAGS.ANALYTICS],
        ["generation:*", "platform:*"], True, CachePriority.MEDIUM,
    ),
    "generation:user": _strategy(
        _TTL.GENERATION_QUERIES, [_TAGS.GENERATION, _TAGS.USER],
        ["generation:*", "user:*"], False, CachePriority.MEDIUM,
    ),

    # Billing strategies
    "billing:subscriptions": _strategy(
        _TTL.SUBSCRIPTION_DATA, [_TAGS.BILLING],
        ["billing:*", "subscription:*"], False, CachePriority.MEDIUM,
    ),
    "billing:user": _strategy(
        _TTL.BILLING_DATA, [_TAGS.BILLING, _TAGS.USER],
        ["billing:*", "user:*"], False, CachePriority.MEDIUM,
    ),

    # Blog strategies
    "blog:posts": _strategy(
        _TTL.BLOG_POSTS, [_TAGS.BLOG], ["blog:*", "post:*"],
        True, CachePriority.MEDIUM,
    ),
    "blog:stats": _strategy(
        _TTL.BLOG_STATS, [_TAGS.BLOG, _TAGS.ANALYTICS],
        ["blog:*", "stats:*"], True, CachePriority.LOW,
    ),

    # Analytics strategies
    "analytics:dashboard": _strategy(
        _TTL.DASHBOARD_ANALYTICS, [_TAGS.ANALYTICS],
        ["analytics:*", "dashboard:*"], True, CachePriority.HIGH,
    ),
    "analytics:realtime": _strategy(
        _TTL.REAL_TIME_ANALYTICS, [_TAGS.ANALYTICS],
        ["analytics:*", "realtime:*"], False, CachePriority.HIGH,
    ),
    "analytics:platform": _strategy(
        _TTL.ANALYTICS, [_TAGS.ANALYTICS],
        ["analytics:*", "platform:*"], True, CachePriority.MEDIUM,
    ),

    # Settings strategies
    "settings:global": _strategy(
        _TTL.SETTINGS, [_TAGS.SETTINGS], ["settings:*"],
        True, CachePriority.LOW,
    ),
    "settings:user": _strategy(
        _TTL.USER_SETTINGS, [_TAGS.SETTINGS, _TAGS.USER],
        ["settings:*", "user:*"], False, CachePriority.MEDIUM,
    ),

    # Security strategies
    "security:events": _strategy(
        _TTL.SECURITY_EVENTS, [_TAGS.SECURITY],
        ["security:*", "events:*"], False, CachePriority.MEDIUM,
    ),
    "security:stats": _strategy(
        _TTL.SECURITY_STATS, [_TAGS.SECURITY, _TAGS.ANALYTICS],
        ["security:*", "stats:*"], False, CachePriority.LOW,
    ),

    # Hashtag strategies
    "hashtag:sets": _strategy(
        _TTL.HASHTAG_DATA, [_TAGS.HASHTAG],
        ["hashtag:*", "sets:*"], False, CachePriority.MEDIUM,
    ),
    "hashtag:performance": _strategy(
        _TTL.HASHTAG_PERFORMANCE, [_TAGS.HASHTAG, _TAGS.ANALYTICS],
        ["hashtag:*", "performance:*"], False, CachePriority.LOW,
    ),

    # Session and API strategies
    "session:data": _strategy(
        _TTL.SESSION_DATA, [_TAGS.SESSION], ["session:*"],
        False, CachePriority.HIGH,
    ),
    "api:responses": _strategy(
        _TTL.API_RESPONSES, [_TAGS.API], ["api:*"],
        False, CachePriority.LOW,
    ),

    # Static data strategies
    "static:data": _strategy(
        _TTL.STATIC_DATA, [_TAGS.STATIC], ["static:*"],
        True, CachePriority.LOW,
    ),
}

CACHE_STRATEGIES: Mapping[str, CacheStrategy] = MappingProxyType(_STRATEGIES)

DEFAULT_STRATEGY = _strategy(
    _TTL.API_RESPONSES, [_TAGS.API], ["*"], False, CachePriority.LOW,
)

# Longest keys first so "user:dashboard" wins over a shorter prefix
_STRATEGY_PREFIXES = sorted(_STRATEGIES, key=len, reverse=True)


def find_cache_strategy(key: str) -> Optional[CacheStrategy]:
    """Look up a strategy by exact key, then by longest matching prefix."""
    strategy = CACHE_STRATEGIES.get(key)
    if strategy is not None:
        return strategy

    for strategy_key in _STRATEGY_PREFIXES:
        if key.startswith(strategy_key):
            return CACHE_STRATEGIES[strategy_key]

    return None


def get_cache_strategy(key: str) -> CacheStrategy:
    """Get the strategy for a key, falling back to the default strategy."""
    return find_cache_strategy(key) or DEFAULT_STRATEGY


def warmup_strategies() -> List[str]:
    """Strategy keys flagged for warmup, high priority first."""
    flagged = [key for key, strategy in CACHE_STRATEGIES.items() if strategy.warmup]
    return sorted(flagged, key=lambda key: CACHE_STRATEGIES[key].priority.rank)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class RedisSettings:
    """
    Remote tier connection settings.

    The remote tier counts as configured only when REDIS_URL or REDIS_HOST
    is present in the environment.
    """

    url: Optional[str] = field(default_factory=lambda: os.getenv("REDIS_URL"))
    host: Optional[str] = field(default_factory=lambda: os.getenv("REDIS_HOST"))
    port: int = field(default_factory=lambda: int(os.getenv("REDIS_PORT", "6379")))
    password: Optional[str] = field(default_factory=lambda: os.getenv("REDIS_PASSWORD"))
    db: int = field(default_factory=lambda: int(os.getenv("REDIS_DB", "0")))

    # Milliseconds between redis-py retries of one command
    retry_delay: int = field(default_factory=lambda: int(os.getenv("REDIS_RETRY_DELAY", "100")))
    max_retries: int = field(default_factory=lambda: int(os.getenv("REDIS_MAX_RETRIES", "3")))
    lazy_connect: bool = field(default_factory=lambda: _env_flag("REDIS_LAZY_CONNECT", "true"))

    socket_timeout: float = field(default_factory=lambda: float(os.getenv(
        "REDIS_SOCKET_TIMEOUT",
        "2.0"
    )))
    connect_timeout: float = field(default_factory=lambda: float(os.getenv(
        "REDIS_CONNECT_TIMEOUT",
        "2.0"
    )))

    # Seconds between reconnect probes while the tier is down
    reconnect_interval: float = field(default_factory=lambda: float(os.getenv(
        "REDIS_RECONNECT_INTERVAL",
        "30"
    )))

    @property
    def configured(self) -> bool:
        return bool(self.url or self.host)


@dataclass
class CacheConfig:
    """
    Main cache configuration.

    Settings can be overridden via environment variables:
    - CACHE_ENABLED: Enable/disable caching globally
    - CACHE_KEY_PREFIX: Namespace prepended to every key
    - CACHE_DEFAULT_TTL: Fallback TTL in seconds
    - CACHE_MEMORY_MAX_SIZE: Entry ceiling of the in-process tier
    - CACHE_SWEEP_INTERVAL: Seconds between expiry sweeps
    - CACHE_REDIS_REQUIRED: Refuse to start without a reachable remote tier
    """

    key_prefix: str = field(default_factory=lambda: os.getenv(
        "CACHE_KEY_PREFIX",
        "replivity:cache:"
    ))

    enabled: bool = field(default_factory=lambda: _env_flag("CACHE_ENABLED", "true"))

    default_ttl: timedelta = field(default_factory=lambda: timedelta(seconds=int(os.getenv(
        "CACHE_DEFAULT_TTL",
        "300"
    ))))

    # In-process tier
    memory_max_size: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_MEMORY_MAX_SIZE",
        "10000"
    )))
    sweep_interval: float = field(default_factory=lambda: float(os.getenv(
        "CACHE_SWEEP_INTERVAL",
        "60"
    )))

    # Remote tier
    redis: RedisSettings = field(default_factory=RedisSettings)
    redis_required: bool = field(default_factory=lambda: _env_flag("CACHE_REDIS_REQUIRED", "false"))

    # Query monitoring
    slow_query_ms: float = field(default_factory=lambda: float(os.getenv(
        "CACHE_SLOW_QUERY_MS",
        "1000"
    )))
    query_samples: int = 100

    # Data-layer retry
    retry_attempts: int = field(default_factory=lambda: int(os.getenv("DB_RETRY_ATTEMPTS", "3")))
    retry_base_delay: float = field(default_factory=lambda: float(os.getenv(
        "DB_RETRY_BASE_DELAY",
        "1.0"
    )))

    # Monitoring thresholds
    min_hit_rate: float = field(default_factory=lambda: float(os.getenv(
        "CACHE_MIN_HIT_RATE",
        "0.5"
    )))
    max_latency_ms: float = 50.0


@lru_cache(maxsize=1)
def get_cache_config() -> CacheConfig:
    """Get singleton cache configuration."""
    return CacheConfig()
