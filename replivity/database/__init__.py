"""
Database layer: models, sessions, query timing and retry.
"""

from .models import (
    Base,
    User,
    Usage,
    Generation,
    Billing,
    BlogPost,
    Setting,
    SecurityEvent,
    HashtagSet,
    HashtagPerformance,
    UserRole,
    SubscriptionStatus,
    PostStatus,
    SecuritySeverity,
)
from .session import (
    get_database_url,
    create_db_engine,
    get_engine,
    get_session_factory,
    get_db,
    get_db_context,
    init_db,
    check_db_connection,
)
from .monitoring import QueryMonitor, QueryStats
from .retry import with_retry, is_integrity_error

__all__ = [
    # Models
    "Base",
    "User",
    "Usage",
    "Generation",
    "Billing",
    "BlogPost",
    "Setting",
    "SecurityEvent",
    "HashtagSet",
    "HashtagPerformance",
    "UserRole",
    "SubscriptionStatus",
    "PostStatus",
    "SecuritySeverity",
    # Session
    "get_database_url",
    "create_db_engine",
    "get_engine",
    "get_session_factory",
    "get_db",
    "get_db_context",
    "init_db",
    "check_db_connection",
    # Monitoring and retry
    "QueryMonitor",
    "QueryStats",
    "with_retry",
    "is_integrity_error",
]
