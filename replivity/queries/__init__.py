"""
Typed cached query modules, one per domain.
"""

from replivity.queries.analytics import AnalyticsQueries
from replivity.queries.base import BaseQueries
from replivity.queries.billing import BillingQueries
from replivity.queries.blog import BlogQueries
from replivity.queries.cached import CachedQueries
from replivity.queries.generations import GenerationQueries
from replivity.queries.hashtags import HashtagQueries
from replivity.queries.security import SecurityQueries
from replivity.queries.settings import SettingsQueries
from replivity.queries.users import UserQueries

__all__ = [
    "BaseQueries",
    "CachedQueries",
    "UserQueries",
    "GenerationQueries",
    "BillingQueries",
    "BlogQueries",
    "SettingsQueries",
    "SecurityQueries",
    "HashtagQueries",
    "AnalyticsQueries",
]
