"""
Bundle of every typed query module sharing one cache and one session.
"""

from typing import Optional

from sqlalchemy.orm import Session

from replivity.queries.analytics import AnalyticsQueries
from replivity.queries.billing import BillingQueries
from replivity.queries.blog import BlogQueries
from replivity.queries.generations import GenerationQueries
from replivity.queries.hashtags import HashtagQueries
from replivity.queries.security import SecurityQueries
from replivity.queries.settings import SettingsQueries
from replivity.queries.users import UserQueries


class CachedQueries:
    """
    Entry point of the cached read paths.

    Usage:
        with get_db_context() as db:
            queries = CachedQueries(query_cache, db)
            profile = await queries.users.get_user_by_id(user_id)
    """

    def __init__(
        self,
        query_cache,
        db: Session,
        retry_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
    ):
        self.query_cache = query_cache
        self.db = db

        options = dict(retry_attempts=retry_attempts, retry_base_delay=retry_base_delay)
        self.users = UserQueries(query_cache, db, **options)
        self.generations = GenerationQueries(query_cache, db, **options)
        self.billing = BillingQueries(query_cache, db, **options)
        self.blog = BlogQueries(query_cache, db, **options)
        self.settings = SettingsQueries(query_cache, db, **options)
        self.security = SecurityQueries(query_cache, db, **options)
        self.hashtags = HashtagQueries(query_cache, db, **options)
        self.analytics = AnalyticsQueries(query_cache, db, **options)
