"""
Cached analytics queries for the admin console.

Aggregates across users, generations and billing. These are the most
volatile reads, so their windows are the shortest in the strategy table.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func

from replivity.cache.config import CacheTags, CacheTTL
from replivity.database.models import (
    Billing,
    Generation,
    SecurityEvent,
    SubscriptionStatus,
    User,
)
from replivity.queries.base import BaseQueries, user_tags


class AnalyticsQueries(BaseQueries):

    async def get_dashboard_analytics(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Headline numbers, platform-wide or for one user."""
        def query():
            generations = self.db.query(func.count(Generation.id))
            tokens = self.db.query(func.sum(Generation.tokens_used))
            if user_id is not None:
                generations = generations.filter(Generation.user_id == user_id)
                tokens = tokens.filter(Generation.user_id == user_id)

            result = {
                "generations": generations.scalar() or 0,
                "tokens_used": tokens.scalar() or 0,
            }

            if user_id is None:
                result["users"] = self.db.query(func.count(User.id)).scalar() or 0
                result["active_subscriptions"] = (
                    self.db.query(func.count(Billing.id))
                    .filter(Billing.status == SubscriptionStatus.ACTIVE)
                    .scalar()
                    or 0
                )
                result["revenue"] = self.db.query(func.sum(Billing.amount)).scalar() or 0
            return result

        tags = user_tags(user_id, CacheTags.GENERATION)
        return await self.cache.cache_query(
            "analytics:dashboard",
            lambda: self._fetch(query),
            params={"user_id": user_id},
            tags=tags + [CacheTags.ANALYTICS, CacheTags.USER, CacheTags.BILLING],
            ttl=CacheTTL.DASHBOARD_ANALYTICS,
        )

    async def get_realtime_analytics(self) -> Dict[str, Any]:
        def query():
            now = datetime.utcnow()
            last_hour = now - timedelta(hours=1)
            last_day = now - timedelta(days=1)
            return {
                "generations_last_hour": (
                    self.db.query(func.count(Generation.id))
                    .filter(Generation.created_at >= last_hour)
                    .scalar()
                    or 0
                ),
                "new_users_last_day": (
                    self.db.query(func.count(User.id))
                    .filter(User.created_at >= last_day)
                    .scalar()
                    or 0
                ),
                "security_events_last_hour": (
                    self.db.query(func.count(SecurityEvent.id))
                    .filter(SecurityEvent.created_at >= last_hour)
                    .scalar()
                    or 0
                ),
                "as_of": now.isoformat(),
            }

        return await self.cache.cache_query(
            "analytics:realtime",
            lambda: self._fetch(query),
            tags=[CacheTags.ANALYTICS],
            ttl=CacheTTL.REAL_TIME_ANALYTICS,
        )

    async def get_platform_analytics(self, platform: Optional[str] = None) -> Dict[str, Any]:
        def query():
            q = self.db.query(
                Generation.platform,
                func.count(Generation.id),
                func.count(func.distinct(Generation.user_id)),
                func.sum(Generation.tokens_used),
            )
            if platform:
                q = q.filter(Generation.platform == platform)
            rows = q.group_by(Generation.platform).all()
            return {
                name: {"generations": count, "users": users, "tokens_used": tokens or 0}
                for name, count, users, tokens in rows
            }

        return await self.cache.cache_query(
            "analytics:platform",
            lambda: self._fetch(query),
            params={"platform": platform},
            tags=[CacheTags.ANALYTICS, CacheTags.GENERATION, CacheTags.PLATFORM],
            ttl=CacheTTL.ANALYTICS,
        )
