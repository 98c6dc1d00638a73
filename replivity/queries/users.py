"""
Cached user queries.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import desc, func

from replivity.cache.config import CacheTags, CacheTTL
from replivity.database.models import Billing, Generation, SubscriptionStatus, Usage, User
from replivity.queries.base import BaseQueries, date_params, row_to_dict, user_tags


USER_FIELDS = ("id", "email", "name", "role", "plan", "is_active", "created_at", "updated_at")
BILLING_SUMMARY_FIELDS = ("plan", "status", "amount", "currency", "current_period_end")
USAGE_FIELDS = ("metric", "count", "quota", "period_start")


class UserQueries(BaseQueries):
    """User profile, dashboard and head-count accessors."""

    def _profile_tags(self, user_id: str):
        return user_tags(user_id, CacheTags.USER) + [CacheTags.USER_PROFILE]

    async def get_user_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        def query():
            user = self.db.get(User, user_id)
            return row_to_dict(user, USER_FIELDS) if user else None

        return await self.cache.cache_query(
            "user:profile",
            lambda: self._fetch(query),
            params={"user_id": user_id},
            tags=self._profile_tags(user_id),
            ttl=CacheTTL.USER_DATA,
        )

    async def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        email = email.strip().lower()

        def query():
            user = self.db.query(User).filter(func.lower(User.email) == email).first()
            return row_to_dict(user, USER_FIELDS) if user else None

        return await self.cache.cache_query(
            "user:profile:email",
            lambda: self._fetch(query),
            params={"email": email},
            tags=[CacheTags.USER, CacheTags.USER_PROFILE],
            ttl=CacheTTL.USER_DATA,
        )

    async def get_user_dashboard_data(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Profile plus generation counts, current plan and usage."""
        def query():
            user = self.db.get(User, user_id)
            if user is None:
                return None

            since = datetime.utcnow() - timedelta(days=30)
            total_generations = (
                self.db.query(func.count(Generation.id))
                .filter(Generation.user_id == user_id)
                .scalar()
            )
            recent_generations = (
                self.db.query(func.count(Generation.id))
                .filter(Generation.user_id == user_id, Generation.created_at >= since)
                .scalar()
            )
            billing = (
                self.db.query(Billing)
                .filter(Billing.user_id == user_id)
                .order_by(desc(Billing.created_at))
                .first()
            )
            usage = (
                self.db.query(Usage)
                .filter(Usage.user_id == user_id)
                .order_by(desc(Usage.period_start))
                .all()
            )

            return {
                "user": row_to_dict(user, USER_FIELDS),
                "generations": {
                    "total": total_generations or 0,
                    "last_30_days": recent_generations or 0,
                },
                "billing": row_to_dict(billing, BILLING_SUMMARY_FIELDS) if billing else None,
                "usage": [row_to_dict(row, USAGE_FIELDS) for row in usage],
            }

        tags = user_tags(user_id, CacheTags.USER, CacheTags.GENERATION, CacheTags.BILLING)
        return await self.cache.cache_query(
            "user:dashboard",
            lambda: self._fetch(query),
            params={"user_id": user_id},
            tags=tags + [CacheTags.ANALYTICS, CacheTags.USER_DASHBOARD],
            ttl=CacheTTL.DASHBOARD_ANALYTICS,
        )

    async def get_total_users(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> int:
        def query():
            q = self._in_range(self.db.query(func.count(User.id)), User.created_at, date_from, date_to)
            return q.scalar() or 0

        return await self.cache.cache_query(
            "analytics:users:total",
            lambda: self._fetch(query),
            params=date_params(date_from, date_to),
            tags=[CacheTags.USER, CacheTags.ANALYTICS],
            ttl=CacheTTL.ANALYTICS,
        )

    async def get_user_with_active_subscription(self, user_id: str) -> Optional[Dict[str, Any]]:
        def query():
            user = self.db.get(User, user_id)
            if user is None:
                return None
            subscription = (
                self.db.query(Billing)
                .filter(
                    Billing.user_id == user_id,
                    Billing.status.in_([SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING]),
                )
                .order_by(desc(Billing.created_at))
                .first()
            )
            return {
                "user": row_to_dict(user, USER_FIELDS),
                "subscription": (
                    row_to_dict(subscription, BILLING_SUMMARY_FIELDS) if subscription else None
                ),
            }

        return await self.cache.cache_query(
            "user:subscription",
            lambda: self._fetch(query),
            params={"user_id": user_id},
            tags=user_tags(user_id, CacheTags.USER, CacheTags.BILLING) + [CacheTags.SUBSCRIPTION],
            ttl=timedelta(minutes=2),
        )

    async def get_user_usage_stats(self, user_id: str) -> Dict[str, Any]:
        def query():
            rows = (
                self.db.query(Usage)
                .filter(Usage.user_id == user_id)
                .order_by(desc(Usage.period_start))
                .all()
            )
            current = {}
            for row in rows:
                # Newest period wins per metric
                current.setdefault(row.metric, row_to_dict(row, USAGE_FIELDS))
            return {"user_id": user_id, "metrics": current}

        return await self.cache.cache_query(
            "user:usage",
            lambda: self._fetch(query),
            params={"user_id": user_id},
            tags=user_tags(user_id, CacheTags.USER, CacheTags.GENERATION) + [CacheTags.ANALYTICS],
            ttl=timedelta(minutes=1),
        )
