"""
Cached billing queries.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func

from replivity.cache.config import CacheTags, CacheTTL
from replivity.database.models import Billing, SubscriptionStatus
from replivity.queries.base import BaseQueries, date_params, row_to_dict, user_tags


BILLING_FIELDS = (
    "id", "user_id", "plan", "status", "amount", "currency",
    "stripe_customer_id", "stripe_subscription_id",
    "current_period_end", "created_at", "updated_at",
)

ACTIVE_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)


class BillingQueries(BaseQueries):
    """Billing records, subscriptions and revenue."""

    async def get_user_billing(self, user_id: str) -> List[Dict[str, Any]]:
        def query():
            rows = (
                self.db.query(Billing)
                .filter(Billing.user_id == user_id)
                .order_by(desc(Billing.created_at))
                .all()
            )
            return [row_to_dict(row, BILLING_FIELDS) for row in rows]

        return await self.cache.cache_query(
            "billing:user",
            lambda: self._fetch(query),
            params={"user_id": user_id},
            tags=user_tags(user_id, CacheTags.BILLING, CacheTags.USER),
            ttl=CacheTTL.BILLING_DATA,
        )

    async def get_active_subscriptions(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        def query():
            q = self.db.query(Billing).filter(Billing.status.in_(ACTIVE_STATUSES))
            if user_id is not None:
                q = q.filter(Billing.user_id == user_id)
            rows = q.order_by(desc(Billing.created_at)).all()
            return [row_to_dict(row, BILLING_FIELDS) for row in rows]

        return await self.cache.cache_query(
            "billing:subscriptions",
            lambda: self._fetch(query),
            params={"user_id": user_id},
            tags=user_tags(user_id, CacheTags.BILLING) + [CacheTags.SUBSCRIPTION],
            ttl=CacheTTL.SUBSCRIPTION_DATA,
        )

    async def get_revenue_stats(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Revenue in cents, overall and per plan."""
        def query():
            base = self._in_range(self.db.query(Billing), Billing.created_at, date_from, date_to)

            total_revenue, payments = base.with_entities(
                func.sum(Billing.amount),
                func.count(Billing.id),
            ).one()

            by_plan = [
                {"plan": plan, "revenue": revenue or 0, "count": count}
                for plan, revenue, count in (
                    base.with_entities(Billing.plan, func.sum(Billing.amount), func.count(Billing.id))
                    .group_by(Billing.plan)
                    .all()
                )
            ]

            active = base.filter(Billing.status.in_(ACTIVE_STATUSES)).count()

            return {
                "total_revenue": total_revenue or 0,
                "payments": payments or 0,
                "active_subscriptions": active,
                "by_plan": sorted(by_plan, key=lambda item: item["revenue"], reverse=True),
            }

        return await self.cache.cache_query(
            "billing:revenue",
            lambda: self._fetch(query),
            params=date_params(date_from, date_to),
            tags=[CacheTags.BILLING, CacheTags.ANALYTICS],
            ttl=CacheTTL.BILLING_DATA,
        )
