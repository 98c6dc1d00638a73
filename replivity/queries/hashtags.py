"""
Cached hashtag queries.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func, or_

from replivity.cache.config import CacheTags, CacheTTL
from replivity.database.models import HashtagPerformance, HashtagSet
from replivity.queries.base import BaseQueries, date_params, row_to_dict, user_tags


SET_FIELDS = ("id", "user_id", "name", "platform", "hashtags", "is_public", "created_at")


class HashtagQueries(BaseQueries):

    async def get_hashtag_sets(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """A user's own sets plus public ones; all public sets without a user."""
        def query():
            q = self.db.query(HashtagSet)
            if user_id is not None:
                q = q.filter(or_(HashtagSet.user_id == user_id, HashtagSet.is_public.is_(True)))
            else:
                q = q.filter(HashtagSet.is_public.is_(True))
            rows = q.order_by(desc(HashtagSet.created_at)).all()
            return [row_to_dict(row, SET_FIELDS) for row in rows]

        return await self.cache.cache_query(
            "hashtag:sets",
            lambda: self._fetch(query),
            params={"user_id": user_id},
            tags=user_tags(user_id, CacheTags.HASHTAG) + [CacheTags.SET],
            ttl=CacheTTL.HASHTAG_DATA,
        )

    async def get_hashtag_performance(
        self,
        hashtag_set_id: str,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        def query():
            base = self.db.query(HashtagPerformance).filter(
                HashtagPerformance.hashtag_set_id == hashtag_set_id
            )
            base = self._in_range(base, HashtagPerformance.recorded_at, date_from, date_to)

            impressions, engagements, clicks, samples = base.with_entities(
                func.sum(HashtagPerformance.impressions),
                func.sum(HashtagPerformance.engagements),
                func.sum(HashtagPerformance.clicks),
                func.count(HashtagPerformance.id),
            ).one()

            impressions = impressions or 0
            engagements = engagements or 0
            return {
                "hashtag_set_id": hashtag_set_id,
                "impressions": impressions,
                "engagements": engagements,
                "clicks": clicks or 0,
                "samples": samples or 0,
                "engagement_rate": round(engagements / impressions * 100, 2) if impressions else 0.0,
            }

        return await self.cache.cache_query(
            "hashtag:performance",
            lambda: self._fetch(query),
            params={"hashtag_set_id": hashtag_set_id, **date_params(date_from, date_to)},
            tags=[
                CacheTags.HASHTAG,
                CacheTags.PERFORMANCE,
                CacheTags.ANALYTICS,
                CacheTags.scoped(CacheTags.PERFORMANCE, hashtag_set_id),
            ],
            ttl=CacheTTL.HASHTAG_PERFORMANCE,
        )
