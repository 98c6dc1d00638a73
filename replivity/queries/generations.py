"""
Cached generation queries.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import case, desc, func

from replivity.cache.config import CacheTags, CacheTTL
from replivity.database.models import Generation
from replivity.queries.base import BaseQueries, date_params, row_to_dict, user_tags


GENERATION_FIELDS = (
    "id", "user_id", "platform", "tool", "prompt", "output",
    "tokens_used", "success", "created_at",
)


class GenerationQueries(BaseQueries):
    """Generation history and aggregate statistics."""

    async def get_user_generations(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
        platform: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        def query():
            q = self.db.query(Generation).filter(Generation.user_id == user_id)
            if platform:
                q = q.filter(Generation.platform == platform)
            rows = q.order_by(desc(Generation.created_at)).offset(offset).limit(limit).all()
            return [row_to_dict(row, GENERATION_FIELDS) for row in rows]

        return await self.cache.cache_query(
            "generation:user",
            lambda: self._fetch(query),
            params={"user_id": user_id, "limit": limit, "offset": offset, "platform": platform},
            tags=user_tags(user_id, CacheTags.GENERATION, CacheTags.USER),
            ttl=CacheTTL.GENERATION_QUERIES,
        )

    async def get_generation_stats(
        self,
        user_id: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Totals, success rate, token spend and per-tool counts."""
        def query():
            base = self.db.query(Generation)
            if user_id is not None:
                base = base.filter(Generation.user_id == user_id)
            base = self._in_range(base, Generation.created_at, date_from, date_to)

            total, successful, tokens = base.with_entities(
                func.count(Generation.id),
                func.sum(case((Generation.success.is_(True), 1), else_=0)),
                func.sum(Generation.tokens_used),
            ).one()

            by_tool = dict(
                base.with_entities(Generation.tool, func.count(Generation.id))
                .group_by(Generation.tool)
                .all()
            )

            total = total or 0
            successful = successful or 0
            return {
                "total": total,
                "successful": successful,
                "failed": total - successful,
                "success_rate": round(successful / total * 100, 2) if total else 0.0,
                "tokens_used": tokens or 0,
                "by_tool": by_tool,
            }

        params = {"user_id": user_id, **date_params(date_from, date_to)}
        return await self.cache.cache_query(
            "generation:stats",
            lambda: self._fetch(query),
            params=params,
            tags=user_tags(user_id, CacheTags.GENERATION) + [CacheTags.ANALYTICS],
            ttl=CacheTTL.GENERATION_STATS,
        )

    async def get_platform_stats(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        def query():
            q = self.db.query(
                Generation.platform,
                func.count(Generation.id),
                func.count(func.distinct(Generation.user_id)),
            )
            q = self._in_range(q, Generation.created_at, date_from, date_to)
            rows = q.group_by(Generation.platform).order_by(desc(func.count(Generation.id))).all()
            return [
                {"platform": platform, "generations": count, "users": users}
                for platform, count, users in rows
            ]

        return await self.cache.cache_query(
            "generation:platform",
            lambda: self._fetch(query),
            params=date_params(date_from, date_to),
            tags=[CacheTags.GENERATION, CacheTags.ANALYTICS, CacheTags.PLATFORM],
            ttl=CacheTTL.GENERATION_STATS,
        )
