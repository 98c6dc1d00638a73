"""
Cached security queries.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func

from replivity.cache.config import CacheTags, CacheTTL
from replivity.database.models import SecurityEvent
from replivity.queries.base import BaseQueries, date_params, row_to_dict


EVENT_FIELDS = ("id", "user_id", "event_type", "severity", "ip_address", "details", "created_at")


class SecurityQueries(BaseQueries):

    async def get_recent_security_events(self, limit: int = 50) -> List[Dict[str, Any]]:
        def query():
            rows = (
                self.db.query(SecurityEvent)
                .order_by(desc(SecurityEvent.created_at))
                .limit(limit)
                .all()
            )
            return [row_to_dict(row, EVENT_FIELDS) for row in rows]

        return await self.cache.cache_query(
            "security:events",
            lambda: self._fetch(query),
            params={"limit": limit},
            tags=[CacheTags.SECURITY],
            ttl=CacheTTL.SECURITY_EVENTS,
        )

    async def get_security_stats(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        def query():
            base = self._in_range(
                self.db.query(SecurityEvent), SecurityEvent.created_at, date_from, date_to
            )
            by_severity = {
                severity.value: count
                for severity, count in (
                    base.with_entities(SecurityEvent.severity, func.count(SecurityEvent.id))
                    .group_by(SecurityEvent.severity)
                    .all()
                )
            }
            by_type = dict(
                base.with_entities(SecurityEvent.event_type, func.count(SecurityEvent.id))
                .group_by(SecurityEvent.event_type)
                .all()
            )
            return {
                "total": sum(by_severity.values()),
                "by_severity": by_severity,
                "by_type": by_type,
            }

        return await self.cache.cache_query(
            "security:stats",
            lambda: self._fetch(query),
            params=date_params(date_from, date_to),
            tags=[CacheTags.SECURITY, CacheTags.ANALYTICS],
            ttl=CacheTTL.SECURITY_STATS,
        )
