"""
Cached settings queries.
"""

from typing import Any, Dict

from replivity.cache.config import CacheTags, CacheTTL
from replivity.database.models import Setting
from replivity.queries.base import BaseQueries, user_tags


class SettingsQueries(BaseQueries):

    async def get_user_settings(self, user_id: str) -> Dict[str, Any]:
        def query():
            rows = self.db.query(Setting).filter(Setting.user_id == user_id).all()
            return {row.key: row.value for row in rows}

        return await self.cache.cache_query(
            "settings:user",
            lambda: self._fetch(query),
            params={"user_id": user_id},
            tags=user_tags(user_id, CacheTags.SETTINGS, CacheTags.USER),
            ttl=CacheTTL.USER_SETTINGS,
        )

    async def get_all_settings(self) -> Dict[str, Any]:
        """Global settings (rows without an owner)."""
        def query():
            rows = self.db.query(Setting).filter(Setting.user_id.is_(None)).all()
            return {row.key: row.value for row in rows}

        return await self.cache.cache_query(
            "settings:global",
            lambda: self._fetch(query),
            tags=[CacheTags.SETTINGS],
            ttl=CacheTTL.SETTINGS,
        )
