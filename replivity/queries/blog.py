"""
Cached blog queries.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func

from replivity.cache.config import CacheTags, CacheTTL
from replivity.database.models import BlogPost, PostStatus
from replivity.queries.base import BaseQueries, row_to_dict


POST_SUMMARY_FIELDS = ("id", "title", "slug", "excerpt", "view_count", "published_at")
POST_FIELDS = POST_SUMMARY_FIELDS + ("author_id", "content", "status", "created_at", "updated_at")


class BlogQueries(BaseQueries):
    """Published posts and blog statistics."""

    async def get_published_posts(self, limit: int = 10, offset: int = 0) -> List[Dict[str, Any]]:
        def query():
            rows = (
                self.db.query(BlogPost)
                .filter(BlogPost.status == PostStatus.PUBLISHED)
                .order_by(desc(BlogPost.published_at))
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [row_to_dict(row, POST_SUMMARY_FIELDS) for row in rows]

        return await self.cache.cache_query(
            "blog:posts",
            lambda: self._fetch(query),
            params={"limit": limit, "offset": offset},
            tags=[CacheTags.BLOG, CacheTags.POST],
            ttl=CacheTTL.BLOG_POSTS,
        )

    async def get_blog_post_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        def query():
            post = (
                self.db.query(BlogPost)
                .filter(BlogPost.slug == slug, BlogPost.status == PostStatus.PUBLISHED)
                .first()
            )
            return row_to_dict(post, POST_FIELDS) if post else None

        return await self.cache.cache_query(
            "blog:posts:slug",
            lambda: self._fetch(query),
            params={"slug": slug},
            tags=[CacheTags.BLOG, CacheTags.POST, CacheTags.scoped(CacheTags.POST, slug)],
            ttl=CacheTTL.BLOG_POSTS,
        )

    async def get_blog_stats(self) -> Dict[str, Any]:
        def query():
            by_status = dict(
                (status.value, count)
                for status, count in (
                    self.db.query(BlogPost.status, func.count(BlogPost.id))
                    .group_by(BlogPost.status)
                    .all()
                )
            )
            total_views = self.db.query(func.sum(BlogPost.view_count)).scalar()
            return {
                "total": sum(by_status.values()),
                "published": by_status.get(PostStatus.PUBLISHED.value, 0),
                "drafts": by_status.get(PostStatus.DRAFT.value, 0),
                "archived": by_status.get(PostStatus.ARCHIVED.value, 0),
                "total_views": total_views or 0,
            }

        return await self.cache.cache_query(
            "blog:stats",
            lambda: self._fetch(query),
            tags=[CacheTags.BLOG, CacheTags.ANALYTICS],
            ttl=CacheTTL.BLOG_STATS,
        )
