"""
Shared plumbing for the typed query modules.

Each module class is built from a query cache and a SQLAlchemy session.
Database work runs through ``with_retry`` and results are converted to
JSON-friendly dicts before they reach the cache.
"""

import enum
import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from replivity.cache.config import CacheTags, get_cache_config
from replivity.database.retry import with_retry


logger = logging.getLogger(__name__)

T = TypeVar('T')


def to_plain(value: Any) -> Any:
    """Convert a column value to something JSON can carry."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    return value


def row_to_dict(obj: Any, fields: Iterable[str]) -> Dict[str, Any]:
    return {name: to_plain(getattr(obj, name)) for name in fields}


def date_params(date_from: Optional[datetime], date_to: Optional[datetime]) -> Dict[str, Any]:
    return {"date_from": date_from, "date_to": date_to}


def user_tags(user_id: Optional[str], *tags: str) -> list:
    """Domain tags plus the per-user scope tag of each of them."""
    result = list(tags)
    if user_id is not None:
        result.extend(CacheTags.scoped(tag, user_id) for tag in tags)
    return result


class BaseQueries:
    """Base class of the per-domain cached accessors."""

    def __init__(
        self,
        query_cache,
        db: Session,
        retry_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
    ):
        self.cache = query_cache
        self.db = db

        config = get_cache_config()
        self.retry_attempts = retry_attempts if retry_attempts is not None else config.retry_attempts
        self.retry_base_delay = (
            retry_base_delay if retry_base_delay is not None else config.retry_base_delay
        )

    async def _fetch(self, query: Callable[[], T]) -> T:
        """Run a synchronous session query with retry."""
        async def operation():
            try:
                return query()
            except SQLAlchemyError:
                self.db.rollback()
                raise

        return await with_retry(operation, self.retry_attempts, self.retry_base_delay)

    @staticmethod
    def _in_range(query, column, date_from: Optional[datetime], date_to: Optional[datetime]):
        if date_from is not None:
            query = query.filter(column >= date_from)
        if date_to is not None:
            query = query.filter(column <= date_to)
        return query
