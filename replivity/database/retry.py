"""
Data-layer retry helper.

Retries transient failures with exponential backoff. Integrity violations
(unique / foreign-key constraints) cannot succeed on retry and are
re-raised at once.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import IntegrityError


logger = logging.getLogger(__name__)

T = TypeVar('T')

NON_RETRYABLE_MESSAGES = (
    "unique constraint",
    "foreign key constraint",
)


def is_integrity_error(error: BaseException) -> bool:
    """True for constraint violations that retrying cannot fix."""
    if isinstance(error, IntegrityError):
        return True
    message = str(error).lower()
    return any(marker in message for marker in NON_RETRYABLE_MESSAGES)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` with up to ``max_attempts`` tries.

    The wait after attempt n is ``base_delay * 2 ** (n - 1)`` seconds.
    After the last attempt the last error is raised.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if is_integrity_error(e):
                raise

            last_error = e
            if attempt >= max_attempts:
                break

            delay = base_delay * 2 ** (attempt - 1)
            logger.warning(
                f"Query attempt {attempt}/{max_attempts} failed: {e}. "
                f"Retrying in {delay:.2f}s"
            )
            await sleep(delay)

    logger.error(f"Query failed after {max_attempts} attempts: {last_error}")
    raise last_error
