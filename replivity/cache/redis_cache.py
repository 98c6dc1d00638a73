"""
Redis Remote Tier

Thin async wrapper over redis.asyncio used as the shared, out-of-process
tier of the cache store.

- Values are JSON text (see serialization.py)
- Every command is bounded by socket/connect timeouts
- Failures never reach callers: the tier flags itself down and returns a
  neutral value, then allows one reconnect probe per reconnect interval
  (the half-open step of a circuit breaker)
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ConstantBackoff
from redis.exceptions import RedisError

from replivity.cache.config import RedisSettings


logger = logging.getLogger(__name__)

REMOTE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


@dataclass
class RemoteConnectionState:
    """Connection state tracking."""
    connected: bool = False
    failures: int = 0
    last_failure: float = 0.0
    last_attempt: Optional[float] = None
    last_error: Optional[str] = None


class RedisTier:
    """
    Remote key/value tier.

    Operations consumed by the store: get, set_with_expiry, delete,
    keys_by_pattern, ping and close.
    """

    def __init__(
        self,
        settings: Optional[RedisSettings] = None,
        client: Optional[Redis] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or RedisSettings()
        self._client = client
        self._owns_client = client is None
        self._clock = clock
        self.state = RemoteConnectionState()

    @property
    def configured(self) -> bool:
        return self._client is not None or self.settings.configured

    @property
    def connected(self) -> bool:
        return self.state.connected

    def _build_client(self) -> Redis:
        retry = Retry(
            ConstantBackoff(self.settings.retry_delay / 1000),
            self.settings.max_retries,
        )
        options = dict(
            socket_timeout=self.settings.socket_timeout,
            socket_connect_timeout=self.settings.connect_timeout,
            retry=retry,
            decode_responses=True,
        )
        if self.settings.url:
            return Redis.from_url(self.settings.url, **options)
        return Redis(
            host=self.settings.host,
            port=self.settings.port,
            password=self.settings.password,
            db=self.settings.db,
            **options,
        )

    async def connect(self) -> bool:
        """Open the connection and verify it with a ping."""
        if not self.configured:
            return False

        if self._client is None:
            self._client = self._build_client()

        self.state.last_attempt = self._clock()
        try:
            await self._client.ping()
        except REMOTE_ERRORS as e:
            self._mark_down(e, "connect")
            return False

        self._mark_up()
        return True

    async def _available(self) -> bool:
        if self.state.connected:
            return True
        if not self.configured:
            return False

        never_tried = self.state.last_attempt is None
        if never_tried or self._clock() - self.state.last_attempt >= self.settings.reconnect_interval:
            return await self.connect()
        return False

    def _mark_up(self):
        if not self.state.connected:
            logger.info("Redis tier connected")
        self.state.connected = True
        self.state.failures = 0
        self.state.last_error = None

    def _mark_down(self, error: BaseException, operation: str):
        was_connected = self.state.connected
        self.state.connected = False
        self.state.failures += 1
        self.state.last_failure = self._clock()
        self.state.last_error = str(error) or type(error).__name__

        if was_connected or self.state.failures == 1:
            logger.warning(
                f"Redis {operation} failed, serving from memory only: {self.state.last_error}"
            )
        else:
            logger.debug(f"Redis {operation} failed again: {self.state.last_error}")

    # =========================================================================
    # Operations
    # =========================================================================

    async def get(self, key: str) -> Optional[str]:
        if not await self._available():
            return None
        try:
            return await self._client.get(key)
        except REMOTE_ERRORS as e:
            self._mark_down(e, "get")
            return None

    async def set_with_expiry(self, key: str, ttl_seconds: float, value: str) -> bool:
        if not await self._available():
            return False
        try:
            await self._client.setex(key, max(1, math.ceil(ttl_seconds)), value)
            return True
        except REMOTE_ERRORS as e:
            self._mark_down(e, "set")
            return False

    async def delete(self, *keys: str) -> int:
        if not keys or not await self._available():
            return 0
        try:
            return int(await self._client.delete(*keys))
        except REMOTE_ERRORS as e:
            self._mark_down(e, "delete")
            return 0

    async def keys_by_pattern(self, pattern: str) -> List[str]:
        if not await self._available():
            return []
        try:
            return [key async for key in self._client.scan_iter(match=pattern, count=100)]
        except REMOTE_ERRORS as e:
            self._mark_down(e, "scan")
            return []

    async def ping(self) -> bool:
        """Live connectivity probe, independent of the reconnect interval."""
        if not self.configured:
            return False
        if self._client is None:
            return await self.connect()

        try:
            await self._client.ping()
        except REMOTE_ERRORS as e:
            self._mark_down(e, "ping")
            return False

        self._mark_up()
        return True

    async def close(self):
        if self._client is None:
            return
        try:
            await self._client.aclose()
        except REMOTE_ERRORS as e:
            logger.debug(f"Error closing Redis client: {e}")
        if self._owns_client:
            self._client = None
        self.state.connected = False
        self.state.last_attempt = None
        logger.info("Redis tier closed")
