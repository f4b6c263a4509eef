from __future__ import annotations

import logging
import time

from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import AbstractBackoff, NoBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from currency_cache.core.config import Settings
from currency_cache.core.errors import ConnectionExhausted
from currency_cache.core.logging import get_logger, log_event, log_exception, monotonic_ms

logger = get_logger(__name__)

RECONNECT_CAP_S = 5.0


class LinearBackoff(AbstractBackoff):
    """attempt=1 => 1s, attempt=2 => 2s, ... capped at 5s."""

    def __init__(self, step: float = 1.0, cap: float = RECONNECT_CAP_S) -> None:
        self._step = step
        self._cap = cap

    def reset(self) -> None:
        pass

    def compute(self, failures: int) -> float:
        return min(failures * self._step, self._cap)


def _connect_policy(settings: Settings) -> Retry:
    return Retry(
        LinearBackoff(step=settings.redis_retry_step_s),
        settings.redis_connect_retries,
        supported_errors=(RedisConnectionError, RedisTimeoutError),
    )


class RedisStore:
    """Owns the single Redis connection pool of the process.

    Commands retry once and fail fast; the bounded reconnect policy only
    applies to ``connect()``.
    """

    def __init__(self, settings: Settings, *, client: Redis | None = None) -> None:
        self._settings = settings
        self._client = client
        self._closed = False

    @property
    def client(self) -> Redis:
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _create_client(self) -> Redis:
        s = self._settings
        options = {
            "decode_responses": True,
            "socket_connect_timeout": s.redis_connect_timeout_s,
            "socket_timeout": s.redis_socket_timeout_s,
            "retry": Retry(NoBackoff(), 1),
            "retry_on_error": [RedisConnectionError, RedisTimeoutError],
        }
        if s.redis_url:
            return Redis.from_url(s.redis_url, **options)
        return Redis(
            host=s.redis_host,
            port=s.redis_port,
            password=s.redis_password or None,
            **options,
        )

    async def connect(self) -> None:
        start = time.monotonic()
        policy = _connect_policy(self._settings)
        attempts = 0

        async def _ping():
            nonlocal attempts
            attempts += 1
            return await self.client.ping()

        async def _on_failure(error: RedisError) -> None:
            log_event(
                logger,
                "store.connect.retry",
                level=logging.WARNING,
                attempt=attempts,
                error=str(error),
            )

        try:
            await policy.call_with_retry(_ping, _on_failure)
        except (RedisConnectionError, RedisTimeoutError) as e:
            log_exception(
                logger,
                "store.connect.failure",
                attempts=attempts,
                duration_ms=monotonic_ms(start),
            )
            raise ConnectionExhausted(
                f"Redis unreachable after {attempts} connection attempts"
            ) from e
        self._closed = False
        log_event(logger, "store.connect.success", attempts=attempts, duration_ms=monotonic_ms(start))

    async def close(self) -> None:
        if self._client is None or self._closed:
            return
        await self._client.aclose()
        self._closed = True
        log_event(logger, "store.close.success")

    async def health_check(self) -> bool:
        try:
            pong = await self.client.ping()
        except RedisError as e:
            log_event(
                logger,
                "store.health.failure",
                error_type=type(e).__name__,
                error=str(e),
            )
            return False
        return bool(pong)
