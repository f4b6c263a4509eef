from __future__ import annotations

import json
import time
from datetime import datetime, timezone

from pydantic import ValidationError
from redis.exceptions import RedisError

from currency_cache.core.errors import CacheReadError, CacheWriteError
from currency_cache.core.logging import get_logger, log_event, log_exception, monotonic_ms
from currency_cache.core.store import RedisStore
from currency_cache.modules.rates.schemas import ExchangeRateSnapshot, iso_z

logger = get_logger(__name__)

LATEST_KEY = "exchange:rates:latest"
HISTORY_KEY_PREFIX = "exchange:rates:history:"
RATES_HASH_KEY = "exchange:rates:hash"
METADATA_KEY = "exchange:metadata"

LATEST_TTL_S = 25 * 60 * 60
HISTORY_TTL_S = 7 * 24 * 60 * 60

# Control fields stored in the rate hash next to the per-currency fields.
HASH_CONTROL_FIELDS = frozenset({"base", "timestamp"})


def history_key(day: datetime) -> str:
    return f"{HISTORY_KEY_PREFIX}{day.astimezone(timezone.utc).date().isoformat()}"


class RateCacheWriter:
    """Writes a snapshot into the four cached views.

    The writes are sequential and not wrapped in a transaction: if one fails
    the earlier views keep the new values and the later ones keep the old.
    """

    def __init__(self, store: RedisStore) -> None:
        self._store = store

    async def store(self, snapshot: ExchangeRateSnapshot, *, now: datetime | None = None) -> None:
        now = now or datetime.now(timezone.utc)
        timestamp_ms = snapshot.fetched_at or int(now.timestamp() * 1000)
        if snapshot.fetched_at is None:
            snapshot = snapshot.model_copy(
                update={
                    "fetched_at": timestamp_ms,
                    "fetched_date": iso_z(now),
                }
            )
        blob = snapshot.to_json()
        rates = snapshot.conversion_rates
        client = self._store.client
        start = time.monotonic()
        try:
            await client.set(LATEST_KEY, blob, ex=LATEST_TTL_S)

            if rates:
                if snapshot.base_code:
                    await client.hset(RATES_HASH_KEY, "base", snapshot.base_code)
                await client.hset(RATES_HASH_KEY, "timestamp", str(timestamp_ms))
                for currency, rate in rates.items():
                    await client.hset(RATES_HASH_KEY, currency, repr(rate))

            await client.set(history_key(now), blob, ex=HISTORY_TTL_S)

            await client.hset(
                METADATA_KEY,
                mapping={
                    "lastUpdate": str(timestamp_ms),
                    "lastUpdateDate": iso_z(now),
                    "currencyCount": str(len(rates)),
                    "baseCurrency": snapshot.base_code or "N/A",
                },
            )
        except RedisError as e:
            log_exception(logger, "rates.store.failure", duration_ms=monotonic_ms(start))
            raise CacheWriteError(f"Failed to store exchange rates: {e}") from e

        log_event(
            logger,
            "rates.store.success",
            base=snapshot.base_code,
            rates_count=len(rates),
            duration_ms=monotonic_ms(start),
        )


class RateQueries:
    """Read side of the cache. Empty views return None, store failures raise."""

    def __init__(self, store: RedisStore) -> None:
        self._store = store

    async def get_latest(self) -> ExchangeRateSnapshot | None:
        try:
            raw = await self._store.client.get(LATEST_KEY)
        except RedisError as e:
            log_exception(logger, "rates.read.failure", key=LATEST_KEY)
            raise CacheReadError("Failed to read latest exchange rates") from e
        if not raw:
            return None
        try:
            return ExchangeRateSnapshot.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            log_exception(logger, "rates.read.corrupt", key=LATEST_KEY)
            raise CacheReadError("Cached exchange rates are unreadable") from e

    async def get_currency_rate(self, currency: str) -> float | None:
        code = currency.strip().upper()
        if not code:
            return None
        try:
            raw = await self._store.client.hget(RATES_HASH_KEY, code)
        except RedisError as e:
            log_exception(logger, "rates.read.failure", key=RATES_HASH_KEY, currency=code)
            raise CacheReadError(f"Failed to read rate for {code}") from e
        if raw is None:
            return None
        return float(raw)

    async def get_all_rates(self) -> dict[str, float] | None:
        try:
            raw = await self._store.client.hgetall(RATES_HASH_KEY)
        except RedisError as e:
            log_exception(logger, "rates.read.failure", key=RATES_HASH_KEY)
            raise CacheReadError("Failed to read exchange rates hash") from e
        if not raw:
            return None
        return {
            field: float(value)
            for field, value in raw.items()
            if field not in HASH_CONTROL_FIELDS
        }

    async def get_metadata(self) -> dict[str, str] | None:
        try:
            raw = await self._store.client.hgetall(METADATA_KEY)
        except RedisError as e:
            log_exception(logger, "rates.read.failure", key=METADATA_KEY)
            raise CacheReadError("Failed to read exchange metadata") from e
        return dict(raw) if raw else None
