from __future__ import annotations

import time
from datetime import datetime, timezone

import httpx
from pydantic import ValidationError

from currency_cache.core.config import Settings
from currency_cache.core.errors import ConfigError, UpstreamError
from currency_cache.core.logging import get_logger, log_event, log_exception, monotonic_ms
from currency_cache.modules.rates.schemas import ExchangeRateSnapshot, iso_z

logger = get_logger(__name__)


class RateFetcher:
    """Pulls one snapshot from the upstream exchange-rate API.

    No retry at this level; a failed fetch fails the job and the queue
    retries the job with backoff.
    """

    def __init__(
        self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self._settings = settings
        self._transport = transport

    async def fetch(self) -> ExchangeRateSnapshot:
        url = self._settings.exchange_api_url
        if not url:
            raise ConfigError("Exchange API credentials not configured")

        start = time.monotonic()
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self._settings.exchange_api_timeout_s,
                follow_redirects=True,
            ) as client:
                resp = await client.get(url)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            log_exception(
                logger,
                "rates.fetch.failure",
                http_status=e.response.status_code,
                duration_ms=monotonic_ms(start),
            )
            raise UpstreamError(
                f"Exchange rate API returned {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            log_exception(logger, "rates.fetch.failure", duration_ms=monotonic_ms(start))
            raise UpstreamError(f"Exchange rate API request failed: {e}") from e
        except ValueError as e:
            raise UpstreamError("Exchange rate API returned a non-JSON body") from e

        if not isinstance(data, dict) or not data.get("conversion_rates"):
            raise UpstreamError("Invalid response from exchange rate API")

        now = datetime.now(timezone.utc)
        try:
            snapshot = ExchangeRateSnapshot.model_validate(
                {
                    **data,
                    "fetchedAt": int(now.timestamp() * 1000),
                    "fetchedDate": iso_z(now),
                }
            )
        except ValidationError as e:
            raise UpstreamError("Invalid response from exchange rate API") from e

        log_event(
            logger,
            "rates.fetch.success",
            base=snapshot.base_code,
            rates_count=len(snapshot.conversion_rates),
            duration_ms=monotonic_ms(start),
        )
        return snapshot
