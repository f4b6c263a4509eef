from __future__ import annotations

from fastapi import APIRouter, Depends

from currency_cache.api.deps import get_queries
from currency_cache.core.errors import CacheError, NotFoundError
from currency_cache.core.responses import ApiError, success_response, utc_now_iso
from currency_cache.modules.rates.schemas import CurrencyRateOut, RatesHashOut
from currency_cache.modules.rates.service import RateQueries

router = APIRouter(prefix="/currency", tags=["currency"])


@router.get("/rates")
async def get_latest_rates(queries: RateQueries = Depends(get_queries)) -> dict:
    try:
        snapshot = await queries.get_latest()
    except CacheError as e:
        raise ApiError(500, "Failed to retrieve exchange rates", str(e)) from e
    if snapshot is None:
        raise NotFoundError("No exchange rates found. Please trigger a manual fetch.")
    return success_response("Exchange rates retrieved successfully", snapshot)


@router.get("/rates-hash")
async def get_rates_hash(queries: RateQueries = Depends(get_queries)) -> dict:
    try:
        rates = await queries.get_all_rates()
    except CacheError as e:
        raise ApiError(500, "Failed to retrieve exchange rates from hash", str(e)) from e
    if not rates:
        raise NotFoundError("No exchange rates found in hash. Please trigger a manual fetch.")
    return success_response(
        "Exchange rates retrieved successfully from hash",
        RatesHashOut(rates=rates, count=len(rates), timestamp=utc_now_iso()),
    )


@router.get("/rates/{currency}")
async def get_currency_rate(
    currency: str, queries: RateQueries = Depends(get_queries)
) -> dict:
    code = currency.strip().upper()
    if not code:
        raise ApiError(400, "Currency code is required")
    try:
        rate = await queries.get_currency_rate(code)
    except CacheError as e:
        raise ApiError(500, "Failed to retrieve currency rate", str(e)) from e
    if rate is None:
        raise NotFoundError(f"Rate not found for currency: {code}")
    return success_response(
        f"Rate for {code} retrieved successfully",
        CurrencyRateOut(currency=code, rate=rate, timestamp=utc_now_iso()),
    )


@router.get("/metadata")
async def get_metadata(queries: RateQueries = Depends(get_queries)) -> dict:
    try:
        metadata = await queries.get_metadata()
    except CacheError as e:
        raise ApiError(500, "Failed to retrieve metadata", str(e)) from e
    if metadata is None:
        raise NotFoundError("No metadata found")
    return success_response("Metadata retrieved successfully", metadata)
