from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from currency_cache.api.deps import get_runtime
from currency_cache.core.errors import CurrencyCacheError
from currency_cache.core.logging import get_logger, log_exception
from currency_cache.core.responses import error_response, success_response, utc_now_iso
from currency_cache.modules.jobs.api import router as jobs_router
from currency_cache.modules.rates.api import router as rates_router
from currency_cache.runtime import Runtime

router = APIRouter()
logger = get_logger(__name__)

router.include_router(rates_router, prefix="/api/v1")
router.include_router(jobs_router, prefix="/api/v1")


@router.get("/")
def index() -> dict:
    return success_response(
        "Welcome to the Currency Exchange Rates API!", {"time": utc_now_iso()}
    )


@router.get("/health")
async def health(runtime: Runtime = Depends(get_runtime)) -> JSONResponse:
    store_ok = await runtime.store.health_check()
    queue_status = None
    if store_ok:
        try:
            queue_status = await runtime.orchestrator.status()
        except (RedisError, CurrencyCacheError):
            log_exception(logger, "health.queue.failure")
    healthy = queue_status is not None
    data = {
        "status": "UP" if healthy else "DOWN",
        "redis": "CONNECTED" if store_ok else "DISCONNECTED",
        "queue": queue_status if healthy else "UNAVAILABLE",
        "timestamp": utc_now_iso(),
    }
    if not healthy:
        return JSONResponse(
            status_code=503, content=error_response("Service is unhealthy", data=data)
        )
    return JSONResponse(status_code=200, content=success_response("Service is healthy", data))
