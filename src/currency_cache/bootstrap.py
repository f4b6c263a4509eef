from __future__ import annotations

from currency_cache.core.errors import ConnectionExhausted
from currency_cache.core.logging import get_logger, log_event
from currency_cache.runtime import Runtime

logger = get_logger(__name__)


async def bootstrap(runtime: Runtime) -> None:
    """Register the daily schedule, then connect the store.

    The schedule lives in the Celery beat configuration and does not need the
    store. A store that stays unreachable is logged; reads fail per request and
    the Celery worker reconnects on its own once Redis is back.
    """
    schedule = runtime.orchestrator.register_daily_schedule()
    log_event(
        logger,
        "bootstrap.schedule.registered",
        schedule_key=schedule["key"],
        pattern=schedule["pattern"],
        next=schedule["next"],
    )
    try:
        await runtime.store.connect()
    except ConnectionExhausted:
        log_event(logger, "bootstrap.degraded", reason="store_unreachable")
