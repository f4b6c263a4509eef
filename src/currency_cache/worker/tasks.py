from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Any

from celery import Task

from currency_cache.core.config import settings
from currency_cache.core.logging import (
    get_logger,
    log_event,
    log_exception,
    monotonic_ms,
    reset_job_context,
    set_job_context,
)
from currency_cache.core.store import RedisStore
from currency_cache.modules.rates.fetcher import RateFetcher
from currency_cache.modules.rates.service import RateCacheWriter
from currency_cache.worker.celery_app import (
    MANUAL_JOB_NAME,
    RETRY_POLICY,
    SCHEDULED_JOB_NAME,
    celery_app,
)
from currency_cache.worker.registry import JobRegistry

logger = get_logger(__name__)


@dataclass(slots=True)
class RatePipeline:
    store: RedisStore
    fetcher: RateFetcher
    writer: RateCacheWriter


def build_pipeline() -> RatePipeline:
    # A fresh client per job: every job runs on its own event loop.
    store = RedisStore(settings)
    return RatePipeline(store=store, fetcher=RateFetcher(settings), writer=RateCacheWriter(store))


async def fetch_and_store_rates(*, fetcher: RateFetcher, writer: RateCacheWriter) -> dict[str, Any]:
    """Fetch then store; the same workflow for scheduled and manual jobs."""
    snapshot = await fetcher.fetch()
    log_event(
        logger,
        "task.fetched",
        base=snapshot.base_code,
        rates_count=len(snapshot.conversion_rates),
    )
    await writer.store(snapshot)
    return {
        "base": snapshot.base_code,
        "currencyCount": len(snapshot.conversion_rates),
        "fetchedAt": snapshot.fetched_at,
    }


async def run_job(job_id: str, job_name: str, *, attempt: int, max_attempts: int) -> dict[str, Any]:
    pipeline = build_pipeline()
    registry = JobRegistry(pipeline.store, settings.queue_name)
    try:
        await registry.mark_active(job_id, job_name)
        try:
            result = await fetch_and_store_rates(fetcher=pipeline.fetcher, writer=pipeline.writer)
        except Exception as e:
            await registry.mark_failed(
                job_id,
                job_name,
                str(e),
                attempts_made=attempt,
                will_retry=attempt < max_attempts,
            )
            raise
        await registry.mark_completed(job_id, job_name, result, attempts_made=attempt)
        return result
    finally:
        await pipeline.store.close()


def _execute(task: Task, job_name: str) -> dict[str, Any]:
    task_id = getattr(task.request, "id", None) or str(uuid.uuid4())
    attempt = task.request.retries + 1
    token = set_job_context(task_id)
    start = time.monotonic()
    log_event(
        logger,
        "celery.task.start",
        task_name=job_name,
        celery_task_id=task_id,
        attempt=attempt,
    )
    try:
        result = asyncio.run(
            run_job(task_id, job_name, attempt=attempt, max_attempts=task.max_retries + 1)
        )
        log_event(
            logger,
            "celery.task.finish",
            task_name=job_name,
            celery_task_id=task_id,
            currency_count=result["currencyCount"],
            duration_ms=monotonic_ms(start),
        )
        return result
    except Exception:
        log_exception(
            logger,
            "celery.task.error",
            task_name=job_name,
            celery_task_id=task_id,
            attempt=attempt,
            duration_ms=monotonic_ms(start),
        )
        raise
    finally:
        reset_job_context(token)


@celery_app.task(name=SCHEDULED_JOB_NAME, bind=True, **RETRY_POLICY)
def fetch_currency_rates_task(self, timestamp: int | None = None) -> dict[str, Any]:
    return _execute(self, SCHEDULED_JOB_NAME)


@celery_app.task(name=MANUAL_JOB_NAME, bind=True, **RETRY_POLICY)
def manual_currency_fetch_task(self, timestamp: int | None = None) -> dict[str, Any]:
    return _execute(self, MANUAL_JOB_NAME)
