from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any

from celery import Celery

from currency_cache.core.logging import get_logger, log_event
from currency_cache.modules.jobs.schemas import CleanupResult, JobCounts, JobHandle, QueueStatus
from currency_cache.modules.rates.schemas import iso_z
from currency_cache.worker.celery_app import (
    DAILY_SCHEDULE_KEY,
    MANUAL_JOB_NAME,
    SCHEDULE_TZ,
    cron_pattern,
    daily_schedule_entry,
    install_schedule,
    job_options,
    next_fire_at,
    now_ms,
)
from currency_cache.worker.registry import JobRegistry
from currency_cache.worker.tasks import manual_currency_fetch_task

logger = get_logger(__name__)

DEFAULT_CLEANUP_GRACE_MS = 24 * 60 * 60 * 1000
CLEANUP_LIMIT = 1000


def describe_schedule(key: str, entry: dict[str, Any], *, now: datetime | None = None) -> dict[str, Any]:
    schedule = entry["schedule"]
    fire = next_fire_at(schedule, now or datetime.now(timezone.utc))
    return {
        "key": key,
        "name": entry["task"],
        "pattern": cron_pattern(schedule),
        "tz": SCHEDULE_TZ,
        "next": int(fire.timestamp() * 1000),
        "template": {"data": dict(entry.get("kwargs") or {}), "opts": job_options()},
    }


class JobOrchestrator:
    def __init__(self, app: Celery, registry: JobRegistry) -> None:
        self.app = app
        self.registry = registry

    def register_daily_schedule(self) -> dict[str, Any]:
        """Upsert the daily beat entry; registering again replaces it."""
        entry = daily_schedule_entry(self.app, now_ms())
        install_schedule(self.app, DAILY_SCHEDULE_KEY, entry)
        return describe_schedule(DAILY_SCHEDULE_KEY, entry)

    async def enqueue_manual(self) -> JobHandle:
        job_id = str(uuid.uuid4())
        timestamp = now_ms()
        await self.registry.mark_waiting(job_id, MANUAL_JOB_NAME, timestamp)
        # apply_async blocks on the broker; eager mode runs the job inline.
        async_result = await asyncio.to_thread(
            manual_currency_fetch_task.apply_async,
            kwargs={"timestamp": timestamp},
            task_id=job_id,
        )
        log_event(
            logger,
            "celery.task.enqueued",
            task_name=MANUAL_JOB_NAME,
            celery_task_id=async_result.id,
        )
        return JobHandle(
            job_id=async_result.id,
            job_name=MANUAL_JOB_NAME,
            queued_at=iso_z(datetime.now(timezone.utc)),
        )

    async def status(self) -> QueueStatus:
        counts = await self.registry.get_job_counts()
        beat_schedule = self.app.conf.beat_schedule or {}
        schedulers = [describe_schedule(key, entry) for key, entry in beat_schedule.items()]
        return QueueStatus(
            job_counts=JobCounts(**counts),
            schedulers=sorted(schedulers, key=lambda s: s["next"]),
        )

    async def cleanup(self, grace_period_ms: int = DEFAULT_CLEANUP_GRACE_MS) -> CleanupResult:
        completed = await self.registry.clean(grace_period_ms, CLEANUP_LIMIT, "completed")
        failed = await self.registry.clean(grace_period_ms, CLEANUP_LIMIT, "failed")
        log_event(
            logger,
            "jobs.cleanup.finish",
            grace_period_ms=grace_period_ms,
            completed_removed=len(completed),
            failed_removed=len(failed),
        )
        return CleanupResult(completed=completed, failed=failed)
