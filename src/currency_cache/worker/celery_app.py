from __future__ import annotations

import time
from datetime import datetime
from typing import Any

from celery import Celery, signals
from celery.schedules import crontab

from currency_cache.core.config import settings
from currency_cache.core.logging import configure_logging

DAILY_SCHEDULE_KEY = "daily-currency-fetch"
DAILY_PATTERN = "0 6 * * *"
SCHEDULE_TZ = "UTC"
SCHEDULED_JOB_NAME = "fetch-currency-rates"
MANUAL_JOB_NAME = "manual-currency-fetch"

# 3 attempts in total, retried after 5s then 10s.
RETRY_POLICY: dict[str, Any] = {
    "autoretry_for": (Exception,),
    "max_retries": 2,
    "retry_backoff": 5,
    "retry_backoff_max": 600,
    "retry_jitter": False,
}


def now_ms() -> int:
    return int(time.time() * 1000)


def job_options() -> dict[str, Any]:
    return {
        "attempts": RETRY_POLICY["max_retries"] + 1,
        "backoff": {"type": "exponential", "delay": RETRY_POLICY["retry_backoff"] * 1000},
    }


def cron_schedule(pattern: str, app: Celery | None = None) -> crontab:
    minute, hour, day_of_month, month_of_year, day_of_week = pattern.split()
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month_of_year,
        day_of_week=day_of_week,
        app=app,
    )


def cron_pattern(schedule: crontab) -> str:
    parts = ("minute", "hour", "day_of_month", "month_of_year", "day_of_week")
    return " ".join(str(getattr(schedule, f"_orig_{part}")) for part in parts)


def next_fire_at(schedule: crontab, after: datetime) -> datetime:
    """First firing of ``schedule`` strictly after ``after`` (aware datetime)."""
    last_run_at, delta, _ = schedule.remaining_delta(after)
    return last_run_at + delta


def daily_schedule_entry(app: Celery, timestamp_ms: int) -> dict[str, Any]:
    return {
        "task": SCHEDULED_JOB_NAME,
        "schedule": cron_schedule(DAILY_PATTERN, app),
        "kwargs": {"timestamp": timestamp_ms},
        "options": {"queue": settings.queue_name},
    }


def install_schedule(app: Celery, key: str, entry: dict[str, Any]) -> None:
    beat_schedule = dict(app.conf.beat_schedule or {})
    beat_schedule[key] = entry
    app.conf.beat_schedule = beat_schedule


def make_celery() -> Celery:
    broker = settings.celery_broker_url or settings.redis_dsn()
    backend = settings.celery_result_backend or broker
    app = Celery("currency_cache", broker=broker, backend=backend)
    app.conf.update(
        task_always_eager=settings.environment == "dev",
        task_eager_propagates=True,
        task_track_started=True,
        task_default_queue=settings.queue_name,
        worker_concurrency=1,
        worker_prefetch_multiplier=1,
        broker_connection_retry_on_startup=True,
        timezone=SCHEDULE_TZ,
        enable_utc=True,
    )
    install_schedule(app, DAILY_SCHEDULE_KEY, daily_schedule_entry(app, now_ms()))
    app.autodiscover_tasks(["currency_cache.worker.tasks"])
    return app


@signals.setup_logging.connect
def _configure_worker_logging(**_: Any) -> None:
    configure_logging()


celery_app = make_celery()
