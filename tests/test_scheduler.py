from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from celery.utils.time import get_exponential_backoff_interval


def test_next_fire_is_six_utc_daily():
    from currency_cache.worker.celery_app import DAILY_PATTERN, celery_app, cron_schedule, next_fire_at

    schedule = cron_schedule(DAILY_PATTERN, celery_app)
    before_six = datetime(2026, 3, 14, 5, 59, tzinfo=timezone.utc)
    after_six = datetime(2026, 3, 14, 6, 0, 1, tzinfo=timezone.utc)

    assert next_fire_at(schedule, before_six) == datetime(2026, 3, 14, 6, 0, tzinfo=timezone.utc)
    assert next_fire_at(schedule, after_six) == datetime(2026, 3, 15, 6, 0, tzinfo=timezone.utc)


def test_cron_pattern_round_trips():
    from currency_cache.worker.celery_app import cron_pattern, cron_schedule

    assert cron_pattern(cron_schedule("30 7 * * 1")) == "30 7 * * 1"


def test_register_daily_schedule_twice_keeps_one_schedule(make_runtime):
    from currency_cache.worker.celery_app import DAILY_SCHEDULE_KEY, SCHEDULED_JOB_NAME

    runtime = make_runtime()
    first = runtime.orchestrator.register_daily_schedule()
    second = runtime.orchestrator.register_daily_schedule()
    beat_schedule = runtime.orchestrator.app.conf.beat_schedule

    assert list(beat_schedule) == [DAILY_SCHEDULE_KEY] == ["daily-currency-fetch"]
    entry = beat_schedule[DAILY_SCHEDULE_KEY]
    assert entry["task"] == SCHEDULED_JOB_NAME
    assert entry["schedule"].hour == {6} and entry["schedule"].minute == {0}
    assert entry["kwargs"]["timestamp"] == second["template"]["data"]["timestamp"]
    assert second["pattern"] == "0 6 * * *"
    assert second["tz"] == "UTC"
    assert second["template"]["opts"] == {
        "attempts": 3,
        "backoff": {"type": "exponential", "delay": 5000},
    }
    assert second["next"] == first["next"]
    fire = datetime.fromtimestamp(second["next"] / 1000, tz=timezone.utc)
    assert (fire.hour, fire.minute, fire.second) == (6, 0, 0)


def test_status_lists_registered_schedule(make_runtime):
    runtime = make_runtime()
    runtime.orchestrator.register_daily_schedule()

    status = asyncio.run(runtime.orchestrator.status())

    assert [s["key"] for s in status.schedulers] == ["daily-currency-fetch"]
    assert status.schedulers[0]["name"] == "fetch-currency-rates"


def test_jobs_retry_three_times_with_exponential_backoff():
    from currency_cache.worker.tasks import fetch_currency_rates_task, manual_currency_fetch_task

    for task in (fetch_currency_rates_task, manual_currency_fetch_task):
        assert task.max_retries == 2
        assert task.autoretry_for == (Exception,)
        assert task.retry_jitter is False
        delays = [
            get_exponential_backoff_interval(
                factor=task.retry_backoff,
                retries=retries,
                maximum=task.retry_backoff_max,
                full_jitter=task.retry_jitter,
            )
            for retries in range(task.max_retries)
        ]
        assert delays == [5, 10]
