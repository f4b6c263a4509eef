from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any

import fakeredis
import httpx
import pytest

# Set env before any currency_cache imports (settings are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")

API_URL = "https://rates.example.test/v6/latest/USD"

UPSTREAM_PAYLOAD: dict[str, Any] = {
    "result": "success",
    "base_code": "USD",
    "conversion_rates": {"EUR": 0.9, "JPY": 150},
}


def _upstream(payload: Any, status_code: int = 200) -> Callable[[httpx.Request], httpx.Response]:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=payload)

    return _handler


def _settings(api_url: str | None = API_URL):
    from currency_cache.core.config import Settings

    return Settings(
        exchange_api_url=api_url,
        redis_connect_retries=2,
        redis_retry_step_s=0.01,
    )


@pytest.fixture(autouse=True)
def _celery_eager_failures_are_returned():
    from currency_cache.worker.celery_app import celery_app

    previous = celery_app.conf.task_eager_propagates
    celery_app.conf.task_eager_propagates = False
    yield
    celery_app.conf.task_eager_propagates = previous


@pytest.fixture()
def upstream():
    """Factory for mock upstream handlers returning a fixed JSON payload."""
    return _upstream


@pytest.fixture()
def upstream_payload() -> dict[str, Any]:
    return {**UPSTREAM_PAYLOAD, "conversion_rates": dict(UPSTREAM_PAYLOAD["conversion_rates"])}


@pytest.fixture()
def make_fetcher():
    from currency_cache.modules.rates.fetcher import RateFetcher

    def _make(*, handler=None, api_url: str | None = API_URL) -> RateFetcher:
        transport = httpx.MockTransport(handler or _upstream(UPSTREAM_PAYLOAD))
        return RateFetcher(_settings(api_url), transport=transport)

    return _make


@pytest.fixture()
def make_runtime(monkeypatch):
    """Builds a Runtime on an in-memory Redis and a mocked upstream API.

    Celery jobs run through ``worker.tasks.build_pipeline``, patched here to
    open their own client on the same fake server. A fake client binds to the
    event loop of its first command, so each runtime is used from one loop.
    """
    from currency_cache.core.store import RedisStore
    from currency_cache.modules.rates.fetcher import RateFetcher
    from currency_cache.modules.rates.service import RateCacheWriter
    from currency_cache.runtime import build_runtime
    from currency_cache.worker import tasks

    def _make(*, handler=None, api_url: str | None = API_URL):
        cfg = _settings(api_url)
        server = fakeredis.FakeServer()
        transport = httpx.MockTransport(handler or _upstream(UPSTREAM_PAYLOAD))

        def _pipeline() -> tasks.RatePipeline:
            store = RedisStore(
                cfg, client=fakeredis.FakeAsyncRedis(server=server, decode_responses=True)
            )
            return tasks.RatePipeline(
                store=store,
                fetcher=RateFetcher(cfg, transport=transport),
                writer=RateCacheWriter(store),
            )

        monkeypatch.setattr(tasks, "build_pipeline", _pipeline)
        return build_runtime(
            cfg,
            redis_client=fakeredis.FakeAsyncRedis(server=server, decode_responses=True),
        )

    return _make


@pytest.fixture()
def run_job():
    """Runs a queued job the way the Celery worker would, eagerly in this thread."""
    from currency_cache.worker import tasks  # noqa: F401  registers the tasks
    from currency_cache.worker.celery_app import MANUAL_JOB_NAME, celery_app

    def _run(job_id: str, job_name: str = MANUAL_JOB_NAME):
        return celery_app.tasks[job_name].apply(kwargs={"timestamp": 0}, task_id=job_id)

    return _run
