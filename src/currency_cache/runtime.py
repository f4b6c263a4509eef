"""Explicit ownership of the process-wide store, job index and orchestrator."""

from __future__ import annotations

from dataclasses import dataclass

from celery import Celery
from redis.asyncio import Redis

from currency_cache.core.config import Settings, settings as default_settings
from currency_cache.core.store import RedisStore
from currency_cache.modules.jobs.service import JobOrchestrator
from currency_cache.modules.rates.service import RateQueries
from currency_cache.worker.celery_app import celery_app
from currency_cache.worker.registry import JobRegistry


@dataclass(slots=True)
class Runtime:
    settings: Settings
    store: RedisStore
    registry: JobRegistry
    queries: RateQueries
    orchestrator: JobOrchestrator

    async def close(self) -> None:
        await self.store.close()


def build_runtime(
    config: Settings | None = None,
    *,
    redis_client: Redis | None = None,
    app: Celery | None = None,
) -> Runtime:
    cfg = config or default_settings

    store = RedisStore(cfg, client=redis_client)
    registry = JobRegistry(store, cfg.queue_name)
    return Runtime(
        settings=cfg,
        store=store,
        registry=registry,
        queries=RateQueries(store),
        orchestrator=JobOrchestrator(app or celery_app, registry),
    )
