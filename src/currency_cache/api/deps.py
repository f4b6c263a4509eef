from __future__ import annotations

from fastapi import Depends, Request

from currency_cache.modules.jobs.service import JobOrchestrator
from currency_cache.modules.rates.service import RateQueries
from currency_cache.runtime import Runtime


def get_runtime(request: Request) -> Runtime:
    runtime: Runtime = request.app.state.runtime
    return runtime


def get_queries(runtime: Runtime = Depends(get_runtime)) -> RateQueries:
    return runtime.queries


def get_orchestrator(runtime: Runtime = Depends(get_runtime)) -> JobOrchestrator:
    return runtime.orchestrator
