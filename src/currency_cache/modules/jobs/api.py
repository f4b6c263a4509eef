from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from kombu.exceptions import OperationalError
from redis.exceptions import RedisError

from currency_cache.api.deps import get_orchestrator
from currency_cache.core.responses import ApiError, success_response
from currency_cache.modules.jobs.service import DEFAULT_CLEANUP_GRACE_MS, JobOrchestrator

router = APIRouter(prefix="/currency", tags=["jobs"])


@router.post("/fetch")
async def trigger_manual_fetch(
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> dict:
    try:
        handle = await orchestrator.enqueue_manual()
    except (RedisError, OperationalError) as e:
        raise ApiError(500, "Failed to trigger manual fetch", str(e)) from e
    return success_response("Manual currency fetch triggered successfully", handle)


@router.get("/queue-status")
async def get_queue_status(
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> dict:
    try:
        status = await orchestrator.status()
    except RedisError as e:
        raise ApiError(500, "Failed to retrieve queue status", str(e)) from e
    return success_response("Queue status retrieved successfully", status)


@router.post("/cleanup")
async def cleanup_queue(
    grace_period_ms: int = Query(DEFAULT_CLEANUP_GRACE_MS, ge=0),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> dict:
    try:
        result = await orchestrator.cleanup(grace_period_ms)
    except RedisError as e:
        raise ApiError(500, "Failed to clean up queue", str(e)) from e
    return success_response("Queue cleanup completed", result)
