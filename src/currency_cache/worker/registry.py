"""Job-state index kept beside the Celery broker.

Celery runs, retries and schedules the jobs; this index only records where each
job is so that the queue status can be counted and finished jobs cleaned up.
For a queue named ``q``::

    jobs:q:job:<id>     hash with the job record
    jobs:q:<state>      zset per state, score = epoch ms of the last transition
"""

from __future__ import annotations

import json
from typing import Any, Literal

from currency_cache.core.store import RedisStore
from currency_cache.worker.celery_app import now_ms

JobState = Literal["waiting", "active", "completed", "failed", "delayed"]
CleanableState = Literal["completed", "failed"]

JOB_STATES: tuple[JobState, ...] = ("waiting", "active", "completed", "failed", "delayed")


class JobRegistry:
    def __init__(self, store: RedisStore, queue_name: str) -> None:
        self._store = store
        self._prefix = f"jobs:{queue_name}"

    def _key(self, suffix: str) -> str:
        return f"{self._prefix}:{suffix}"

    def _job_key(self, job_id: str) -> str:
        return self._key(f"job:{job_id}")

    async def _transition(self, job_id: str, state: JobState, fields: dict[str, Any]) -> None:
        at = now_ms()
        record = {"id": job_id, "state": state}
        record.update({key: str(value) for key, value in fields.items() if value is not None})
        client = self._store.client
        async with client.pipeline(transaction=True) as pipe:
            for other in JOB_STATES:
                if other != state:
                    pipe.zrem(self._key(other), job_id)
            pipe.zadd(self._key(state), {job_id: at})
            pipe.hset(self._job_key(job_id), mapping=record)
            await pipe.execute()

    async def mark_waiting(self, job_id: str, name: str, timestamp: int) -> None:
        await self._transition(
            job_id, "waiting", {"name": name, "timestamp": timestamp, "attemptsMade": 0}
        )

    async def mark_active(self, job_id: str, name: str) -> None:
        await self._transition(job_id, "active", {"name": name, "processedOn": now_ms()})

    async def mark_completed(
        self, job_id: str, name: str, return_value: dict[str, Any], *, attempts_made: int
    ) -> None:
        await self._transition(
            job_id,
            "completed",
            {
                "name": name,
                "attemptsMade": attempts_made,
                "finishedOn": now_ms(),
                "returnValue": json.dumps(return_value, default=str),
            },
        )

    async def mark_failed(
        self, job_id: str, name: str, reason: str, *, attempts_made: int, will_retry: bool
    ) -> JobState:
        state: JobState = "delayed" if will_retry else "failed"
        await self._transition(
            job_id,
            state,
            {
                "name": name,
                "attemptsMade": attempts_made,
                "failedReason": reason,
                "finishedOn": None if will_retry else now_ms(),
            },
        )
        return state

    async def get_job(self, job_id: str) -> dict[str, Any] | None:
        record = await self._store.client.hgetall(self._job_key(job_id))
        if not record:
            return None
        if "returnValue" in record:
            record["returnValue"] = json.loads(record["returnValue"])
        return record

    async def get_job_counts(self) -> dict[str, int]:
        async with self._store.client.pipeline(transaction=False) as pipe:
            for state in JOB_STATES:
                pipe.zcard(self._key(state))
            counts = await pipe.execute()
        return {state: int(count) for state, count in zip(JOB_STATES, counts)}

    async def clean(
        self, grace_period_ms: int, limit: int, state: CleanableState
    ) -> list[str]:
        """Remove up to ``limit`` jobs in ``state`` finished before the grace period."""
        cutoff = now_ms() - grace_period_ms
        set_key = self._key(state)
        client = self._store.client
        job_ids = await client.zrangebyscore(set_key, "-inf", cutoff, start=0, num=limit)
        if not job_ids:
            return []
        async with client.pipeline(transaction=True) as pipe:
            pipe.zrem(set_key, *job_ids)
            pipe.delete(*[self._job_key(job_id) for job_id in job_ids])
            await pipe.execute()
        return list(job_ids)
