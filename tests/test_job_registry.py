from __future__ import annotations

import asyncio


def test_job_moves_through_states(make_runtime):
    runtime = make_runtime()
    registry = runtime.registry

    async def scenario():
        seen = []
        await registry.mark_waiting("job-1", "manual-currency-fetch", 1)
        seen.append(await registry.get_job_counts())
        await registry.mark_active("job-1", "manual-currency-fetch")
        seen.append(await registry.get_job_counts())
        await registry.mark_completed(
            "job-1", "manual-currency-fetch", {"currencyCount": 2}, attempts_made=1
        )
        seen.append(await registry.get_job_counts())
        return seen, await registry.get_job("job-1")

    (waiting, active, done), job = asyncio.run(scenario())

    assert waiting == {"waiting": 1, "active": 0, "completed": 0, "failed": 0, "delayed": 0}
    assert active == {"waiting": 0, "active": 1, "completed": 0, "failed": 0, "delayed": 0}
    assert done == {"waiting": 0, "active": 0, "completed": 1, "failed": 0, "delayed": 0}
    assert job["state"] == "completed"
    assert job["name"] == "manual-currency-fetch"
    assert job["timestamp"] == "1"
    assert job["attemptsMade"] == "1"
    assert job["returnValue"] == {"currencyCount": 2}
    assert "processedOn" in job and "finishedOn" in job


def test_failed_attempt_is_delayed_until_the_last_one(make_runtime):
    runtime = make_runtime()
    registry = runtime.registry

    async def scenario():
        await registry.mark_waiting("job-1", "fetch-currency-rates", 1)
        states = []
        for attempt in (1, 2, 3):
            await registry.mark_active("job-1", "fetch-currency-rates")
            states.append(
                await registry.mark_failed(
                    "job-1",
                    "fetch-currency-rates",
                    "upstream down",
                    attempts_made=attempt,
                    will_retry=attempt < 3,
                )
            )
        return states, await registry.get_job("job-1"), await registry.get_job_counts()

    states, job, counts = asyncio.run(scenario())

    assert states == ["delayed", "delayed", "failed"]
    assert job["state"] == "failed"
    assert job["attemptsMade"] == "3"
    assert job["failedReason"] == "upstream down"
    assert counts["failed"] == 1 and counts["delayed"] == 0 and counts["active"] == 0


def test_unknown_job_is_none(make_runtime):
    runtime = make_runtime()
    assert asyncio.run(runtime.registry.get_job("missing")) is None


def test_clean_removes_only_old_finished_jobs_up_to_limit(make_runtime):
    runtime = make_runtime()
    registry = runtime.registry

    async def scenario():
        ids = ["1", "2", "3"]
        for job_id in ids:
            await registry.mark_completed(job_id, "manual-currency-fetch", {}, attempts_made=1)
        # Age the first two jobs.
        await runtime.store.client.zadd(registry._key("completed"), {"1": 1, "2": 1})

        removed_limited = await registry.clean(60_000, 1, "completed")
        removed_rest = await registry.clean(60_000, 1000, "completed")
        return (
            removed_limited,
            removed_rest,
            await registry.get_job_counts(),
            await registry.get_job("1"),
            await registry.get_job("3"),
        )

    removed_limited, removed_rest, counts, first, last = asyncio.run(scenario())

    assert removed_limited == ["1"]
    assert removed_rest == ["2"]
    assert counts["completed"] == 1
    assert first is None
    assert last["state"] == "completed"
