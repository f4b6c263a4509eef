from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class JobHandle(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    job_name: str = Field(alias="jobName")
    queued_at: str = Field(alias="queuedAt")


class JobCounts(BaseModel):
    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0


class QueueStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_counts: JobCounts = Field(alias="jobCounts")
    schedulers: list[dict[str, Any]]


class CleanupResult(BaseModel):
    completed: list[str]
    failed: list[str]
