from __future__ import annotations
"""Pydantic v2 schemas for task snapshots and API payloads."""

from datetime import datetime

from pydantic import BaseModel

from clipforge.models.task import GenerationOptions, Task, TaskStatus


class TaskRead(BaseModel):
    """Immutable point-in-time copy of a task, safe to hand to readers."""

    id: str
    status: TaskStatus
    image_url: str | None = None
    has_image_file: bool = False
    asset_id: str | None = None
    remote_job_id: str | None = None
    text_prompt: str | None = None
    options: GenerationOptions
    video_url: str | None = None
    error: str | None = None
    logs: list[str]
    progress: float
    created_at: datetime
    updated_at: datetime

    model_config = {"frozen": True}

    @classmethod
    def from_task(cls, task: Task) -> "TaskRead":
        return cls(
            id=task.id,
            status=task.status,
            image_url=task.image_url,
            has_image_file=task.image is not None,
            asset_id=task.asset_id,
            remote_job_id=task.remote_job_id,
            text_prompt=task.text_prompt,
            options=task.options,
            video_url=task.video_url,
            error=task.error,
            logs=list(task.logs),
            progress=task.progress,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class TaskCreated(BaseModel):
    """Response for a newly submitted task."""

    task_id: str
    status: TaskStatus = TaskStatus.PENDING


class TaskList(BaseModel):
    tasks: list[TaskRead]


class CreditStatusRead(BaseModel):
    has_credits: bool
    credits: int | None = None
    error: str | None = None
