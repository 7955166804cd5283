from __future__ import annotations
"""Task model: one image/text-to-video request tracked through its lifecycle."""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import BaseModel, field_validator

ASPECT_RATIOS = ("16:9", "9:16", "1:1", "4:3", "3:4", "21:9")
DURATIONS = (5, 10)
SEED_MIN = 1
SEED_MAX = 4294967294


class TaskStatus(str, enum.Enum):
    """Task lifecycle statuses."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


# Allowed forward moves; terminal states have none.
TRANSITIONS: dict[TaskStatus, tuple[TaskStatus, ...]] = {
    TaskStatus.PENDING: (TaskStatus.PROCESSING, TaskStatus.FAILED),
    TaskStatus.PROCESSING: (TaskStatus.COMPLETED, TaskStatus.FAILED),
    TaskStatus.COMPLETED: (),
    TaskStatus.FAILED: (),
}


class GenerationOptions(BaseModel):
    """Immutable generation parameters sent with every remote job."""

    aspect_ratio: str = "16:9"
    seconds: int = 5
    seed: int | None = None
    explore_mode: bool = False  # credit-free generation on the provider side
    reply_url: str | None = None
    reply_ref: str | None = None

    model_config = {"frozen": True}

    @field_validator("aspect_ratio")
    @classmethod
    def _check_aspect_ratio(cls, v: str) -> str:
        if v not in ASPECT_RATIOS:
            raise ValueError(f"aspect_ratio must be one of {', '.join(ASPECT_RATIOS)}")
        return v

    @field_validator("seconds")
    @classmethod
    def _check_seconds(cls, v: int) -> int:
        if v not in DURATIONS:
            raise ValueError(f"seconds must be one of {DURATIONS}")
        return v

    @field_validator("seed")
    @classmethod
    def _check_seed(cls, v: int | None) -> int | None:
        if v is not None and not SEED_MIN <= v <= SEED_MAX:
            raise ValueError(f"seed must be between {SEED_MIN} and {SEED_MAX}")
        return v


@dataclass(frozen=True)
class InputImage:
    """A user-uploaded image held in memory until the resolver uploads it."""

    data: bytes
    content_type: str
    filename: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_task_id() -> str:
    return f"task_{uuid.uuid4().hex}"


@dataclass
class Task:
    """Mutable task record. Only the registry touches these fields."""

    options: GenerationOptions
    image: InputImage | None = None
    image_url: str | None = None
    text_prompt: str | None = None
    id: str = field(default_factory=new_task_id)
    status: TaskStatus = TaskStatus.PENDING
    asset_id: str | None = None
    remote_job_id: str | None = None
    video_url: str | None = None
    error: str | None = None
    logs: list[str] = field(default_factory=list)
    progress: float = 0.0
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def touch(self) -> None:
        self.updated_at = _now()
