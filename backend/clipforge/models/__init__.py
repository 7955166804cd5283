"""In-memory domain models."""

from clipforge.models.remote_job import RemoteJobResult
from clipforge.models.task import (
    ASPECT_RATIOS,
    DURATIONS,
    GenerationOptions,
    InputImage,
    Task,
    TaskStatus,
)

__all__ = [
    "ASPECT_RATIOS",
    "DURATIONS",
    "GenerationOptions",
    "InputImage",
    "RemoteJobResult",
    "Task",
    "TaskStatus",
]
