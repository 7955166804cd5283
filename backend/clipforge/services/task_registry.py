"""In-memory task registry.

Owns every Task for the lifetime of the process. The orchestration routine of
a task is the only writer of its fields; status queries read immutable
snapshots taken under the same lock, so a reader never sees a half-applied
update.

Usage:
    registry = TaskRegistry()
    task = registry.create(options=GenerationOptions(), text_prompt="a cat")
    registry.mark_processing(task.id)
    registry.get(task.id)          # -> TaskRead | None
"""

from __future__ import annotations

import logging
import threading

from clipforge.models.task import (
    TRANSITIONS,
    GenerationOptions,
    InputImage,
    Task,
    TaskStatus,
)
from clipforge.schemas.task import TaskRead
from clipforge.services.errors import TaskStateError

logger = logging.getLogger(__name__)


class TaskRegistry:
    """Thread-safe store of tasks keyed by id."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    # -- creation / queries ----------------------------------------------

    def create(
        self,
        *,
        options: GenerationOptions,
        image: InputImage | None = None,
        image_url: str | None = None,
        text_prompt: str | None = None,
    ) -> TaskRead:
        task = Task(
            options=options,
            image=image,
            image_url=image_url,
            text_prompt=text_prompt,
        )
        with self._lock:
            if task.id in self._tasks:
                raise TaskStateError(f"Task id collision: {task.id}")
            self._tasks[task.id] = task
            return TaskRead.from_task(task)

    def get(self, task_id: str) -> TaskRead | None:
        with self._lock:
            task = self._tasks.get(task_id)
            return TaskRead.from_task(task) if task else None

    def list(self) -> list[TaskRead]:
        """All tasks, newest first."""
        with self._lock:
            # Insertion order breaks ties between identical timestamps.
            ordered = sorted(
                enumerate(self._tasks.values()),
                key=lambda pair: (pair[1].created_at, pair[0]),
                reverse=True,
            )
            return [TaskRead.from_task(task) for _, task in ordered]

    def input_image(self, task_id: str) -> InputImage | None:
        with self._lock:
            return self._require(task_id).image

    # -- mutations (orchestration routine only) ---------------------------

    def _require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise KeyError(task_id)
        return task

    def _mutable(self, task_id: str) -> Task:
        task = self._require(task_id)
        if task.status.is_terminal:
            raise TaskStateError(f"Task {task_id} is {task.status.value} and can no longer change")
        return task

    def _transition(self, task: Task, new_status: TaskStatus) -> None:
        if new_status not in TRANSITIONS[task.status]:
            raise TaskStateError(
                f"Task {task.id}: illegal transition {task.status.value} -> {new_status.value}"
            )
        task.status = new_status
        task.touch()

    def append_log(self, task_id: str, message: str) -> None:
        """Append a timestamped log line. Ignored once the task is terminal."""
        with self._lock:
            task = self._require(task_id)
            if task.status.is_terminal:
                logger.debug("[task %s] late log dropped: %s", task_id, message)
                return
            task.touch()
            task.logs.append(f"[{task.updated_at.strftime('%H:%M:%S')}] {message}")
        logger.info("[task %s] %s", task_id, message)

    def update_progress(self, task_id: str, progress: float) -> None:
        """Raise progress to ``progress`` (clamped to 0–100); never lowers it."""
        with self._lock:
            task = self._mutable(task_id)
            progress = max(0.0, min(100.0, float(progress)))
            if progress > task.progress:
                task.progress = progress
                task.touch()

    def mark_processing(self, task_id: str) -> None:
        with self._lock:
            self._transition(self._mutable(task_id), TaskStatus.PROCESSING)

    def set_asset(self, task_id: str, asset_id: str, image_url: str | None = None) -> None:
        with self._lock:
            task = self._mutable(task_id)
            task.asset_id = asset_id
            if image_url:
                task.image_url = image_url
            task.touch()

    def set_remote_job(self, task_id: str, remote_job_id: str) -> None:
        with self._lock:
            task = self._mutable(task_id)
            task.remote_job_id = remote_job_id
            task.touch()

    def complete(self, task_id: str, video_url: str) -> None:
        if not video_url:
            raise TaskStateError(f"Task {task_id}: cannot complete without a video URL")
        with self._lock:
            task = self._mutable(task_id)
            self._transition(task, TaskStatus.COMPLETED)
            task.video_url = video_url
            task.progress = 100.0

    def fail(self, task_id: str, error: str) -> None:
        with self._lock:
            task = self._mutable(task_id)
            self._transition(task, TaskStatus.FAILED)
            task.error = error or "Unknown error"
