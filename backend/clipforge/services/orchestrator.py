from __future__ import annotations
"""Task orchestrator: drives each task from pending through processing to a terminal status.

Each submitted task gets its own asyncio task running ``run_task``. That
routine is the only writer of its task's fields and a catch-all boundary:
whatever goes wrong ends as a ``failed`` task with a readable error, never as
an exception seen by the caller of ``submit``.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from clipforge.models.remote_job import REMOTE_COMPLETED, RemoteJobResult
from clipforge.models.task import GenerationOptions, InputImage
from clipforge.schemas.task import TaskRead
from clipforge.services import polling
from clipforge.services.asset_resolver import SOURCE_EXAMPLE, AssetResolver
from clipforge.services.errors import (
    HttpError,
    InputValidationError,
    InsufficientCredits,
    JobTimeoutError,
    NoInputError,
)
from clipforge.services.providers.runway import CreditStatus, RunwayClient
from clipforge.services.task_registry import TaskRegistry

logger = logging.getLogger(__name__)

INSUFFICIENT_CREDITS_MESSAGE = "Insufficient credits to run this task. Check your provider account."
NO_INPUT_MESSAGE = "Could not upload any image after several attempts and no text prompt was given"


class TaskOrchestrator:
    """Creates tasks, spawns their routines and answers status queries."""

    def __init__(
        self,
        registry: TaskRegistry,
        client: RunwayClient,
        resolver: AssetResolver,
        *,
        poll_max_attempts: int = polling.DEFAULT_MAX_ATTEMPTS,
        poll_interval: float = polling.DEFAULT_INTERVAL,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.registry = registry
        self.client = client
        self.resolver = resolver
        self.poll_max_attempts = poll_max_attempts
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._running: dict[str, asyncio.Task] = {}

    # -- inbound operations ---------------------------------------------

    def submit(
        self,
        *,
        images: list[InputImage] | None = None,
        image_url: str | None = None,
        text_prompt: str | None = None,
        options: GenerationOptions | None = None,
    ) -> str:
        """Register a task and start its routine in the background.

        Must be called from a running event loop. The outcome is observed only
        through ``get_status``.
        """
        image_url = (image_url or "").strip() or None
        text_prompt = (text_prompt or "").strip() or None
        image = images[0] if images else None

        if image is None and not image_url and not text_prompt:
            raise InputValidationError("Provide at least one image, image URL or text prompt")

        task = self.registry.create(
            options=options or GenerationOptions(),
            image=image,
            image_url=image_url,
            text_prompt=text_prompt,
        )
        self._spawn(task.id)
        return task.id

    def _spawn(self, task_id: str) -> None:
        if task_id in self._running:
            raise RuntimeError(f"Task {task_id} already has a running routine")
        routine = asyncio.get_running_loop().create_task(
            self.run_task(task_id), name=f"clipforge-{task_id}"
        )
        self._running[task_id] = routine
        routine.add_done_callback(lambda _: self._running.pop(task_id, None))

    def get_status(self, task_id: str) -> TaskRead | None:
        return self.registry.get(task_id)

    def list_tasks(self) -> list[TaskRead]:
        return self.registry.list()

    async def check_account_credits(self) -> CreditStatus:
        try:
            return await self.client.check_credits()
        except Exception as e:
            logger.error("Credit check failed: %s", e)
            return CreditStatus(has_credits=True, error=str(e))

    async def wait_for_task(
        self,
        task_id: str,
        interval: float = polling.DEFAULT_INTERVAL,
        max_attempts: int = polling.DEFAULT_MAX_ATTEMPTS,
    ) -> TaskRead | None:
        """Block until the task is terminal or the wait budget runs out.

        Returns the latest snapshot either way, or None for an unknown id.
        """
        snapshot = self.registry.get(task_id)
        for _ in range(max_attempts):
            if snapshot is None or snapshot.status.is_terminal:
                return snapshot
            await self._sleep(interval)
            snapshot = self.registry.get(task_id)
        return snapshot

    async def aclose(self) -> None:
        """Cancel routines still in flight (process shutdown)."""
        routines = list(self._running.values())
        for routine in routines:
            routine.cancel()
        if routines:
            await asyncio.gather(*routines, return_exceptions=True)
            logger.info("Cancelled %d in-flight task(s)", len(routines))

    # -- orchestration routine ------------------------------------------

    def _log(self, task_id: str, message: str) -> None:
        self.registry.append_log(task_id, message)

    def _on_progress(self, task_id: str) -> polling.ProgressCallback:
        def report(status: str, percent: float) -> None:
            self._log(task_id, f"Current generation status: {status}")
            self.registry.update_progress(task_id, percent)
        return report

    async def run_task(self, task_id: str) -> TaskRead | None:
        snapshot = self.registry.get(task_id)
        if snapshot is None:
            logger.warning("run_task called for unknown task %s", task_id)
            return None

        try:
            await self._process(task_id)
        except asyncio.CancelledError:
            self._fail(task_id, "Task cancelled before completion")
            raise
        except InsufficientCredits:
            self._fail(task_id, INSUFFICIENT_CREDITS_MESSAGE)
        except JobTimeoutError as e:
            logger.warning("Task %s stopped waiting for its remote job", task_id)
            self._fail(task_id, str(e))
        except Exception as e:
            logger.exception("Task %s failed", task_id)
            self._fail(task_id, str(e) or type(e).__name__)
        return self.registry.get(task_id)

    def _fail(self, task_id: str, error: str) -> None:
        current = self.registry.get(task_id)
        if current is None or current.status.is_terminal:
            return
        self._log(task_id, f"Generation failed: {error}")
        self.registry.fail(task_id, error)

    async def _process(self, task_id: str) -> None:
        self.registry.mark_processing(task_id)
        self._log(task_id, "Starting task processing")

        task = self.registry.get(task_id)
        resolved = await self.resolver.resolve(
            image_url=task.image_url,
            image=self.registry.input_image(task_id),
            log=lambda message: self._log(task_id, message),
        )

        if resolved is None:
            if not task.text_prompt:
                raise NoInputError(NO_INPUT_MESSAGE)
            self._log(task_id, "No image could be uploaded. Trying a text-only video...")
            await self._ensure_credits()
            job_id = await self.client.create_text_job(task.text_prompt, task.options)
        else:
            image_url = resolved.image_url if resolved.source == SOURCE_EXAMPLE else None
            self.registry.set_asset(task_id, resolved.asset_id, image_url)
            await self._ensure_credits()
            self._log(task_id, "Starting video generation...")
            job_id = await self._create_image_job(resolved.asset_id, task.text_prompt or "", task)

        self.registry.set_remote_job(task_id, job_id)
        self._log(task_id, f"Video generation job created with ID: {job_id}")
        self._log(task_id, "Waiting for the generation to finish...")

        result = await polling.poll_until_terminal(
            self.client.get_job_status,
            job_id,
            self._on_progress(task_id),
            self.poll_max_attempts,
            self.poll_interval,
            sleep=self._sleep,
        )
        self._record_result(task_id, result)

    async def _ensure_credits(self) -> None:
        credits = await self.client.check_credits()
        if not credits.has_credits:
            raise InsufficientCredits(credits.error or INSUFFICIENT_CREDITS_MESSAGE)

    async def _create_image_job(self, asset_id: str, text_prompt: str, task: TaskRead) -> str:
        try:
            return await self.client.create_job(asset_id, text_prompt, task.options)
        except HttpError as e:
            if "credit" in str(e).lower():
                raise InsufficientCredits(str(e)) from e
            raise

    def _record_result(self, task_id: str, result: RemoteJobResult) -> None:
        if result.timed_out:
            raise JobTimeoutError(result.error or polling.TIMEOUT_ERROR)
        if result.status == REMOTE_COMPLETED and result.video_url:
            self._log(task_id, f"Video generated! URL: {result.video_url}")
            self.registry.complete(task_id, result.video_url)
            return
        self._fail(task_id, result.error or "Video generation failed")
