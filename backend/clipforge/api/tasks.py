from __future__ import annotations
"""Task API: submit video generation requests and poll their progress."""

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile
from pydantic import ValidationError

from clipforge.api.deps import get_orchestrator
from clipforge.models.task import GenerationOptions, InputImage
from clipforge.schemas.task import TaskCreated, TaskList, TaskRead
from clipforge.services.errors import InputValidationError
from clipforge.services.orchestrator import TaskOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter()


async def _read_images(uploads: list[UploadFile] | None) -> list[InputImage]:
    images: list[InputImage] = []
    for upload in uploads or []:
        data = await upload.read()
        if not data:
            continue
        images.append(InputImage(
            data=data,
            content_type=upload.content_type or "application/octet-stream",
            filename=upload.filename,
        ))
    return images


def _parse_seed(raw: str | None) -> int | None:
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError:
        raise HTTPException(status_code=422, detail=f"seed must be an integer, got {raw!r}")


@router.post("/", status_code=202)
@router.post("", status_code=202, include_in_schema=False)
async def submit_task(
    response: Response,
    images: list[UploadFile] | None = File(None),
    image_url: str | None = Form(None),
    text_prompt: str | None = Form(None),
    aspect_ratio: str = Form("16:9"),
    seconds: int = Form(5),
    seed: str | None = Form(None),
    explore_mode: bool = Form(False),
    wait: bool = Query(False, description="Block until the task finishes"),
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
):
    """Create a generation task and start it in the background.

    Returns the task id immediately (202). With ``wait=true`` returns the task
    snapshot instead: 200 once it is finished, 202 if the wait ran out first.
    """
    try:
        options = GenerationOptions(
            aspect_ratio=aspect_ratio,
            seconds=seconds,
            seed=_parse_seed(seed),
            explore_mode=explore_mode,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    try:
        task_id = orchestrator.submit(
            images=await _read_images(images),
            image_url=image_url,
            text_prompt=text_prompt,
            options=options,
        )
    except InputValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    logger.info("Task %s submitted", task_id)

    if wait:
        snapshot = await orchestrator.wait_for_task(
            task_id,
            interval=orchestrator.poll_interval,
            max_attempts=orchestrator.poll_max_attempts,
        )
        if snapshot is not None and snapshot.status.is_terminal:
            response.status_code = 200
        return snapshot

    return TaskCreated(task_id=task_id)


@router.get("/", response_model=TaskList)
@router.get("", response_model=TaskList, include_in_schema=False)
def list_tasks(orchestrator: TaskOrchestrator = Depends(get_orchestrator)):
    """All tasks, newest first."""
    return TaskList(tasks=orchestrator.list_tasks())


@router.get("/{task_id}", response_model=TaskRead)
def get_task(task_id: str, orchestrator: TaskOrchestrator = Depends(get_orchestrator)):
    task = orchestrator.get_status(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task
