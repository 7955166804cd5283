from __future__ import annotations
"""Polling loop for remote jobs.

Runs until the job reaches a terminal status or the attempt budget is spent.
Running out of attempts is a soft timeout: the returned result is ``failed``
but the remote job may still finish on the provider side.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from clipforge.models.remote_job import REMOTE_COMPLETED, REMOTE_FAILED, RemoteJobResult

logger = logging.getLogger(__name__)

FetchStatus = Callable[[str], Awaitable[RemoteJobResult]]
ProgressCallback = Callable[[str, float], None]

DEFAULT_MAX_ATTEMPTS = 60
DEFAULT_INTERVAL = 5.0

TIMEOUT_ERROR = "Timed out waiting for the video generation to finish"


async def poll_until_terminal(
    fetch_status: FetchStatus,
    job_id: str,
    on_progress: ProgressCallback | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    interval: float = DEFAULT_INTERVAL,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> RemoteJobResult:
    """Poll ``fetch_status(job_id)`` every ``interval`` seconds.

    Args:
        fetch_status: Coroutine returning the normalized job status.
        job_id: Remote job id, passed through verbatim.
        on_progress: Called with (status, percent) after every successful poll.
        max_attempts: Poll budget before the soft timeout.
        interval: Seconds between polls.

    Returns:
        The terminal RemoteJobResult, or a synthetic ``failed`` one on timeout.
    """
    if not job_id:
        raise ValueError("job_id must not be empty")

    logger.info("Waiting for remote job %s", job_id)

    for attempt in range(max_attempts):
        try:
            result = await fetch_status(job_id)
        except Exception as e:
            logger.warning(
                "Status check failed for job %s (attempt %d/%d): %s",
                job_id, attempt + 1, max_attempts, e,
            )
        else:
            percent = result.progress_percent()
            if percent is None:
                percent = attempt / max_attempts * 100

            if on_progress:
                on_progress(result.status, percent)

            if result.is_terminal:
                if result.status == REMOTE_COMPLETED and not result.video_url and result.artifacts:
                    result.video_url = result.artifacts[0].get("url")
                return result

        if attempt < max_attempts - 1:
            await sleep(interval)

    logger.warning("Remote job %s not finished after %d polls", job_id, max_attempts)
    return RemoteJobResult(job_id=job_id, status=REMOTE_FAILED, error=TIMEOUT_ERROR, timed_out=True)
