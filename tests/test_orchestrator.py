import asyncio

import pytest

from clipforge.models.remote_job import RemoteJobResult
from clipforge.models.task import GenerationOptions, InputImage, TaskStatus
from clipforge.services.asset_resolver import AssetResolver
from clipforge.services.errors import HttpError, InputValidationError
from clipforge.services.orchestrator import (
    INSUFFICIENT_CREDITS_MESSAGE,
    NO_INPUT_MESSAGE,
    TaskOrchestrator,
)
from clipforge.services.polling import TIMEOUT_ERROR
from clipforge.services.providers.runway import CreditStatus
from clipforge.services.task_registry import TaskRegistry

EXAMPLES = ("https://ex/1.jpg", "https://ex/2.jpg")
VIDEO = "https://cdn/result.mp4"


class _FirstChoice:
    def choice(self, seq):
        return seq[0]


class _FakeRunway:
    """Scriptable stand-in for RunwayClient."""

    def __init__(self, url_assets=None, statuses=None, has_credits=True, create_error=None):
        self.url_assets = url_assets if url_assets is not None else {"https://user/cat.png": "asset-user"}
        self.statuses = statuses or [RemoteJobResult(job_id="job-1", status="completed", video_url=VIDEO)]
        self.has_credits = has_credits
        self.create_error = create_error
        self.created = []
        self.polls = 0

    async def upload_image_from_url(self, url, name=None):
        if url not in self.url_assets:
            raise HttpError("Image upload failed: unreachable", status_code=400)
        return self.url_assets[url]

    async def upload_image(self, data, content_type, name=None):
        raise HttpError("Image upload failed: corrupt", status_code=400)

    async def check_credits(self):
        if self.has_credits:
            return CreditStatus(has_credits=True)
        return CreditStatus(has_credits=False, error="Insufficient credits")

    async def create_job(self, asset_id, text_prompt, options):
        self.created.append(("image", asset_id, text_prompt))
        if self.create_error:
            raise self.create_error
        return "job-1"

    async def create_text_job(self, text_prompt, options):
        self.created.append(("text", None, text_prompt))
        return "job-1"

    async def get_job_status(self, job_id):
        self.polls += 1
        return self.statuses[min(self.polls, len(self.statuses)) - 1]


class _RecordingRegistry(TaskRegistry):
    def __init__(self):
        super().__init__()
        self.history = {}

    def _transition(self, task, new_status):
        super()._transition(task, new_status)
        self.history.setdefault(task.id, [TaskStatus.PENDING]).append(new_status)


def _orchestrator(runway, sleeper, examples=EXAMPLES, max_attempts=10):
    registry = _RecordingRegistry()
    resolver = AssetResolver(runway, examples, rng=_FirstChoice())
    return TaskOrchestrator(
        registry, runway, resolver, poll_max_attempts=max_attempts, poll_interval=1.0, sleep=sleeper,
    )


def _run(orchestrator, **submit_kwargs):
    async def scenario():
        task_id = orchestrator.submit(**submit_kwargs)
        return await orchestrator.wait_for_task(task_id, interval=0, max_attempts=1000)

    return asyncio.run(scenario())


def _assert_forward_only(orchestrator, task):
    history = orchestrator.registry.history[task.id]
    assert history[0] == TaskStatus.PENDING
    assert history[1] == TaskStatus.PROCESSING
    assert history[-1] == task.status
    assert len(history) == 3


def test_image_url_task_completes(sleeper):
    runway = _FakeRunway()
    orchestrator = _orchestrator(runway, sleeper)

    task = _run(orchestrator, image_url="https://user/cat.png", text_prompt="the cat blinks")

    assert task.status == TaskStatus.COMPLETED
    assert task.video_url == VIDEO
    assert task.asset_id == "asset-user"
    assert task.remote_job_id == "job-1"
    assert task.progress == 100
    assert runway.created == [("image", "asset-user", "the cat blinks")]
    assert any("Starting task processing" in line for line in task.logs)
    _assert_forward_only(orchestrator, task)


def test_fallback_to_second_example_updates_image_url(sleeper):
    runway = _FakeRunway(url_assets={"https://ex/2.jpg": "asset-ex-2"})
    orchestrator = _orchestrator(runway, sleeper)

    task = _run(
        orchestrator,
        image_url="https://user/broken.png",
        images=[InputImage(b"\x89PNG", "image/png")],
    )

    assert task.status == TaskStatus.COMPLETED
    assert task.asset_id == "asset-ex-2"
    assert task.image_url == "https://ex/2.jpg"


def test_text_only_when_no_image_can_be_uploaded(sleeper):
    runway = _FakeRunway(url_assets={})
    orchestrator = _orchestrator(runway, sleeper)

    task = _run(orchestrator, text_prompt="waves at night")

    assert task.status == TaskStatus.COMPLETED
    assert task.asset_id is None
    assert runway.created == [("text", None, "waves at night")]
    assert any("text-only" in line for line in task.logs)


def test_no_asset_and_no_prompt_fails(sleeper):
    runway = _FakeRunway(url_assets={})
    orchestrator = _orchestrator(runway, sleeper)

    task = _run(orchestrator, image_url="https://user/broken.png")

    assert task.status == TaskStatus.FAILED
    assert task.error == NO_INPUT_MESSAGE
    assert runway.created == []
    _assert_forward_only(orchestrator, task)


def test_blank_prompt_does_not_start_text_only_job(sleeper):
    runway = _FakeRunway(url_assets={})
    orchestrator = _orchestrator(runway, sleeper)

    task = _run(orchestrator, images=[InputImage(b"\x89PNG", "image/png")], text_prompt="   ")

    assert task.status == TaskStatus.FAILED
    assert task.error == NO_INPUT_MESSAGE
    assert task.text_prompt is None
    assert runway.created == []


def test_insufficient_credits_is_terminal(sleeper):
    runway = _FakeRunway(has_credits=False)
    orchestrator = _orchestrator(runway, sleeper)

    task = _run(orchestrator, image_url="https://user/cat.png")

    assert task.status == TaskStatus.FAILED
    assert task.error == INSUFFICIENT_CREDITS_MESSAGE
    assert runway.created == []


def test_text_only_path_checks_credits(sleeper):
    runway = _FakeRunway(url_assets={}, has_credits=False)
    orchestrator = _orchestrator(runway, sleeper)

    task = _run(orchestrator, text_prompt="waves at night")

    assert task.status == TaskStatus.FAILED
    assert task.error == INSUFFICIENT_CREDITS_MESSAGE
    assert runway.created == []


def test_credit_error_from_job_creation(sleeper):
    runway = _FakeRunway(
        create_error=HttpError("Video generation failed: not enough credits", status_code=402),
    )
    orchestrator = _orchestrator(runway, sleeper)

    task = _run(orchestrator, image_url="https://user/cat.png")

    assert task.status == TaskStatus.FAILED
    assert task.error == INSUFFICIENT_CREDITS_MESSAGE


def test_remote_failure_is_recorded(sleeper):
    runway = _FakeRunway(statuses=[
        RemoteJobResult(job_id="job-1", status="processing"),
        RemoteJobResult(job_id="job-1", status="failed", error="Content moderation"),
    ])
    orchestrator = _orchestrator(runway, sleeper)

    task = _run(orchestrator, image_url="https://user/cat.png")

    assert task.status == TaskStatus.FAILED
    assert task.error == "Content moderation"
    assert task.video_url is None
    _assert_forward_only(orchestrator, task)


def test_unexpected_error_becomes_failed_task(sleeper):
    runway = _FakeRunway(create_error=RuntimeError("socket closed"))
    orchestrator = _orchestrator(runway, sleeper)

    task = _run(orchestrator, image_url="https://user/cat.png")

    assert task.status == TaskStatus.FAILED
    assert task.error == "socket closed"
    assert any("Generation failed" in line for line in task.logs)


def test_soft_timeout_fails_task(sleeper):
    runway = _FakeRunway(statuses=[RemoteJobResult(job_id="job-1", status="processing")])
    orchestrator = _orchestrator(runway, sleeper, max_attempts=3)

    task = _run(orchestrator, image_url="https://user/cat.png")

    assert task.status == TaskStatus.FAILED
    assert task.error == TIMEOUT_ERROR
    assert runway.polls == 3
    assert any(line.endswith(f"Generation failed: {TIMEOUT_ERROR}") for line in task.logs)


def test_reported_progress_never_decreases(sleeper):
    runway = _FakeRunway(statuses=[
        RemoteJobResult(job_id="job-1", status="processing", progress_ratio=0.6),
        RemoteJobResult(job_id="job-1", status="processing", progress_ratio=0.3),
        RemoteJobResult(job_id="job-1", status="processing"),
        RemoteJobResult(job_id="job-1", status="completed", video_url=VIDEO),
    ])
    orchestrator = _orchestrator(runway, sleeper)
    seen = []
    original = orchestrator.registry.update_progress

    def spy(task_id, value):
        original(task_id, value)
        seen.append(orchestrator.registry.get(task_id).progress)

    orchestrator.registry.update_progress = spy

    task = _run(orchestrator, image_url="https://user/cat.png")

    assert seen == sorted(seen)
    assert seen[0] == 60
    assert task.progress == 100


@pytest.mark.parametrize("prompt", [None, "", "   "])
def test_submit_without_inputs_is_rejected(sleeper, prompt):
    orchestrator = _orchestrator(_FakeRunway(), sleeper)

    with pytest.raises(InputValidationError):
        orchestrator.submit(images=[], image_url=None, text_prompt=prompt)

    assert orchestrator.list_tasks() == []


def test_tasks_run_concurrently(sleeper):
    runway = _FakeRunway(statuses=[
        RemoteJobResult(job_id="job-1", status="processing"),
        RemoteJobResult(job_id="job-1", status="completed", video_url=VIDEO),
    ])
    orchestrator = _orchestrator(runway, sleeper)

    async def scenario():
        ids = [
            orchestrator.submit(image_url="https://user/cat.png", options=GenerationOptions(seconds=10))
            for _ in range(3)
        ]
        return [await orchestrator.wait_for_task(i, interval=0, max_attempts=1000) for i in ids]

    tasks = asyncio.run(scenario())

    assert len({t.id for t in tasks}) == 3
    assert all(t.status.is_terminal for t in tasks)
    assert [t.id for t in orchestrator.list_tasks()] == [t.id for t in reversed(tasks)]


def test_check_account_credits_fails_open(sleeper):
    class _Broken(_FakeRunway):
        async def check_credits(self):
            raise RuntimeError("gateway down")

    orchestrator = _orchestrator(_Broken(), sleeper)
    status = asyncio.run(orchestrator.check_account_credits())

    assert status.has_credits is True
    assert status.error == "gateway down"


def test_wait_for_unknown_task_returns_none(sleeper):
    orchestrator = _orchestrator(_FakeRunway(), sleeper)
    assert asyncio.run(orchestrator.wait_for_task("nope", interval=0)) is None
    assert orchestrator.get_status("nope") is None
