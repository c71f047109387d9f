"""Tests for the async task lifecycle: submit, poll, terminal states."""

import asyncio

import httpx
import pytest

from conftest import mock_client
from genrelay.models.generation import (
    GenerationKind,
    GenerationResponse,
    PollRequest,
    VideoRequest,
    VoiceRequest,
    ImageRequest,
)
from genrelay.models.task import Task, TaskStatus
from genrelay.services.errors import (
    GatewayCallError,
    InvalidTaskTransition,
    JobNotFound,
    JobTimeout,
    PollCancelled,
    TaskFailed,
    UpstreamRejection,
)
from genrelay.services.gateway import GenerationRouter
from genrelay.services.task_poller import (
    AsyncioScheduler,
    PollSchedule,
    TASK_NOT_FOUND,
    TaskPoller,
    default_schedules,
    first_output,
    normalize_status,
)


def status(value, outputs=None, error=None):
    payload = {"task_id": "abc", "status": value, "outputs": outputs or [], "error": error}
    return GenerationResponse.ok(GenerationKind.POLL, payload)


def not_found():
    return GenerationResponse.fail(GenerationKind.POLL, "Polling Error: 404", upstream_status=404)


class FakeBackend:
    """Scripted gateway: one submission answer, then a queue of poll answers."""

    def __init__(self, submission, *polls):
        self.submission = submission
        self.polls = list(polls)
        self.requests = []

    @property
    def poll_reads(self):
        return sum(isinstance(r, PollRequest) for r in self.requests)

    async def handle(self, request):
        self.requests.append(request)
        if not isinstance(request, PollRequest):
            return self.submission
        outcome = self.polls.pop(0) if len(self.polls) > 1 else self.polls[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


SUBMITTED = GenerationResponse.ok(
    GenerationKind.VIDEO, {"task_id": "abc", "status": "created", "outputs": []}
)
SCHEDULE = PollSchedule(interval=2.0, max_attempts=5)


def make_poller(backend, sleeps):
    return TaskPoller(backend, {GenerationKind.VIDEO: SCHEDULE}, scheduler=sleeps)


async def test_processing_then_success_after_three_reads(sleeps):
    backend = FakeBackend(
        SUBMITTED,
        status("processing"),
        status("processing"),
        status("succeeded", outputs=["x"]),
    )
    task = await make_poller(backend, sleeps).run(VideoRequest(prompt="p"))

    assert task.status == TaskStatus.SUCCEEDED
    assert task.outputs == ["x"]
    assert backend.poll_reads == 3
    assert sleeps.delays == [2.0, 2.0, 2.0]


async def test_never_terminal_times_out_without_raising(sleeps):
    backend = FakeBackend(SUBMITTED, status("processing"))
    task = await make_poller(backend, sleeps).run(VideoRequest(prompt="p"))

    assert task.status == TaskStatus.TIMED_OUT
    assert task.outputs == []
    assert backend.poll_reads == SCHEDULE.max_attempts
    with pytest.raises(JobTimeout):
        first_output(task)


async def test_not_found_fails_after_single_read(sleeps):
    backend = FakeBackend(SUBMITTED, not_found(), status("succeeded", outputs=["late"]))
    task = await make_poller(backend, sleeps).run(VideoRequest(prompt="p"))

    assert task.status == TaskStatus.FAILED
    assert task.error == TASK_NOT_FOUND
    assert backend.poll_reads == 1
    with pytest.raises(JobNotFound):
        first_output(task)


async def test_read_errors_are_logged_and_polling_continues(sleeps):
    backend = FakeBackend(
        SUBMITTED,
        GatewayCallError("gateway 502"),
        GenerationResponse.fail(GenerationKind.POLL, "Polling Error: 500", upstream_status=500),
        status("completed", outputs=["https://cdn/v.mp4"]),
    )
    task = await make_poller(backend, sleeps).run(VideoRequest(prompt="p"))

    assert task.status == TaskStatus.SUCCEEDED
    assert backend.poll_reads == 3


@pytest.mark.parametrize(
    "provider_status,expected",
    [("failed", TaskStatus.FAILED), ("canceled", TaskStatus.CANCELED), ("cancelled", TaskStatus.CANCELED)],
)
async def test_provider_terminal_failures(sleeps, provider_status, expected):
    backend = FakeBackend(SUBMITTED, status("processing"), status(provider_status, error="nsfw"))
    task = await make_poller(backend, sleeps).run(VideoRequest(prompt="p"))

    assert task.status == expected
    assert task.error == "nsfw"
    assert task.outputs == []
    with pytest.raises(TaskFailed):
        first_output(task)


async def test_success_without_outputs_is_a_failure(sleeps):
    backend = FakeBackend(SUBMITTED, status("succeeded", outputs=[]))
    task = await make_poller(backend, sleeps).run(VideoRequest(prompt="p"))

    assert task.status == TaskStatus.FAILED
    assert task.outputs == []


async def test_submit_returns_submitted_task(sleeps):
    backend = FakeBackend(SUBMITTED)
    task = await make_poller(backend, sleeps).submit(VideoRequest(prompt="p"))

    assert task.id == "abc"
    assert task.kind == GenerationKind.VIDEO
    assert task.status == TaskStatus.SUBMITTED


async def test_inline_result_needs_no_polling(sleeps):
    inline = GenerationResponse.ok(
        GenerationKind.IMAGE,
        {"task_id": "img1", "status": "completed", "outputs": ["https://cdn/i.png"]},
    )
    backend = FakeBackend(inline, status("processing"))
    poller = TaskPoller(backend, {GenerationKind.IMAGE: SCHEDULE}, scheduler=sleeps)
    task = await poller.run(ImageRequest(prompt="p"))

    assert task.status == TaskStatus.SUCCEEDED
    assert backend.poll_reads == 0
    assert sleeps.delays == []


async def test_submission_failure_raises(sleeps):
    rejected = GenerationResponse.fail(GenerationKind.VIDEO, "Wavespeed Video HTTP 400 - bad", upstream_status=400)
    with pytest.raises(UpstreamRejection) as exc:
        await make_poller(FakeBackend(rejected), sleeps).submit(VideoRequest(prompt="p"))
    assert exc.value.status_code == 400


async def test_submission_without_task_id_raises(sleeps):
    no_id = GenerationResponse.ok(GenerationKind.VIDEO, {"task_id": None, "status": None, "outputs": []})
    with pytest.raises(UpstreamRejection):
        await make_poller(FakeBackend(no_id), sleeps).submit(VideoRequest(prompt="p"))


async def test_cancel_stops_further_reads(sleeps):
    backend = FakeBackend(SUBMITTED, status("processing"))
    poller = make_poller(backend, sleeps)
    task = await poller.submit(VideoRequest(prompt="p"))

    class CancellingScheduler:
        calls = 0

        async def sleep(self, delay):
            CancellingScheduler.calls += 1
            if CancellingScheduler.calls == 2:
                poller.cancel()

    poller._scheduler = CancellingScheduler()
    with pytest.raises(PollCancelled):
        await poller.poll(task)

    assert backend.poll_reads == 1
    assert not task.is_terminal
    # Nothing beyond status reads was sent upstream
    assert all(isinstance(r, PollRequest) for r in backend.requests[1:])


async def test_asyncio_cancellation_aborts_wall_clock_sleep():
    backend = FakeBackend(SUBMITTED, status("processing"))
    poller = TaskPoller(backend, {GenerationKind.VIDEO: PollSchedule(60.0, 3)}, scheduler=AsyncioScheduler())
    task = Task(id="abc", kind=GenerationKind.VIDEO)

    running = asyncio.create_task(poller.poll(task))
    await asyncio.sleep(0)
    running.cancel()
    with pytest.raises(asyncio.CancelledError):
        await running
    assert backend.poll_reads == 0


async def test_default_schedule_used_per_kind(settings, sleeps):
    backend = FakeBackend(
        GenerationResponse.ok(GenerationKind.VOICE, {"task_id": "v1", "status": "created", "outputs": []}),
        status("processing"),
    )
    poller = TaskPoller(backend, default_schedules(settings), scheduler=sleeps)
    task = await poller.run(VoiceRequest(text="hi"))

    assert task.status == TaskStatus.TIMED_OUT
    assert backend.poll_reads == settings.VOICE_POLL_ATTEMPTS
    assert set(sleeps.delays) == {settings.VOICE_POLL_INTERVAL}


def test_terminal_task_cannot_move_back():
    task = Task(id="t", kind=GenerationKind.VIDEO)
    task.advance(TaskStatus.PROCESSING)
    task.advance(TaskStatus.SUCCEEDED, outputs=["u"])
    with pytest.raises(InvalidTaskTransition):
        task.advance(TaskStatus.PROCESSING)
    assert task.status == TaskStatus.SUCCEEDED


def test_success_requires_outputs():
    task = Task(id="t", kind=GenerationKind.VOICE)
    with pytest.raises(InvalidTaskTransition):
        task.advance(TaskStatus.SUCCEEDED, outputs=[])


def test_failed_task_keeps_no_outputs():
    task = Task(id="t", kind=GenerationKind.VOICE)
    task.advance(TaskStatus.FAILED, outputs=["ignored"], error="boom")
    assert task.outputs == []
    assert task.error == "boom"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("succeeded", TaskStatus.SUCCEEDED),
        ("COMPLETED", TaskStatus.SUCCEEDED),
        ("failed", TaskStatus.FAILED),
        ("canceled", TaskStatus.CANCELED),
        ("created", TaskStatus.PROCESSING),
        ("processing", TaskStatus.PROCESSING),
        (None, TaskStatus.PROCESSING),
    ],
)
def test_normalize_status(raw, expected):
    assert normalize_status(raw) == expected


async def test_undecodable_read_does_not_abort_polling(settings, sleeps):
    settings.POLL_MAX_ATTEMPTS = 1
    reads = []

    async def garbage():
        yield b"\x00not-gzip"

    async def provider(request: httpx.Request) -> httpx.Response:
        reads.append(request)
        if len(reads) == 1:
            return httpx.Response(200, headers={"content-encoding": "gzip"}, content=garbage())
        return httpx.Response(200, json={"data": {"id": "abc", "status": "succeeded", "outputs": ["x"]}})

    router = GenerationRouter(settings, mock_client(provider), sleep=sleeps)
    poller = TaskPoller(router, {GenerationKind.VIDEO: SCHEDULE}, scheduler=sleeps)
    task = await poller.poll(Task(id="abc", kind=GenerationKind.VIDEO))

    assert task.status == TaskStatus.SUCCEEDED
    assert task.outputs == ["x"]
    assert task.attempts == 2
