"""Async task poller: submit an image/video/voice job, poll it to a terminal state.

Lifecycle:
  SUBMITTED  → job id received from the submission call
  PROCESSING → any non-terminal provider status
  SUCCEEDED  → provider success with at least one output
  FAILED     → provider failure, success without outputs, or 404 on the job id
  CANCELED   → provider cancellation
  TIMED_OUT  → attempt budget exhausted (synthesized locally)

Each status read is preceded by one schedule interval and goes through the
backend's own retry wrapper. A 404 ends the loop at once; any other read
error is logged and the loop moves on to the next attempt.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from genrelay.config import Settings
from genrelay.models.generation import (
    GenerationKind,
    GenerationRequest,
    GenerationResponse,
    PollRequest,
)
from genrelay.models.task import Task, TaskStatus
from genrelay.services.errors import (
    GatewayError,
    JobNotFound,
    JobTimeout,
    PollCancelled,
    TaskFailed,
    UpstreamRejection,
)

logger = logging.getLogger(__name__)

TASK_NOT_FOUND = "Task not found (possibly expired)"

_SUCCEEDED = {"succeeded", "completed", "success"}
_FAILED = {"failed", "error"}
_CANCELED = {"canceled", "cancelled"}


class Scheduler(Protocol):
    async def sleep(self, delay: float) -> None: ...


class AsyncioScheduler:
    """Wall-clock scheduler. Cancelling the awaiting task aborts the sleep."""

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(delay)


class GenerationBackend(Protocol):
    """Anything that turns a request into an envelope: the router or the HTTP client."""

    async def handle(self, request: GenerationRequest) -> GenerationResponse: ...


@dataclass(frozen=True)
class PollSchedule:
    interval: float
    max_attempts: int


def default_schedules(settings: Settings) -> dict[GenerationKind, PollSchedule]:
    return {
        GenerationKind.VIDEO: PollSchedule(settings.VIDEO_POLL_INTERVAL, settings.VIDEO_POLL_ATTEMPTS),
        GenerationKind.VOICE: PollSchedule(settings.VOICE_POLL_INTERVAL, settings.VOICE_POLL_ATTEMPTS),
        GenerationKind.IMAGE: PollSchedule(settings.IMAGE_POLL_INTERVAL, settings.IMAGE_POLL_ATTEMPTS),
    }


def normalize_status(raw: Any) -> TaskStatus:
    """Map provider vocabulary onto the local lifecycle."""
    value = str(raw or "").strip().lower()
    if value in _SUCCEEDED:
        return TaskStatus.SUCCEEDED
    if value in _FAILED:
        return TaskStatus.FAILED
    if value in _CANCELED:
        return TaskStatus.CANCELED
    return TaskStatus.PROCESSING


def first_output(task: Task) -> str:
    """Return the first output URL of a finished task or raise a typed failure."""
    if task.status == TaskStatus.SUCCEEDED:
        return task.outputs[0]
    if task.status == TaskStatus.TIMED_OUT:
        raise JobTimeout(task)
    if task.status == TaskStatus.FAILED and task.error == TASK_NOT_FOUND:
        raise JobNotFound(task)
    raise TaskFailed(task)


class TaskPoller:
    """Owns one submit + poll session. Poll reads are strictly sequential."""

    def __init__(
        self,
        backend: GenerationBackend,
        schedules: Mapping[GenerationKind, PollSchedule],
        *,
        scheduler: Scheduler | None = None,
        api_key: str | None = None,
    ):
        self._backend = backend
        self._schedules = dict(schedules)
        self._scheduler = scheduler or AsyncioScheduler()
        self._api_key = api_key
        self._cancelled = False

    def cancel(self) -> None:
        """Stop issuing status reads. Nothing is sent upstream; the job keeps running."""
        self._cancelled = True

    async def submit(self, request: GenerationRequest) -> Task:
        """Submit a job and return its Task (already terminal for inline results)."""
        response = await self._backend.handle(request)
        if not response.success:
            raise UpstreamRejection(
                response.provider_error or f"{request.kind.value} submission failed",
                status_code=response.upstream_status or 0,
                body=response.upstream_error or "",
            )

        payload = response.payload if isinstance(response.payload, dict) else {}
        task_id = payload.get("task_id")
        if not task_id:
            raise UpstreamRejection(f"No Task ID returned for {request.kind.value} generation")

        task = Task(id=str(task_id), kind=request.kind)
        logger.info("Task submitted: %s (kind=%s)", task.id, task.kind.value)

        # Sync-mode providers may already report a terminal result
        if normalize_status(payload.get("status")) != TaskStatus.PROCESSING:
            self._apply(task, payload)
        return task

    async def poll(self, task: Task, schedule: PollSchedule | None = None) -> Task:
        """Poll until terminal. Never raises for provider outcomes."""
        if task.is_terminal:
            return task

        schedule = schedule or self._schedules[task.kind]

        for attempt in range(1, schedule.max_attempts + 1):
            if self._cancelled:
                raise PollCancelled(f"Polling of task {task.id} abandoned", attempts=task.attempts)
            await self._scheduler.sleep(schedule.interval)
            if self._cancelled:
                raise PollCancelled(f"Polling of task {task.id} abandoned", attempts=task.attempts)

            task.attempts = attempt
            try:
                response = await self._backend.handle(PollRequest(task_id=task.id, api_key=self._api_key))
            except GatewayError as e:
                logger.error(
                    "Poll attempt %d/%d for task %s failed: %s",
                    attempt, schedule.max_attempts, task.id, e,
                )
                continue

            if not response.success:
                if response.upstream_status == 404:
                    logger.warning("Task %s not found upstream, giving up", task.id)
                    task.advance(TaskStatus.FAILED, error=TASK_NOT_FOUND)
                    return task
                logger.error(
                    "Poll attempt %d/%d for task %s rejected: %s",
                    attempt, schedule.max_attempts, task.id, response.provider_error,
                )
                continue

            payload = response.payload if isinstance(response.payload, dict) else {}
            self._apply(task, payload)
            if task.is_terminal:
                logger.info(
                    "Task %s finished %s after %d status reads",
                    task.id, task.status.value, attempt,
                )
                return task
            logger.debug("Task %s still %s (attempt %d)", task.id, payload.get("status"), attempt)

        task.advance(
            TaskStatus.TIMED_OUT,
            error=f"Task timed out after {schedule.max_attempts} status reads",
        )
        logger.warning("Task %s timed out after %d status reads", task.id, schedule.max_attempts)
        return task

    async def run(self, request: GenerationRequest, schedule: PollSchedule | None = None) -> Task:
        task = await self.submit(request)
        return await self.poll(task, schedule)

    @staticmethod
    def _apply(task: Task, payload: Mapping[str, Any]) -> None:
        status = normalize_status(payload.get("status"))
        error = payload.get("error") or None

        if status == TaskStatus.SUCCEEDED:
            outputs = [o for o in payload.get("outputs") or [] if o]
            if outputs:
                task.advance(TaskStatus.SUCCEEDED, outputs=outputs)
            else:
                task.advance(TaskStatus.FAILED, error="Task completed without outputs")
        elif status == TaskStatus.FAILED:
            task.advance(TaskStatus.FAILED, error=str(error or "Generation task failed"))
        elif status == TaskStatus.CANCELED:
            task.advance(TaskStatus.CANCELED, error=str(error or "Generation task canceled"))
        else:
            task.advance(TaskStatus.PROCESSING)
