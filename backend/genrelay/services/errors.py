"""Gateway error taxonomy.

Errors that change the outcome for the caller carry enough context (attempt
count, last upstream status, upstream body) to decide whether to retry at a
higher level or render a failure state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from genrelay.models.task import Task


class GatewayError(Exception):
    """Base class for all gateway errors."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 0,
        body: str = "",
        attempts: int = 0,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.attempts = attempts


class ConfigurationError(GatewayError):
    """No usable provider credential."""


class UpstreamRejection(GatewayError):
    """Non-retriable upstream response (4xx other than a handled 401/403)."""


class TransientUpstreamFailure(GatewayError):
    """Network error, timeout or 5xx; raised once the retry ladder is exhausted."""


class StreamParseAnomaly(GatewayError):
    """Malformed SSE line. Always recovered inside the relay."""


class InvalidTaskTransition(GatewayError):
    """Attempt to move a task out of a terminal state."""


class PollCancelled(GatewayError):
    """The caller abandoned a poll session. The upstream job keeps running."""


class TaskFailed(GatewayError):
    """A job ended in a terminal state other than SUCCEEDED."""

    def __init__(self, task: Task):
        super().__init__(
            f"Task {task.id} ended {task.status.value}: {task.error or 'no outputs'}",
            attempts=task.attempts,
        )
        self.task = task


class JobNotFound(TaskFailed):
    """Upstream reported 404 for a job id (expired or never existed)."""


class JobTimeout(TaskFailed):
    """Poll budget exhausted before the provider reported a terminal status."""


class GatewayCallError(GatewayError):
    """The gateway itself failed (non-2xx transport status or unusable body)."""
