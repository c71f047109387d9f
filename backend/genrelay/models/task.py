from __future__ import annotations
"""Async job lifecycle model."""

import enum
from dataclasses import dataclass, field

from genrelay.models.generation import GenerationKind
from genrelay.services.errors import InvalidTaskTransition


class TaskStatus(str, enum.Enum):
    """Task lifecycle statuses."""

    SUBMITTED = "SUBMITTED"
    PROCESSING = "PROCESSING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"
    TIMED_OUT = "TIMED_OUT"


TERMINAL_STATUSES = frozenset({
    TaskStatus.SUCCEEDED,
    TaskStatus.FAILED,
    TaskStatus.CANCELED,
    TaskStatus.TIMED_OUT,
})


@dataclass
class Task:
    """A provider-side job tracked by the poller.

    Only ``advance`` mutates status. ``outputs`` is non-empty exactly when the
    task SUCCEEDED.
    """

    id: str
    kind: GenerationKind
    status: TaskStatus = TaskStatus.SUBMITTED
    outputs: list[str] = field(default_factory=list)
    error: str | None = None
    attempts: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def advance(
        self,
        status: TaskStatus,
        *,
        outputs: list[str] | None = None,
        error: str | None = None,
    ) -> None:
        if self.is_terminal:
            raise InvalidTaskTransition(
                f"Task {self.id} is {self.status.value}, cannot move to {status.value}"
            )
        if status == TaskStatus.SUBMITTED:
            raise InvalidTaskTransition(f"Task {self.id} cannot return to SUBMITTED")
        if status == TaskStatus.SUCCEEDED and not outputs:
            raise InvalidTaskTransition(f"Task {self.id} cannot succeed without outputs")

        self.status = status
        self.outputs = list(outputs) if status == TaskStatus.SUCCEEDED else []
        self.error = error if status != TaskStatus.SUCCEEDED else None
