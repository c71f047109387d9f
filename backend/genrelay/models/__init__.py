"""Domain model package: request union, response envelope and task lifecycle."""

from genrelay.models.generation import (
    GenerationKind,
    GenerationRequest,
    GenerationResponse,
    ImageRequest,
    ModelTier,
    PollRequest,
    StreamChunk,
    TextRequest,
    VideoRequest,
    VoiceRequest,
)
from genrelay.models.task import Task, TaskStatus, TERMINAL_STATUSES
