from __future__ import annotations
"""Uniform generation request/response types.

A request is one variant of a closed union; the router matches on the
concrete class and every variant has exactly one handler.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping, Union


class GenerationKind(str, enum.Enum):
    """Request discriminator."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    VOICE = "voice"
    POLL = "poll"


class ModelTier(str, enum.Enum):
    FAST = "fast"
    DEFAULT = "default"


@dataclass(frozen=True, kw_only=True)
class _RequestBase:
    kind: ClassVar[GenerationKind]

    api_key: str | None = None
    model_override: str | None = None
    extra_payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class TextRequest(_RequestBase):
    kind: ClassVar[GenerationKind] = GenerationKind.TEXT

    messages: tuple[Mapping[str, Any], ...]
    model_tier: ModelTier = ModelTier.DEFAULT
    stream: bool = False


@dataclass(frozen=True, kw_only=True)
class ImageRequest(_RequestBase):
    kind: ClassVar[GenerationKind] = GenerationKind.IMAGE

    prompt: str


@dataclass(frozen=True, kw_only=True)
class VideoRequest(_RequestBase):
    kind: ClassVar[GenerationKind] = GenerationKind.VIDEO

    prompt: str
    duration_seconds: int | None = None


@dataclass(frozen=True, kw_only=True)
class VoiceRequest(_RequestBase):
    kind: ClassVar[GenerationKind] = GenerationKind.VOICE

    text: str
    voice_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class PollRequest(_RequestBase):
    kind: ClassVar[GenerationKind] = GenerationKind.POLL

    task_id: str


GenerationRequest = Union[TextRequest, ImageRequest, VideoRequest, VoiceRequest, PollRequest]


@dataclass
class GenerationResponse:
    """Normalized gateway result.

    Provider-level failure is ``success=False``; the transport status stays 200.
    """

    success: bool
    kind: GenerationKind
    payload: Any = None
    provider_error: str | None = None
    upstream_status: int | None = None
    upstream_error: str | None = None

    @classmethod
    def ok(cls, kind: GenerationKind, payload: Any) -> GenerationResponse:
        return cls(success=True, kind=kind, payload=payload)

    @classmethod
    def fail(
        cls,
        kind: GenerationKind,
        error: str,
        *,
        upstream_status: int | None = None,
        upstream_error: str | None = None,
    ) -> GenerationResponse:
        return cls(
            success=False,
            kind=kind,
            provider_error=error,
            upstream_status=upstream_status,
            upstream_error=upstream_error,
        )


@dataclass(frozen=True)
class StreamChunk:
    """One incremental text delta."""

    text: str

    def encode(self) -> bytes:
        return self.text.encode("utf-8")
