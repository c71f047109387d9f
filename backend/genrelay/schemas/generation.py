from __future__ import annotations
"""Pydantic v2 schemas for the gateway's JSON envelopes."""

from typing import Any, assert_never

from pydantic import BaseModel, Field, model_validator

from genrelay.models.generation import (
    GenerationKind,
    GenerationRequest,
    GenerationResponse,
    ImageRequest,
    ModelTier,
    PollRequest,
    TextRequest,
    VideoRequest,
    VoiceRequest,
)


class GenerateRequest(BaseModel):
    """Client → gateway request envelope."""

    type: GenerationKind
    messages: list[dict[str, Any]] | None = None
    prompt: str | None = None
    topic: str | None = None
    duration: float | None = Field(default=None, ge=1)
    voice_id: str | None = None
    model_id: str | None = None
    payload: dict[str, Any] | None = None
    model_tier: ModelTier | None = None
    api_key: str | None = None
    stream: bool = False

    model_config = {"extra": "ignore"}

    @model_validator(mode="after")
    def _check_required_fields(self) -> GenerateRequest:
        if self.type == GenerationKind.TEXT and not self.messages:
            raise ValueError("messages are required for text generation")
        if self.type in (GenerationKind.IMAGE, GenerationKind.VIDEO) and not self.prompt:
            raise ValueError(f"prompt is required for {self.type.value} generation")
        if self.type == GenerationKind.VOICE and not (self.topic or self.prompt):
            raise ValueError("topic or prompt is required for voice generation")
        if self.type == GenerationKind.POLL and not (self.payload or {}).get("taskId"):
            raise ValueError("payload.taskId is required for polling")
        return self

    def to_domain(self) -> GenerationRequest:
        extra = self.payload or {}
        common: dict[str, Any] = {
            "api_key": self.api_key,
            "model_override": self.model_id,
            "extra_payload": extra,
        }
        match self.type:
            case GenerationKind.TEXT:
                return TextRequest(
                    messages=tuple(self.messages or ()),
                    model_tier=self.model_tier or ModelTier.DEFAULT,
                    stream=self.stream,
                    **common,
                )
            case GenerationKind.IMAGE:
                return ImageRequest(prompt=self.prompt or "", **common)
            case GenerationKind.VIDEO:
                # Provider takes whole seconds
                seconds = round(self.duration) if self.duration is not None else None
                return VideoRequest(prompt=self.prompt or "", duration_seconds=seconds, **common)
            case GenerationKind.VOICE:
                return VoiceRequest(text=self.topic or self.prompt or "", voice_id=self.voice_id, **common)
            case GenerationKind.POLL:
                return PollRequest(task_id=str(extra.get("taskId") or ""), api_key=self.api_key)
            case _:
                assert_never(self.type)

    @classmethod
    def from_domain(cls, request: GenerationRequest) -> GenerateRequest:
        common: dict[str, Any] = {
            "type": request.kind,
            "api_key": request.api_key,
            "model_id": request.model_override,
            "payload": dict(request.extra_payload) or None,
        }
        match request:
            case TextRequest():
                return cls(
                    messages=[dict(m) for m in request.messages],
                    model_tier=request.model_tier,
                    stream=request.stream,
                    **common,
                )
            case ImageRequest():
                return cls(prompt=request.prompt, **common)
            case VideoRequest():
                return cls(prompt=request.prompt, duration=request.duration_seconds, **common)
            case VoiceRequest():
                return cls(topic=request.text, voice_id=request.voice_id, **common)
            case PollRequest():
                return cls(type=GenerationKind.POLL, api_key=request.api_key, payload={"taskId": request.task_id})
            case _:
                assert_never(request)


class GenerateResponse(BaseModel):
    """Gateway → client response envelope (always HTTP 200)."""

    success: bool
    type: GenerationKind
    data: Any = None
    error: str | None = None
    upstream_status: int | None = None
    upstream_error: str | None = None

    model_config = {"extra": "ignore"}

    @classmethod
    def from_domain(cls, response: GenerationResponse) -> GenerateResponse:
        return cls(
            success=response.success,
            type=response.kind,
            data=response.payload,
            error=response.provider_error,
            upstream_status=response.upstream_status,
            upstream_error=response.upstream_error,
        )

    def to_domain(self) -> GenerationResponse:
        return GenerationResponse(
            success=self.success,
            kind=self.type,
            payload=self.data,
            provider_error=self.error,
            upstream_status=self.upstream_status,
            upstream_error=self.upstream_error,
        )
