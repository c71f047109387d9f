from __future__ import annotations
"""Wavespeed text-to-video adapter (async: returns a job id)."""

from typing import Any

from genrelay.models.generation import VideoRequest
from genrelay.services.providers.base import (
    ProviderAdapter,
    UpstreamCall,
    merge_extra,
    normalize_job_envelope,
)

DEFAULT_DURATION = 6


class VideoAdapter(ProviderAdapter[VideoRequest]):
    service_name = "video"

    def build_call(self, request: VideoRequest) -> UpstreamCall:
        model = request.model_override or self.settings.VIDEO_MODEL
        body: dict[str, Any] = {
            "prompt": request.prompt,
            "duration": request.duration_seconds or DEFAULT_DURATION,
        }
        return UpstreamCall(
            method="POST",
            url=f"{self.settings.WAVESPEED_BASE_URL}/{model}",
            json=merge_extra(body, request.extra_payload),
            timeout=self.settings.SUBMIT_TIMEOUT,
            label="Wavespeed Video",
        )

    def interpret(self, data: Any) -> dict[str, Any]:
        return normalize_job_envelope(data)
