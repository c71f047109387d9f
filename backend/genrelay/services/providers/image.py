"""Wavespeed text-to-image adapter.

Submitted with ``enable_sync_mode`` so the provider completes inline and the
outputs come back in the creation response.
"""

from __future__ import annotations

from typing import Any

from genrelay.models.generation import ImageRequest
from genrelay.services.providers.base import (
    ProviderAdapter,
    UpstreamCall,
    merge_extra,
    normalize_job_envelope,
)


class ImageAdapter(ProviderAdapter[ImageRequest]):
    service_name = "image"

    def build_call(self, request: ImageRequest) -> UpstreamCall:
        model = request.model_override or self.settings.IMAGE_MODEL
        body: dict[str, Any] = {
            "prompt": request.prompt,
            "output_format": "png",
            "enable_sync_mode": True,
        }
        return UpstreamCall(
            method="POST",
            url=f"{self.settings.WAVESPEED_BASE_URL}/{model}",
            json=merge_extra(body, request.extra_payload),
            timeout=self.settings.SUBMIT_TIMEOUT,
            label="Wavespeed Image",
        )

    def interpret(self, data: Any) -> dict[str, Any]:
        return normalize_job_envelope(data)
