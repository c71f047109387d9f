"""ElevenLabs v3 text-to-speech via Wavespeed (async: returns a job id).

Supports:
- default voice "Ethan" when no voice id is given
- v3 tuning parameters (similarity / stability / speaker boost), overridable
  through the request's extra payload
"""

from __future__ import annotations

from typing import Any

from genrelay.models.generation import VoiceRequest
from genrelay.services.providers.base import (
    ProviderAdapter,
    UpstreamCall,
    merge_extra,
    normalize_job_envelope,
)

DEFAULT_VOICE_ID = "Ethan"


class VoiceAdapter(ProviderAdapter[VoiceRequest]):
    service_name = "voice"

    def build_call(self, request: VoiceRequest) -> UpstreamCall:
        model = request.model_override or self.settings.VOICE_MODEL
        body: dict[str, Any] = {
            "text": request.text,
            "voice_id": request.voice_id or DEFAULT_VOICE_ID,
            "similarity": 1.0,
            "stability": 0.5,
            "use_speaker_boost": True,
        }
        return UpstreamCall(
            method="POST",
            url=f"{self.settings.WAVESPEED_BASE_URL}/{model}",
            json=merge_extra(body, request.extra_payload),
            timeout=self.settings.SUBMIT_TIMEOUT,
            label="Wavespeed Voice",
        )

    def interpret(self, data: Any) -> dict[str, Any]:
        return normalize_job_envelope(data)
