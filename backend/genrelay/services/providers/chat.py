"""Wavespeed LLM chat-completions adapter (OpenAI-compatible).

Non-streamed calls return ``choices[0].message.content``; streamed calls hand
the open response to the stream relay instead of `interpret()`.
"""

from __future__ import annotations

from typing import Any

from genrelay.models.generation import ModelTier, TextRequest
from genrelay.services.providers.base import ProviderAdapter, UpstreamCall


class ChatCompletionAdapter(ProviderAdapter[TextRequest]):
    service_name = "text"

    def resolve_model(self, request: TextRequest) -> str:
        if request.model_override:
            return request.model_override
        if request.model_tier == ModelTier.FAST:
            return self.settings.FAST_TEXT_MODEL
        return self.settings.TEXT_MODEL

    def build_call(self, request: TextRequest) -> UpstreamCall:
        max_tokens = self.settings.STREAM_MAX_TOKENS if request.stream else self.settings.TEXT_MAX_TOKENS
        body: dict[str, Any] = {
            "model": self.resolve_model(request),
            "messages": [dict(m) for m in request.messages],
            "max_tokens": max_tokens,
            "stream": request.stream,
        }
        return UpstreamCall(
            method="POST",
            url=f"{self.settings.WAVESPEED_LLM_URL}/chat/completions",
            json=body,
            timeout=self.settings.TEXT_TIMEOUT,
            label="Wavespeed Text",
        )

    def interpret(self, data: Any) -> str:
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            return ""
