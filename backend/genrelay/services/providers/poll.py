from __future__ import annotations
"""Wavespeed prediction result reader."""

import re
from typing import Any
from urllib.parse import quote

from genrelay.models.generation import PollRequest
from genrelay.services.providers.base import ProviderAdapter, UpstreamCall, normalize_job_envelope

# Provider job ids are opaque tokens; anything else never reaches the URL path
TASK_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


def is_valid_task_id(task_id: str) -> bool:
    return bool(TASK_ID_PATTERN.fullmatch(task_id))


class PollAdapter(ProviderAdapter[PollRequest]):
    service_name = "poll"

    def build_call(self, request: PollRequest) -> UpstreamCall:
        task_id = quote(request.task_id, safe="")
        return UpstreamCall(
            method="GET",
            url=f"{self.settings.WAVESPEED_BASE_URL}/predictions/{task_id}/result",
            timeout=self.settings.POLL_TIMEOUT,
            label="Wavespeed Poll",
        )

    def interpret(self, data: Any) -> dict[str, Any]:
        return normalize_job_envelope(data)
