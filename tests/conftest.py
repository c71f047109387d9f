"""Pytest configuration helpers.

This conftest ensures the `backend` directory is on `sys.path` so tests can
import the `genrelay` package without an editable install, and provides
settings plus fake clocks so no test waits on wall-clock time.
"""
import json
import os
import sys
from typing import Any, Awaitable, Callable

import httpx
import pytest


BACKEND = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "backend"))
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)

from genrelay.config import Settings  # noqa: E402

PRIMARY_KEY = "ws-primary-key-0000000000000001"
FALLBACK_KEY = "ws-fallback-key-000000000000002"

Handler = Callable[[httpx.Request], Awaitable[httpx.Response]]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        WAVESPEED_API_KEY=PRIMARY_KEY,
        WAVESPEED_FALLBACK_API_KEY="",
        WAVESPEED_BASE_URL="https://api.wavespeed.test/api/v3",
        WAVESPEED_LLM_URL="https://llm.wavespeed.test/v1",
        RETRY_BASE_DELAY=0.5,
        TEXT_MAX_ATTEMPTS=3,
        SUBMIT_MAX_ATTEMPTS=2,
        POLL_MAX_ATTEMPTS=2,
        VIDEO_POLL_INTERVAL=3.0,
        VIDEO_POLL_ATTEMPTS=5,
        VOICE_POLL_INTERVAL=1.0,
        VOICE_POLL_ATTEMPTS=4,
        GATEWAY_URL="http://gateway.test/api/generate",
        GATEWAY_ANON_KEY="anon-key",
    )


class SleepRecorder:
    """Stands in for asyncio.sleep and for a poll Scheduler."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


def mock_client(handler: Handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def json_body(request: httpx.Request) -> Any:
    return json.loads(request.content) if request.content else None


def sse(*events: Any) -> bytes:
    """Encode chat-completion deltas as an SSE body ending with [DONE]."""
    lines = []
    for event in events:
        if isinstance(event, str):
            payload = {"choices": [{"delta": {"content": event}}]}
        else:
            payload = event
        lines.append(f"data: {json.dumps(payload, ensure_ascii=False)}\n\n")
    lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")
