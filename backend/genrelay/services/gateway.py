"""Gateway router: one uniform request in, one normalized envelope out.

Dispatch is an exhaustive match over the request union; every variant has
one adapter and one retry policy:

  text  → chat-completions        (TEXT_MAX_ATTEMPTS)
  image → task creation, inline   (SUBMIT_MAX_ATTEMPTS)
  video → task creation, job id   (SUBMIT_MAX_ATTEMPTS)
  voice → task creation, job id   (SUBMIT_MAX_ATTEMPTS)
  poll  → task result read        (POLL_MAX_ATTEMPTS)

`handle()` never raises for provider or configuration problems: they come
back as ``success=False`` so callers can branch without exception handling.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import Any, AsyncIterator, assert_never

import httpx

from genrelay.config import Settings
from genrelay.models.generation import (
    GenerationKind,
    GenerationRequest,
    GenerationResponse,
    ImageRequest,
    PollRequest,
    TextRequest,
    VideoRequest,
    VoiceRequest,
)
from genrelay.services.errors import (
    ConfigurationError,
    GatewayError,
    TransientUpstreamFailure,
    UpstreamRejection,
)
from genrelay.services.providers.base import ProviderAdapter, UpstreamCall
from genrelay.services.providers.chat import ChatCompletionAdapter
from genrelay.services.providers.image import ImageAdapter
from genrelay.services.providers.poll import PollAdapter, is_valid_task_id
from genrelay.services.providers.video import VideoAdapter
from genrelay.services.providers.voice import VoiceAdapter
from genrelay.services.retry import (
    Credentials,
    RetryPolicy,
    SleepFn,
    call_with_retry,
    mask_key,
)
from genrelay.services.stream_relay import relay_response

logger = logging.getLogger(__name__)

CREDENTIAL_MISSING = "credential missing"


def _auth_headers(key: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {key}",
        "Content-Type": "application/json",
    }


class GenerationRouter:
    """Routes generation requests to Wavespeed adapters through the retry wrapper."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        *,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.settings = settings
        self._client = http_client
        self._sleep = sleep

        self.text_adapter = ChatCompletionAdapter(settings)
        self.image_adapter = ImageAdapter(settings)
        self.video_adapter = VideoAdapter(settings)
        self.voice_adapter = VoiceAdapter(settings)
        self.poll_adapter = PollAdapter(settings)

        self.text_policy = RetryPolicy(settings.TEXT_MAX_ATTEMPTS, settings.RETRY_BASE_DELAY)
        self.submit_policy = RetryPolicy(settings.SUBMIT_MAX_ATTEMPTS, settings.RETRY_BASE_DELAY)
        self.poll_policy = RetryPolicy(settings.POLL_MAX_ATTEMPTS, settings.RETRY_BASE_DELAY)

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def resolve_credentials(self, api_key: str | None) -> Credentials:
        """Caller key first, then the service key; fallback is the next one available."""
        service_key = self.settings.WAVESPEED_API_KEY
        primary = api_key or service_key
        if not primary:
            raise ConfigurationError(CREDENTIAL_MISSING)

        fallback = self.settings.WAVESPEED_FALLBACK_API_KEY or (service_key if api_key else "")
        return Credentials(primary=primary, fallback=fallback or None)

    # ------------------------------------------------------------------
    # Buffered path
    # ------------------------------------------------------------------

    async def handle(self, request: GenerationRequest) -> GenerationResponse:
        kind = request.kind
        logger.info("Gateway request kind=%s", kind.value)
        try:
            credentials = self.resolve_credentials(request.api_key)
            payload = await self._dispatch(request, credentials)
        except GatewayError as e:
            return self.failure_response(kind, e)
        return GenerationResponse.ok(kind, payload)

    async def _dispatch(self, request: GenerationRequest, credentials: Credentials) -> Any:
        match request:
            case TextRequest():
                # Buffered path always asks for a single completion object
                buffered = dataclasses.replace(request, stream=False)
                return await self._call(self.text_adapter, buffered, credentials, self.text_policy)
            case ImageRequest():
                return await self._call(self.image_adapter, request, credentials, self.submit_policy)
            case VideoRequest():
                return await self._call(self.video_adapter, request, credentials, self.submit_policy)
            case VoiceRequest():
                return await self._call(self.voice_adapter, request, credentials, self.submit_policy)
            case PollRequest():
                if not request.task_id:
                    raise UpstreamRejection("Task ID required for polling")
                if not is_valid_task_id(request.task_id):
                    raise UpstreamRejection(f"Invalid task ID: {request.task_id[:64]!r}")
                logger.info("Polling task id=%s", request.task_id)
                return await self._call(self.poll_adapter, request, credentials, self.poll_policy)
            case _:
                assert_never(request)

    async def _call(
        self,
        adapter: ProviderAdapter[Any],
        request: Any,
        credentials: Credentials,
        policy: RetryPolicy,
    ) -> Any:
        call = adapter.build_call(request)
        response = await self._send(call, credentials, policy)
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamRejection(
                f"{call.label} returned a non-JSON body",
                status_code=response.status_code,
                body=response.text[:1000],
            ) from e
        return adapter.interpret(data)

    async def _send(
        self,
        call: UpstreamCall,
        credentials: Credentials,
        policy: RetryPolicy,
        *,
        stream: bool = False,
    ) -> httpx.Response:
        async def send(key: str) -> httpx.Response:
            req = self._client.build_request(
                call.method,
                call.url,
                json=call.json,
                headers=_auth_headers(key),
                timeout=call.timeout,
            )
            return await self._client.send(req, stream=stream)

        return await call_with_retry(send, credentials, policy, sleep=self._sleep, label=call.label)

    # ------------------------------------------------------------------
    # Streamed text path
    # ------------------------------------------------------------------

    async def open_text_stream(self, request: TextRequest) -> AsyncIterator[bytes]:
        """Open the upstream SSE stream and return the relayed delta byte stream.

        The connection is established (and retried) before returning, so
        credential and upstream failures raise here instead of inside the
        response body.

        Raises:
            GatewayError: see `failure_response()` for the envelope mapping.
        """
        credentials = self.resolve_credentials(request.api_key)
        call = self.text_adapter.build_call(dataclasses.replace(request, stream=True))
        response = await self._send(call, credentials, self.text_policy, stream=True)
        logger.info("Streaming text relay opened (model=%s)", call.json["model"] if call.json else "?")
        return relay_response(response)

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    @staticmethod
    def failure_response(kind: GenerationKind, error: GatewayError) -> GenerationResponse:
        if isinstance(error, ConfigurationError):
            logger.warning("Gateway %s request rejected: %s", kind.value, error)
            return GenerationResponse.fail(kind, CREDENTIAL_MISSING)

        if isinstance(error, UpstreamRejection):
            message = f"{error} - {error.body}" if error.body else str(error)
            return GenerationResponse.fail(
                kind,
                message,
                upstream_status=error.status_code or None,
                upstream_error=error.body or None,
            )

        if isinstance(error, TransientUpstreamFailure):
            return GenerationResponse.fail(
                kind,
                str(error),
                upstream_status=error.status_code or None,
                upstream_error=error.body or None,
            )

        logger.error("Unexpected gateway error for %s: %s", kind.value, error)
        return GenerationResponse.fail(kind, str(error))

    # ------------------------------------------------------------------
    # Health check for /api/system/check-llm
    # ------------------------------------------------------------------

    async def check_credentials(self) -> dict[str, Any]:
        """Send a one-token prompt with each configured key.

        Returns dict with status, working_keys, failed_keys.
        """
        keys = [k for k in (self.settings.WAVESPEED_API_KEY, self.settings.WAVESPEED_FALLBACK_API_KEY) if k]
        results: dict[str, Any] = {
            "total_keys": len(keys),
            "working_keys": [],
            "failed_keys": [],
        }

        body = {
            "model": self.settings.TEXT_MODEL,
            "messages": [{"role": "user", "content": "Hi"}],
            "max_tokens": 1,
            "stream": False,
        }
        url = f"{self.settings.WAVESPEED_LLM_URL}/chat/completions"

        for key in keys:
            masked = mask_key(key)
            t0 = time.monotonic()
            try:
                resp = await self._client.post(
                    url, headers=_auth_headers(key), json=body, timeout=self.settings.TEXT_TIMEOUT,
                )
            except httpx.HTTPError as e:
                results["failed_keys"].append({"key": masked, "error": str(e)})
                continue

            latency_ms = round((time.monotonic() - t0) * 1000, 1)
            if resp.status_code == 200:
                results["working_keys"].append({"key": masked, "latency_ms": latency_ms})
            else:
                results["failed_keys"].append({"key": masked, "status": resp.status_code})

        results["status"] = "ok" if results["working_keys"] else "all_keys_failed"
        return results
