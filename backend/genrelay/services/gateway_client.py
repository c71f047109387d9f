"""Client for the generation gateway.

Calls ``POST {GATEWAY_URL}`` with the uniform envelope. Authorization uses the
signed-in user's token and falls back once to the anon key on 401/403. Text
calls get a backoff ladder; submission and poll calls rely on the gateway's
own upstream retries plus the poller's loop.

Also acts as the `GenerationBackend` for `TaskPoller`, so video/voice
generation is submit + poll from the caller's side.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Iterable, Mapping

import httpx
from pydantic import ValidationError

from genrelay.config import Settings
from genrelay.models.generation import (
    GenerationRequest,
    GenerationResponse,
    ImageRequest,
    ModelTier,
    TextRequest,
    VideoRequest,
    VoiceRequest,
)
from genrelay.schemas.generation import GenerateRequest, GenerateResponse
from genrelay.services.errors import (
    GatewayCallError,
    GatewayError,
    TransientUpstreamFailure,
    UpstreamRejection,
)
from genrelay.services.retry import Credentials, RetryPolicy, SleepFn, call_with_retry, read_error_body
from genrelay.services.task_poller import Scheduler, TaskPoller, default_schedules, first_output

logger = logging.getLogger(__name__)


class GatewayClient:
    """Async client for the gateway's ``/api/generate`` endpoint."""

    def __init__(
        self,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
        user_token: str | None = None,
        api_key: str | None = None,
        scheduler: Scheduler | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.settings = settings
        self._url = settings.GATEWAY_URL
        self._client = http_client or httpx.AsyncClient()
        self._own_client = http_client is None
        self._user_token = user_token
        self._anon_key = settings.GATEWAY_ANON_KEY
        self._api_key = api_key
        self._scheduler = scheduler
        self._sleep = sleep

        self.text_policy = RetryPolicy(settings.CLIENT_TEXT_MAX_ATTEMPTS, settings.RETRY_BASE_DELAY)
        # Credential substitution only, no backoff
        self.call_policy = RetryPolicy(1, settings.RETRY_BASE_DELAY)

    async def aclose(self) -> None:
        if self._own_client:
            await self._client.aclose()

    async def __aenter__(self) -> GatewayClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _credentials(self) -> Credentials:
        if self._user_token:
            return Credentials(primary=self._user_token, fallback=self._anon_key or None)
        return Credentials(primary=self._anon_key)

    def _envelope(self, request: GenerationRequest) -> dict[str, Any]:
        return GenerateRequest.from_domain(request).model_dump(mode="json", exclude_none=True)

    # ------------------------------------------------------------------
    # GenerationBackend
    # ------------------------------------------------------------------

    async def handle(self, request: GenerationRequest) -> GenerationResponse:
        """POST one request envelope and return the decoded response envelope.

        Raises:
            GatewayCallError: the gateway was unreachable or answered non-2xx.
        """
        if isinstance(request, TextRequest):
            policy, timeout = self.text_policy, self.settings.CLIENT_TEXT_TIMEOUT
        else:
            policy, timeout = self.call_policy, self.settings.CLIENT_CALL_TIMEOUT

        body = self._envelope(request)
        label = f"gateway {request.kind.value}"

        async def send(token: str) -> httpx.Response:
            return await self._client.post(
                self._url,
                json=body,
                headers={"Authorization": f"Bearer {token}"},
                timeout=timeout,
            )

        try:
            response = await call_with_retry(send, self._credentials(), policy, sleep=self._sleep, label=label)
        except (UpstreamRejection, TransientUpstreamFailure) as e:
            raise GatewayCallError(
                str(e), status_code=e.status_code, body=e.body, attempts=e.attempts,
            ) from e

        try:
            return GenerateResponse.model_validate(response.json()).to_domain()
        except (ValueError, ValidationError) as e:
            raise GatewayCallError(
                f"{label}: unusable response body", status_code=response.status_code, body=response.text[:500],
            ) from e

    # ------------------------------------------------------------------
    # Facade
    # ------------------------------------------------------------------

    def poller(self) -> TaskPoller:
        return TaskPoller(
            self,
            default_schedules(self.settings),
            scheduler=self._scheduler,
            api_key=self._api_key,
        )

    async def generate_text(
        self,
        messages: Iterable[Mapping[str, Any]],
        *,
        model_tier: ModelTier = ModelTier.DEFAULT,
    ) -> str:
        request = TextRequest(messages=tuple(messages), model_tier=model_tier, api_key=self._api_key)
        response = await self.handle(request)
        if not response.success:
            raise GatewayCallError(
                response.provider_error or "Unknown API error (success=false)",
                status_code=response.upstream_status or 0,
                body=response.upstream_error or "",
            )
        return response.payload or ""

    async def stream_text(self, messages: Iterable[Mapping[str, Any]]) -> AsyncIterator[str]:
        """Yield text deltas as the gateway relays them."""
        body = self._envelope(
            TextRequest(messages=tuple(messages), stream=True, api_key=self._api_key)
        )

        async def send(token: str) -> httpx.Response:
            req = self._client.build_request(
                "POST",
                self._url,
                json=body,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.settings.CLIENT_TEXT_TIMEOUT,
            )
            return await self._client.send(req, stream=True)

        try:
            response = await call_with_retry(
                send, self._credentials(), self.call_policy, sleep=self._sleep, label="gateway stream",
            )
        except (UpstreamRejection, TransientUpstreamFailure) as e:
            raise GatewayCallError(str(e), status_code=e.status_code, body=e.body, attempts=e.attempts) from e

        try:
            if response.headers.get("content-type", "").startswith("application/json"):
                # Gateway refused before streaming; the body is a normal envelope
                await read_error_body(response)
                envelope = GenerateResponse.model_validate(response.json())
                raise GatewayCallError(
                    envelope.error or "Streaming request failed",
                    status_code=envelope.upstream_status or 0,
                    body=envelope.upstream_error or "",
                )
            async for text in response.aiter_text():
                if text:
                    yield text
        finally:
            await response.aclose()

    async def generate_image(self, prompt: str) -> str:
        response = await self.handle(ImageRequest(prompt=prompt, api_key=self._api_key))
        if not response.success:
            raise GatewayCallError(response.provider_error or "Image generation failed")
        outputs = (response.payload or {}).get("outputs") or []
        if not outputs:
            raise GatewayCallError("No image URL in response")
        return outputs[0]

    async def generate_video(self, prompt: str, duration: int = 6) -> str:
        task = await self.poller().run(
            VideoRequest(prompt=prompt, duration_seconds=duration, api_key=self._api_key)
        )
        return first_output(task)

    async def generate_voice(self, text: str, voice_id: str | None = None) -> str:
        task = await self.poller().run(
            VoiceRequest(text=text, voice_id=voice_id, api_key=self._api_key)
        )
        return first_output(task)

    async def test_connection(self) -> bool:
        try:
            await self.generate_text([{"role": "user", "content": "Connection check"}])
        except GatewayError as e:
            logger.error("Gateway connection check failed: %s", e)
            return False
        return True
