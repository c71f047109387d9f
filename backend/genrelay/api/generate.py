from __future__ import annotations
"""Generation API endpoint, the single entry point of the gateway.

Provider and configuration failures are answered with HTTP 200 and
``success: false``; only malformed envelopes produce a non-2xx (422).
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from genrelay.models.generation import TextRequest
from genrelay.schemas.generation import GenerateRequest, GenerateResponse
from genrelay.services.errors import GatewayError
from genrelay.services.gateway import GenerationRouter

router = APIRouter()
logger = logging.getLogger(__name__)


def get_generation_router(request: Request) -> GenerationRouter:
    """The router is built once in the app lifespan."""
    return request.app.state.generation_router


@router.post("/generate", response_model=None)
async def generate(
    req: GenerateRequest,
    gateway: GenerationRouter = Depends(get_generation_router),
) -> GenerateResponse | StreamingResponse:
    """Route one generation request.

    ``type="text"`` with ``stream=true`` returns a chunked
    ``text/plain; charset=utf-8`` body of raw text deltas.
    """
    request = req.to_domain()

    try:
        if isinstance(request, TextRequest) and request.stream:
            try:
                body = await gateway.open_text_stream(request)
            except GatewayError as e:
                return GenerateResponse.from_domain(gateway.failure_response(request.kind, e))
            return StreamingResponse(
                body,
                media_type="text/plain; charset=utf-8",
                headers={
                    "Cache-Control": "no-cache",
                    "X-Accel-Buffering": "no",
                },
            )

        result = await gateway.handle(request)
    except Exception as e:
        logger.exception("AI generation error (type=%s)", req.type.value)
        return GenerateResponse(success=False, type=req.type, error=str(e) or "Internal Server Error")

    if not result.success:
        logger.warning("Generation %s failed: %s", req.type.value, result.provider_error)
    return GenerateResponse.from_domain(result)
