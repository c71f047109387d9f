"""System status endpoint: checks the configured provider credentials."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from genrelay.api.generate import get_generation_router
from genrelay.services.gateway import GenerationRouter

router = APIRouter()


@router.get("/check-llm")
async def check_llm(gateway: GenerationRouter = Depends(get_generation_router)):
    """Pre-check provider API keys and report which keys are valid before generation."""
    return await gateway.check_credentials()
