"""Pydantic v2 schemas package."""

from genrelay.schemas.generation import GenerateRequest, GenerateResponse

__all__ = [
    "GenerateRequest",
    "GenerateResponse",
]
