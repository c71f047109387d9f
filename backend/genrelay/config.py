from __future__ import annotations
"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """GenRelay gateway settings.

    Loaded from environment variables or .env file. Constructed once and
    passed by reference into the router, retry wrapper and client; nothing
    mutates it at request time.
    """

    # --- Application ---
    APP_NAME: str = "GenRelay"
    DEBUG: bool = False
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173"

    # --- Wavespeed credentials ---
    WAVESPEED_API_KEY: str = ""
    WAVESPEED_FALLBACK_API_KEY: str = ""

    # --- Wavespeed endpoints ---
    WAVESPEED_BASE_URL: str = "https://api.wavespeed.ai/api/v3"
    WAVESPEED_LLM_URL: str = "https://llm.wavespeed.ai/v1"

    # --- Models ---
    TEXT_MODEL: str = "deepseek/deepseek-v3.2"
    FAST_TEXT_MODEL: str = "openai/gpt-4o-mini"
    IMAGE_MODEL: str = "google/nano-banana/text-to-image"
    VIDEO_MODEL: str = "minimax/hailuo-2.3/t2v-standard"
    VOICE_MODEL: str = "elevenlabs/eleven-v3"

    TEXT_MAX_TOKENS: int = 4000
    STREAM_MAX_TOKENS: int = 8000

    # --- Upstream deadlines (seconds) ---
    TEXT_TIMEOUT: float = 60.0
    SUBMIT_TIMEOUT: float = 60.0
    POLL_TIMEOUT: float = 30.0

    # --- Retry ladder ---
    TEXT_MAX_ATTEMPTS: int = 3
    SUBMIT_MAX_ATTEMPTS: int = 2
    POLL_MAX_ATTEMPTS: int = 2
    RETRY_BASE_DELAY: float = 1.0

    # --- Poll schedules (interval seconds x attempts) ---
    VIDEO_POLL_INTERVAL: float = 3.0
    VIDEO_POLL_ATTEMPTS: int = 120
    VOICE_POLL_INTERVAL: float = 1.0
    VOICE_POLL_ATTEMPTS: int = 30
    IMAGE_POLL_INTERVAL: float = 2.0
    IMAGE_POLL_ATTEMPTS: int = 60

    # --- Client side (calling the gateway) ---
    GATEWAY_URL: str = "http://localhost:8000/api/generate"
    GATEWAY_ANON_KEY: str = ""
    CLIENT_TEXT_TIMEOUT: float = 90.0
    CLIENT_CALL_TIMEOUT: float = 60.0
    CLIENT_TEXT_MAX_ATTEMPTS: int = 3

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
