from __future__ import annotations
"""GenRelay: FastAPI application entry point.

Mounts the API routes, configures CORS and owns the shared upstream HTTP
client for the lifetime of the process.
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from genrelay.api.router import api_router
from genrelay.config import Settings, get_settings
from genrelay.services.gateway import GenerationRouter

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(app_settings: Settings | None = None, http_client: httpx.AsyncClient | None = None) -> FastAPI:
    """Build the application. Tests inject settings and a mock-transport client."""
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan: open the upstream client, close it on shutdown."""
        logger.info("%s starting up...", app_settings.APP_NAME)
        if not app_settings.WAVESPEED_API_KEY:
            logger.warning("No WAVESPEED_API_KEY configured, requests must supply api_key")

        client = http_client or httpx.AsyncClient()
        app.state.generation_router = GenerationRouter(app_settings, client)

        yield

        if http_client is None:
            await client.aclose()
        logger.info("%s shut down", app_settings.APP_NAME)

    app = FastAPI(
        title="GenRelay API",
        description="AI generation gateway for text, image, video and voice",
        version="0.1.0",
        lifespan=lifespan,
        redirect_slashes=False,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"service": app_settings.APP_NAME, "status": "running"}

    @app.get("/health")
    async def health():
        """Detailed health check."""
        return {
            "status": "healthy",
            "credential_configured": bool(app_settings.WAVESPEED_API_KEY),
            "fallback_configured": bool(app_settings.WAVESPEED_FALLBACK_API_KEY),
        }

    return app


app = create_app()
