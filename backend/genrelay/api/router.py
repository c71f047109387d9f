from __future__ import annotations
"""Master API router, mounts all sub-routers."""

from fastapi import APIRouter

from genrelay.api.generate import router as generate_router
from genrelay.api.system import router as system_router

api_router = APIRouter(prefix="/api", redirect_slashes=False)

api_router.include_router(generate_router, tags=["Generation"])
api_router.include_router(system_router, prefix="/system", tags=["System"])
