"""API routers."""

from fastapi import APIRouter

from tunebridge.api.routers import connections, conversions, health, spotify, youtube

api_router = APIRouter(prefix="/api")
api_router.include_router(conversions.router)
api_router.include_router(connections.router)
api_router.include_router(spotify.router)
api_router.include_router(youtube.router)

__all__ = ["api_router", "health"]
