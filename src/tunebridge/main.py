"""FastAPI application entry point."""

import uvicorn
from fastapi import FastAPI

from tunebridge import __version__
from tunebridge.api.exception_handlers import register_exception_handlers
from tunebridge.api.routers import api_router, health
from tunebridge.config import Settings, get_settings
from tunebridge.infrastructure.lifecycle import lifespan
from tunebridge.infrastructure.observability import RequestLoggingMiddleware


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings to use instead of the environment (tests)
    """
    settings = settings or get_settings()
    app = FastAPI(
        title="TuneBridge",
        description="Convert Spotify playlists into YouTube playlists",
        version=__version__,
        lifespan=lifespan,
        debug=settings.app_env == "development",
    )
    app.state.settings = settings

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(api_router)
    return app


app = create_app()


def main() -> None:
    """Run the development server (`tunebridge` console script)."""
    uvicorn.run("tunebridge.main:app", host="0.0.0.0", port=8000)  # nosec B104


if __name__ == "__main__":
    main()
