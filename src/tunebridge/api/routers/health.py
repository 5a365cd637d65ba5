"""Health check endpoint for Docker/Kubernetes probes."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from tunebridge import __version__
from tunebridge.api.dependencies import get_database
from tunebridge.api.schemas import HealthResponse
from tunebridge.infrastructure.persistence.database import Database

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(db: Database | None = Depends(get_database)) -> JSONResponse:
    """Report whether the app and its database are usable. Degraded → 503."""
    database_ok = db is not None and await db.ping()
    body = HealthResponse(
        status="healthy" if database_ok else "degraded",
        timestamp=datetime.now(UTC).isoformat(),
        version=__version__,
        checks={"database": database_ok},
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if database_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(),
    )
