"""Custom exception handlers for the FastAPI application.

Domain exceptions raised anywhere below a route end up here and leave as
JSON {"detail": "..."} with a proper status code instead of a 500.
Starlette resolves handlers along the exception's MRO, so subclasses
(SourceNotFoundError, TransientNetworkError) use their parent's handler
unless they have their own.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tunebridge.domain.exceptions import (
    AuthenticationError,
    ConfigurationError,
    EntityNotFoundException,
    ExternalServiceError,
    InvalidStateException,
    NotConnectedError,
    RateLimitExceededError,
    RefreshError,
    ValidationException,
)

logger = logging.getLogger(__name__)


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Pydantic errors may carry the raw body as bytes, which JSONResponse can't encode."""

    def _sanitize(value: Any) -> Any:
        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")
        if isinstance(value, dict):
            return {k: _sanitize(v) for k, v in value.items()}
        if isinstance(value, list | tuple):
            return [_sanitize(item) for item in value]
        return value

    return [_sanitize(error) for error in errors]


def _json(status_code: int, detail: Any, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail}, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain exceptions to HTTP responses."""

    @app.exception_handler(ValidationException)
    async def validation_exception_handler(
        request: Request, exc: ValidationException
    ) -> JSONResponse:
        logger.warning("Validation error at %s: %s", request.url.path, exc.message)
        return _json(status.HTTP_422_UNPROCESSABLE_ENTITY, exc.message)

    @app.exception_handler(EntityNotFoundException)
    async def entity_not_found_exception_handler(
        request: Request, exc: EntityNotFoundException
    ) -> JSONResponse:
        logger.info(
            "Entity not found at %s: %s %s",
            request.url.path,
            exc.entity_type,
            exc.entity_id,
            extra={"entity_type": exc.entity_type, "entity_id": str(exc.entity_id)},
        )
        return _json(status.HTTP_404_NOT_FOUND, exc.message)

    @app.exception_handler(InvalidStateException)
    async def invalid_state_exception_handler(
        request: Request, exc: InvalidStateException
    ) -> JSONResponse:
        logger.warning("Invalid state at %s: %s", request.url.path, exc.message)
        return _json(status.HTTP_409_CONFLICT, exc.message)

    @app.exception_handler(NotConnectedError)
    async def not_connected_handler(
        request: Request, exc: NotConnectedError
    ) -> JSONResponse:
        logger.info("Platform not connected at %s: %s", request.url.path, exc.platform)
        return _json(status.HTTP_409_CONFLICT, exc.message)

    # 401 tells the frontend to send the user through the sign-in flow again
    @app.exception_handler(RefreshError)
    async def refresh_error_handler(request: Request, exc: RefreshError) -> JSONResponse:
        logger.warning(
            "Token refresh failed at %s: %s (code=%s)",
            request.url.path,
            exc.message,
            exc.error_code,
        )
        return _json(status.HTTP_401_UNAUTHORIZED, exc.message)

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(
        request: Request, exc: AuthenticationError
    ) -> JSONResponse:
        logger.warning("Authentication failed at %s: %s", request.url.path, exc.message)
        return _json(status.HTTP_401_UNAUTHORIZED, exc.message)

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_handler(
        request: Request, exc: RateLimitExceededError
    ) -> JSONResponse:
        logger.warning("Rate limited at %s: %s", request.url.path, exc.message)
        headers = (
            {"Retry-After": str(exc.retry_after)} if exc.retry_after is not None else None
        )
        return _json(status.HTTP_429_TOO_MANY_REQUESTS, exc.message, headers)

    @app.exception_handler(ExternalServiceError)
    async def external_service_handler(
        request: Request, exc: ExternalServiceError
    ) -> JSONResponse:
        logger.error(
            "External service error at %s: %s",
            request.url.path,
            exc.message,
            extra={"service": exc.service, "upstream_status": exc.status_code},
        )
        return _json(status.HTTP_502_BAD_GATEWAY, exc.message)

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        logger.error("Configuration error at %s: %s", request.url.path, exc.message)
        return _json(status.HTTP_503_SERVICE_UNAVAILABLE, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = _sanitize_validation_errors(list(exc.errors()))
        logger.warning("Request validation error at %s: %s", request.url.path, errors)
        return _json(status.HTTP_422_UNPROCESSABLE_ENTITY, errors)
