"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing str(exception).
    # DON'T raise this directly - always use a specific subclass so callers can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationException(DomainException):
    """Raised when entity validation fails.

    Used at the store boundary when a persisted record doesn't match the
    fixed Conversion schema (unknown status, progress out of range, ...).
    """

    pass


class InvalidStateException(DomainException):
    """Raised when an entity is in an invalid state for the requested operation.

    Example: completing a conversion that already failed, or attaching a
    second destination playlist to a conversion.
    """

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration.

    HTTP Status: 503 (Service Unavailable)

    Example:
        raise ConfigurationError("YOUTUBE__CLIENT_SECRET is not configured")
    """

    pass


class NotConnectedError(DomainException):
    """The user never linked the requested platform.

    Fatal for the conversion - nothing can be done without a token.

    HTTP Status: 409
    """

    def __init__(self, platform: str, user_id: str | None = None) -> None:
        super().__init__(
            f"No {platform} account connected. Please connect {platform} first."
        )
        self.platform = platform
        self.user_id = user_id


class RefreshError(DomainException):
    """Raised when token refresh fails and re-authentication is required.

    Hey future me - thrown when the refresh credential is no longer usable.
    Common causes:
    - User revoked app access in the Spotify/Google account settings
    - No refresh token was ever stored (Google grants without offline access)
    - App credentials changed

    Fatal for the operation that needed the token. Never retried automatically.
    """

    def __init__(
        self,
        message: str = "Token refresh failed. Please re-authenticate.",
        error_code: str | None = None,
        http_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code  # e.g., "invalid_grant"
        self.http_status = http_status  # e.g., 400, 401

    @property
    def requires_reauth(self) -> bool:
        """Check if error requires user re-authentication."""
        # 400 with invalid_grant means the refresh token is dead,
        # 401/403 mean access denied (user revoked, etc.)
        return self.error_code in ("invalid_grant", "missing_refresh_token") or (
            self.http_status in (400, 401, 403)
        )


class SourceNotFoundError(EntityNotFoundException):
    """Source playlist doesn't exist or isn't visible to the user.

    The only fatal condition of an otherwise healthy conversion setup.
    """

    def __init__(self, playlist_id: str) -> None:
        super().__init__("Playlist", playlist_id)
        self.message = f"Source playlist {playlist_id} not found"
        self.args = (self.message,)
        self.playlist_id = playlist_id


class AuthenticationError(DomainException):
    """A downstream API rejected the access token (HTTP 401).

    Callers invalidate the cached token and retry once with a fresh one.

    HTTP Status: 401
    """

    pass


class ExternalServiceError(DomainException):
    """External service (Spotify, YouTube) returned an error.

    HTTP Status: 502 (Bad Gateway)
    """

    def __init__(
        self, message: str, status_code: int | None = None, service: str | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.service = service


class TransientNetworkError(ExternalServiceError):
    """I/O failure talking to an external service (timeouts, resets, 5xx).

    Recovered per track inside the conversion loop, fatal during setup.
    """

    pass


class RateLimitExceededError(ExternalServiceError):
    """External service rate limit was exceeded even after backoff retries.

    HTTP Status: 429
    """

    def __init__(
        self,
        message: str,
        retry_after: int | None = None,
        service: str | None = None,
    ) -> None:
        super().__init__(message, status_code=429, service=service)
        self.retry_after = retry_after


__all__ = [
    "DomainException",
    "EntityNotFoundException",
    "ValidationException",
    "InvalidStateException",
    "ConfigurationError",
    "NotConnectedError",
    "RefreshError",
    "SourceNotFoundError",
    "AuthenticationError",
    "ExternalServiceError",
    "TransientNetworkError",
    "RateLimitExceededError",
]
