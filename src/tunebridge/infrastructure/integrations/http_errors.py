"""Translate httpx responses into domain exceptions.

Hey future me - every integration funnels non-2xx responses through
raise_for_api_status() so the application layer only ever sees domain
exceptions, never httpx.HTTPStatusError. The mapping matters for the
conversion loop: AuthenticationError triggers the one-shot token refresh,
TransientNetworkError is recovered per track, everything else is an
ExternalServiceError carrying the status code.
"""

from typing import Any

import httpx

from tunebridge.domain.entities import TokenGrant
from tunebridge.domain.exceptions import (
    AuthenticationError,
    ExternalServiceError,
    RateLimitExceededError,
    TransientNetworkError,
)


def parse_retry_after(response: httpx.Response) -> int | None:
    """Read the Retry-After header as whole seconds, None if absent or unparseable."""
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0, int(float(value)))
    except ValueError:
        return None


def _error_detail(response: httpx.Response) -> str:
    """Best-effort error message from Spotify ({"error": {"message"}}) or Google bodies."""
    try:
        body: Any = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error.get("status") or response.reason_phrase)
    if isinstance(error, str):
        return str(body.get("error_description") or error)
    return response.reason_phrase


def raise_for_api_status(response: httpx.Response, service: str) -> None:
    """Raise the matching domain exception for a non-2xx response."""
    if response.is_success:
        return

    status = response.status_code
    detail = _error_detail(response)

    if status == 401:
        raise AuthenticationError(f"{service} rejected the access token: {detail}")
    if status == 429:
        retry_after = parse_retry_after(response)
        raise RateLimitExceededError(
            f"{service} rate limit exceeded (Retry-After: {retry_after or 'not provided'}s)",
            retry_after=retry_after,
            service=service,
        )
    if status >= 500:
        raise TransientNetworkError(
            f"{service} server error {status}: {detail}",
            status_code=status,
            service=service,
        )
    raise ExternalServiceError(
        f"{service} API error {status}: {detail}", status_code=status, service=service
    )


def parse_oauth_error(response: httpx.Response) -> tuple[str, str]:
    """Extract (error, error_description) from an OAuth token endpoint error body."""
    try:
        body = response.json()
    except ValueError:
        return "", response.text[:200]
    if not isinstance(body, dict):
        return "", ""
    return (
        str(body.get("error", "")),
        str(body.get("error_description", "Refresh token is invalid or has been revoked")),
    )


def token_grant_from_payload(payload: dict[str, Any]) -> TokenGrant:
    """Build a TokenGrant from a successful token endpoint response."""
    access_token = payload.get("access_token")
    if not access_token:
        raise ExternalServiceError("Token response did not contain an access_token")
    expires_in = payload.get("expires_in")
    return TokenGrant(
        access_token=access_token,
        expires_in=int(expires_in) if expires_in is not None else None,
        refresh_token=payload.get("refresh_token"),
        token_type=payload.get("token_type", "Bearer"),
        scope=payload.get("scope"),
    )


__all__ = [
    "parse_oauth_error",
    "parse_retry_after",
    "raise_for_api_status",
    "token_grant_from_payload",
]
