"""Spotify Web API client."""

import base64
import logging
from typing import Any, cast

import httpx

from tunebridge.config.settings import SpotifySettings
from tunebridge.domain.entities import TokenGrant
from tunebridge.domain.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    RateLimitExceededError,
    RefreshError,
    SourceNotFoundError,
    TransientNetworkError,
)
from tunebridge.domain.ports import IOAuthClient
from tunebridge.infrastructure.integrations.http_errors import (
    parse_oauth_error,
    parse_retry_after,
    raise_for_api_status,
    token_grant_from_payload,
)
from tunebridge.infrastructure.rate_limiter import RateLimiter, get_spotify_limiter

logger = logging.getLogger(__name__)


class SpotifyClient(IOAuthClient):
    """HTTP client for the Spotify Web API and its token endpoint."""

    TOKEN_URL = "https://accounts.spotify.com/api/token"  # nosec B105 - public endpoint URL
    API_BASE_URL = "https://api.spotify.com/v1"
    SERVICE = "Spotify"

    # Hey future me, the HTTP client is NOT created here - httpx.AsyncClient must be created
    # inside a running event loop, so _get_client() builds it lazily. Tests pass their own
    # client (with httpx.MockTransport) through http_client.
    def __init__(
        self,
        settings: SpotifySettings,
        http_client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.settings = settings
        self._client = http_client
        self._rate_limiter = rate_limiter

    # Spotify can be slow on big playlist pages, 30s timeout keeps those from failing randomly
    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter or get_spotify_limiter()

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # Hey future me - ALL Spotify API calls go through here!
    # - token bucket rate limiting before every request
    # - 429 → wait Retry-After (or adaptive backoff) and retry, max_retries times
    # - transport failures become TransientNetworkError
    # The raw response is returned for every other status, callers decide what 404 means.
    async def _api_request(
        self,
        method: str,
        url: str,
        access_token: str,
        params: dict[str, Any] | None = None,
        max_retries: int = 3,
    ) -> httpx.Response:
        """Make a rate-limited API request with automatic retry on 429.

        Raises:
            TransientNetworkError: On connection errors and timeouts
            RateLimitExceededError: If still rate limited after max_retries
        """
        client = await self._get_client()
        limiter = self.rate_limiter
        headers = {"Authorization": f"Bearer {access_token}"}

        for attempt in range(max_retries + 1):
            try:
                async with limiter:
                    response = await client.request(
                        method=method, url=url, params=params, headers=headers
                    )
            except httpx.TransportError as e:
                raise TransientNetworkError(
                    f"Spotify request failed: {e}", service=self.SERVICE
                ) from e

            if response.status_code != 429:
                return response

            retry_after = parse_retry_after(response)
            if attempt >= max_retries:
                logger.error(
                    "Spotify API rate limited after %d retries: %s (Retry-After: %s)",
                    max_retries,
                    url,
                    retry_after,
                )
                raise RateLimitExceededError(
                    f"Spotify API rate limited (429) after {max_retries} retries",
                    retry_after=retry_after,
                    service=self.SERVICE,
                )

            wait_time = await limiter.handle_rate_limit_response(retry_after)
            logger.warning(
                "Spotify 429 (attempt %d/%d): waited %.1fs, retrying %s",
                attempt + 1,
                max_retries,
                wait_time,
                url,
            )

        raise RateLimitExceededError(  # pragma: no cover - loop always returns or raises
            "Spotify API rate limited", service=self.SERVICE
        )

    async def _get_json(
        self, url: str, access_token: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        response = await self._api_request("GET", url, access_token, params=params)
        raise_for_api_status(response, self.SERVICE)
        return cast(dict[str, Any], response.json())

    # Hey future me - check for invalid_grant BEFORE any generic error mapping!
    # Spotify answers 400 {"error": "invalid_grant"} when the refresh token was revoked, that
    # means re-auth, not "try again later". Public clients (no secret configured) send client_id
    # in the form body, confidential clients authenticate with HTTP Basic.
    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Exchange a refresh token for a new access token.

        Raises:
            ConfigurationError: If no Spotify client id is configured
            RefreshError: If the refresh token is invalid or access was revoked
            ExternalServiceError: On other token endpoint failures
        """
        if not self.settings.is_configured():
            raise ConfigurationError("SPOTIFY__CLIENT_ID is not configured")

        client = await self._get_client()
        data = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        if self.settings.client_secret:
            raw = f"{self.settings.client_id}:{self.settings.client_secret}".encode()
            headers["Authorization"] = f"Basic {base64.b64encode(raw).decode()}"
        else:
            data["client_id"] = self.settings.client_id

        try:
            response = await client.post(self.TOKEN_URL, data=data, headers=headers)
        except httpx.TransportError as e:
            raise TransientNetworkError(
                f"Spotify token endpoint unreachable: {e}", service=self.SERVICE
            ) from e

        if response.status_code == 400:
            error_code, description = parse_oauth_error(response)
            if error_code == "invalid_grant":
                raise RefreshError(
                    f"Refresh token invalid: {description}. Please re-authenticate with Spotify.",
                    error_code=error_code,
                    http_status=400,
                )

        if response.status_code in (401, 403):
            raise RefreshError(
                "Spotify access denied. Please re-authenticate with Spotify.",
                error_code="access_denied",
                http_status=response.status_code,
            )

        if not response.is_success:
            raise ExternalServiceError(
                f"Spotify token refresh failed with status {response.status_code}",
                status_code=response.status_code,
                service=self.SERVICE,
            )

        return token_grant_from_payload(response.json())

    # Private playlists need the playlist-read-private scope, without it Spotify answers 403.
    # From the user's point of view that's the same as "doesn't exist", so both map to
    # SourceNotFoundError.
    async def get_playlist(self, playlist_id: str, access_token: str) -> dict[str, Any]:
        """Get playlist details.

        Raises:
            SourceNotFoundError: If Spotify answers 404 or 403
        """
        response = await self._api_request(
            "GET",
            f"{self.API_BASE_URL}/playlists/{playlist_id}",
            access_token,
            params={"fields": "id,name,description,owner(display_name),tracks(total)"},
        )
        if response.status_code in (403, 404):
            raise SourceNotFoundError(playlist_id)
        raise_for_api_status(response, self.SERVICE)
        return cast(dict[str, Any], response.json())

    async def get_playlist_tracks(
        self,
        playlist_id: str,
        access_token: str,
        limit: int = 100,
        offset: int = 0,
    ) -> dict[str, Any]:
        """Get one page of playlist items (raw JSON, caller paginates via 'next').

        Raises:
            SourceNotFoundError: If Spotify answers 404 or 403
        """
        response = await self._api_request(
            "GET",
            f"{self.API_BASE_URL}/playlists/{playlist_id}/tracks",
            access_token,
            params={"limit": min(limit, 100), "offset": offset},
        )
        if response.status_code in (403, 404):
            raise SourceNotFoundError(playlist_id)
        raise_for_api_status(response, self.SERVICE)
        return cast(dict[str, Any], response.json())

    async def get_user_playlists(
        self, access_token: str, limit: int = 50, offset: int = 0
    ) -> dict[str, Any]:
        """Get one page of the current user's playlists (max 50 per page)."""
        return await self._get_json(
            f"{self.API_BASE_URL}/me/playlists",
            access_token,
            params={"limit": min(limit, 50), "offset": offset},
        )

    async def __aenter__(self) -> "SpotifyClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


__all__ = ["SpotifyClient"]
