"""YouTube Data API v3 client (Google OAuth)."""

import logging
from typing import Any, cast

import httpx

from tunebridge.config.settings import YouTubeSettings
from tunebridge.domain.entities import TokenGrant
from tunebridge.domain.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    RateLimitExceededError,
    RefreshError,
    TransientNetworkError,
)
from tunebridge.domain.ports import IOAuthClient
from tunebridge.infrastructure.integrations.http_errors import (
    parse_oauth_error,
    parse_retry_after,
    raise_for_api_status,
    token_grant_from_payload,
)
from tunebridge.infrastructure.rate_limiter import RateLimiter, get_youtube_limiter

logger = logging.getLogger(__name__)


class YouTubeClient(IOAuthClient):
    """HTTP client for YouTube search and playlist writes."""

    TOKEN_URL = "https://oauth2.googleapis.com/token"  # nosec B105 - public endpoint URL
    API_BASE_URL = "https://www.googleapis.com/youtube/v3"
    SERVICE = "YouTube"

    def __init__(
        self,
        settings: YouTubeSettings,
        http_client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.settings = settings
        self._client = http_client
        self._rate_limiter = rate_limiter

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter or get_youtube_limiter()

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _api_request(
        self,
        method: str,
        path: str,
        access_token: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        max_retries: int = 3,
    ) -> dict[str, Any]:
        """Make a rate-limited API request and return the decoded JSON body.

        429 responses are retried with backoff, everything else non-2xx is
        translated into a domain exception.

        Raises:
            AuthenticationError: On 401 (token rejected)
            TransientNetworkError: On connection errors, timeouts and 5xx
            RateLimitExceededError: If still rate limited after max_retries
            ExternalServiceError: On any other non-2xx status
        """
        client = await self._get_client()
        limiter = self.rate_limiter
        url = f"{self.API_BASE_URL}{path}"
        headers = {"Authorization": f"Bearer {access_token}"}

        for attempt in range(max_retries + 1):
            try:
                async with limiter:
                    response = await client.request(
                        method=method, url=url, params=params, json=json, headers=headers
                    )
            except httpx.TransportError as e:
                raise TransientNetworkError(
                    f"YouTube request failed: {e}", service=self.SERVICE
                ) from e

            if response.status_code == 429 and attempt < max_retries:
                wait_time = await limiter.handle_rate_limit_response(
                    parse_retry_after(response)
                )
                logger.warning(
                    "YouTube 429 (attempt %d/%d): waited %.1fs, retrying %s",
                    attempt + 1,
                    max_retries,
                    wait_time,
                    path,
                )
                continue

            raise_for_api_status(response, self.SERVICE)
            if not response.content:
                return {}
            return cast(dict[str, Any], response.json())

        raise RateLimitExceededError(  # pragma: no cover - loop always returns or raises
            "YouTube API rate limited", service=self.SERVICE
        )

    # Hey future me - Google only returns a refresh token on the FIRST consent with
    # access_type=offline. Grants connected without one can't be refreshed at all, the token
    # manager turns that into RefreshError before we ever get here.
    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Exchange a refresh token for a new access token.

        Raises:
            ConfigurationError: If Google client id/secret are missing
            RefreshError: If Google rejects the refresh token
            ExternalServiceError: On other token endpoint failures
        """
        if not self.settings.is_configured():
            raise ConfigurationError(
                "YOUTUBE__CLIENT_ID and YOUTUBE__CLIENT_SECRET must be configured"
            )

        client = await self._get_client()
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
        }

        try:
            response = await client.post(self.TOKEN_URL, data=data)
        except httpx.TransportError as e:
            raise TransientNetworkError(
                f"Google token endpoint unreachable: {e}", service=self.SERVICE
            ) from e

        if response.status_code in (400, 401, 403):
            error_code, description = parse_oauth_error(response)
            if response.status_code != 400 or error_code in (
                "invalid_grant",
                "invalid_client",
                "unauthorized_client",
            ):
                raise RefreshError(
                    f"Google refresh failed: {description or error_code}. "
                    "Please reconnect your YouTube account.",
                    error_code=error_code or "access_denied",
                    http_status=response.status_code,
                )

        if not response.is_success:
            raise ExternalServiceError(
                f"Google token refresh failed with status {response.status_code}",
                status_code=response.status_code,
                service=self.SERVICE,
            )

        return token_grant_from_payload(response.json())

    async def search_videos(
        self,
        access_token: str,
        query: str,
        max_results: int = 1,
        category_id: str | None = "10",
    ) -> dict[str, Any]:
        """search.list restricted to videos (category 10 is Music)."""
        params: dict[str, Any] = {
            "part": "snippet",
            "q": query,
            "type": "video",
            "maxResults": max_results,
        }
        if category_id:
            params["videoCategoryId"] = category_id
        return await self._api_request("GET", "/search", access_token, params=params)

    async def create_playlist(
        self,
        access_token: str,
        title: str,
        description: str,
        privacy_status: str = "private",
    ) -> dict[str, Any]:
        """playlists.insert - returns the created playlist resource."""
        body = {
            "snippet": {"title": title, "description": description},
            "status": {"privacyStatus": privacy_status},
        }
        return await self._api_request(
            "POST",
            "/playlists",
            access_token,
            params={"part": "snippet,status"},
            json=body,
        )

    async def list_playlists(
        self,
        access_token: str,
        page_token: str | None = None,
        max_results: int = 50,
    ) -> dict[str, Any]:
        """playlists.list for the token owner - one page, follow nextPageToken for more."""
        params: dict[str, Any] = {
            "part": "snippet,contentDetails",
            "mine": "true",
            "maxResults": max_results,
        }
        if page_token:
            params["pageToken"] = page_token
        return await self._api_request("GET", "/playlists", access_token, params=params)

    async def add_playlist_item(
        self,
        access_token: str,
        playlist_id: str,
        video_id: str,
        position: int | None = None,
    ) -> dict[str, Any]:
        """playlistItems.insert - appends (or inserts at position) one video."""
        snippet: dict[str, Any] = {
            "playlistId": playlist_id,
            "resourceId": {"kind": "youtube#video", "videoId": video_id},
        }
        if position is not None:
            snippet["position"] = position
        return await self._api_request(
            "POST",
            "/playlistItems",
            access_token,
            params={"part": "snippet"},
            json={"snippet": snippet},
        )

    async def __aenter__(self) -> "YouTubeClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


__all__ = ["YouTubeClient"]
