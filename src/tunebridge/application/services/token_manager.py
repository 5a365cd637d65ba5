"""Token access layer: valid access tokens per user and platform.

Hey future me - this is the ONLY way the pipeline gets tokens!
Flow for get_valid_token():
1. TokenCache hit → return it (no DB, no network)
2. Miss → load stored credentials (NotConnectedError if never linked)
3. Stored token expired (or within the safety buffer) → refresh with the
   provider, persist the new token FIRST, then hand it out
4. Cache it for min(cache TTL, time until expiry minus buffer)

Concurrent callers for the same user+platform share one load through the
cache's single-flight future, so N parallel conversions cause one refresh.

run_with_token() wraps a downstream call with the 401 policy: invalidate,
force-refresh, retry exactly once. A second 401 propagates.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import TypeVar

import httpx

from tunebridge.application.cache.token_cache import TokenCache
from tunebridge.domain.entities import Platform, ServiceCredentials
from tunebridge.domain.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ExternalServiceError,
    NotConnectedError,
    RefreshError,
)
from tunebridge.domain.ports import ICredentialRepository, IOAuthClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TokenManager:
    """Hands out valid access tokens, refreshing and caching as needed."""

    def __init__(
        self,
        credential_repository: ICredentialRepository,
        token_cache: TokenCache,
        oauth_clients: Mapping[Platform, IOAuthClient],
        expiry_buffer_seconds: int = 300,
        cache_ttl_seconds: int = 3300,
    ) -> None:
        self._credentials = credential_repository
        self._cache = token_cache
        self._oauth_clients = dict(oauth_clients)
        self._expiry_buffer = expiry_buffer_seconds
        self._cache_ttl = cache_ttl_seconds

    async def get_valid_token(
        self, user_id: str, platform: Platform, *, force_refresh: bool = False
    ) -> str:
        """Get a usable access token.

        Args:
            user_id: Token owner
            platform: spotify or youtube
            force_refresh: Skip the cache and refresh with the provider even if the
                stored token looks valid (used after a 401)

        Raises:
            NotConnectedError: The user never linked this platform
            RefreshError: Refresh was needed and failed
        """
        platform = Platform(platform)

        async def load() -> tuple[str, float]:
            credentials = await self._credentials.get(user_id, platform)
            if credentials is None:
                raise NotConnectedError(platform.display_name, user_id)

            if force_refresh or credentials.is_expired(self._expiry_buffer):
                credentials = await self._refresh(credentials)

            return credentials.access_token, self._ttl_for(credentials)

        return await self._cache.get_or_refresh(
            user_id, platform, load, bypass_cache=force_refresh
        )

    async def invalidate(self, user_id: str, platform: Platform) -> None:
        """Forget the cached token, the next call reloads it."""
        await self._cache.invalidate(user_id, Platform(platform))

    async def run_with_token(
        self,
        user_id: str,
        platform: Platform,
        operation: Callable[[str], Awaitable[T]],
    ) -> T:
        """Run operation(token), retrying ONCE with a refreshed token after a 401."""
        token = await self.get_valid_token(user_id, platform)
        try:
            return await operation(token)
        except AuthenticationError:
            logger.info(
                "%s rejected token for user %s, refreshing and retrying once",
                Platform(platform).display_name,
                user_id,
            )
            await self.invalidate(user_id, platform)
            token = await self.get_valid_token(user_id, platform, force_refresh=True)
            return await operation(token)

    # Hey future me - the refreshed token is persisted BEFORE anyone gets it. Spotify may
    # rotate the refresh token on every refresh; losing the new one means the user has to
    # reconnect. Provider/network failures are wrapped in RefreshError since the caller
    # can't continue without a token either way.
    async def _refresh(self, credentials: ServiceCredentials) -> ServiceCredentials:
        platform = credentials.platform
        if not credentials.refresh_token:
            raise RefreshError(
                f"No {platform.display_name} refresh token stored. Please reconnect.",
                error_code="missing_refresh_token",
            )

        client = self._oauth_clients.get(platform)
        if client is None:
            raise ConfigurationError(f"No OAuth client configured for {platform.value}")

        try:
            grant = await client.refresh_access_token(credentials.refresh_token)
        except (RefreshError, ConfigurationError):
            raise
        except ExternalServiceError as e:
            raise RefreshError(
                f"{platform.display_name} token refresh failed: {e.message}",
                error_code="provider_error",
                http_status=e.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise RefreshError(
                f"{platform.display_name} token refresh failed: {e}",
                error_code="network_error",
            ) from e

        updated = credentials.with_grant(grant)
        await self._credentials.save(updated)
        logger.info(
            "Refreshed %s token for user %s (expires_at=%s)",
            platform.display_name,
            credentials.user_id,
            updated.expires_at.isoformat() if updated.expires_at else "unknown",
        )
        return updated

    def _ttl_for(self, credentials: ServiceCredentials) -> float:
        remaining = credentials.seconds_until_expiry()
        if remaining is None:
            return float(self._cache_ttl)
        return min(float(self._cache_ttl), remaining - self._expiry_buffer)

    async def connect(
        self,
        user_id: str,
        platform: Platform,
        access_token: str,
        refresh_token: str | None = None,
        expires_in: int | None = None,
        scope: str | None = None,
    ) -> ServiceCredentials:
        """Store credentials handed over by the external sign-in flow."""
        platform = Platform(platform)
        credentials = ServiceCredentials(
            user_id=user_id,
            platform=platform,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=(
                datetime.now(UTC) + timedelta(seconds=expires_in)
                if expires_in is not None
                else None
            ),
            scope=scope,
        )
        await self._credentials.save(credentials)
        await self._cache.invalidate(user_id, platform)
        logger.info("Connected %s for user %s", platform.display_name, user_id)
        return credentials

    async def disconnect(self, user_id: str, platform: Platform) -> bool:
        """Remove stored credentials. Returns False if nothing was linked."""
        platform = Platform(platform)
        removed = await self._credentials.delete(user_id, platform)
        await self._cache.invalidate(user_id, platform)
        if removed:
            logger.info("Disconnected %s for user %s", platform.display_name, user_id)
        return removed

    async def connection_status(self, user_id: str) -> dict[Platform, bool]:
        """Which platforms the user has linked."""
        linked = set(await self._credentials.list_platforms(user_id))
        return {platform: platform in linked for platform in Platform}
