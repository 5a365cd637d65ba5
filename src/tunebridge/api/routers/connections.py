"""Platform connection endpoints.

The OAuth authorization-code dance happens in the external sign-in flow. It
hands the resulting tokens to PUT /connections/{platform}, from then on the
TokenManager keeps them fresh.
"""

from fastapi import APIRouter, Response, status

from tunebridge.api.dependencies import CurrentUserId, TokenManagerDep
from tunebridge.api.schemas import ConnectionStatusResponse, ConnectRequest
from tunebridge.domain.entities import Platform

router = APIRouter(prefix="/connections", tags=["connections"])


@router.get("", response_model=ConnectionStatusResponse)
async def get_connections(
    user_id: CurrentUserId, token_manager: TokenManagerDep
) -> ConnectionStatusResponse:
    """Which platforms the current user has linked."""
    return ConnectionStatusResponse.from_status(
        await token_manager.connection_status(user_id)
    )


@router.put("/{platform}", response_model=ConnectionStatusResponse)
async def connect_platform(
    platform: Platform,
    body: ConnectRequest,
    user_id: CurrentUserId,
    token_manager: TokenManagerDep,
) -> ConnectionStatusResponse:
    """Store (or replace) the tokens of a platform."""
    await token_manager.connect(
        user_id,
        platform,
        access_token=body.access_token,
        refresh_token=body.refresh_token,
        expires_in=body.expires_in,
        scope=body.scope,
    )
    return ConnectionStatusResponse.from_status(
        await token_manager.connection_status(user_id)
    )


@router.delete("/{platform}", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_platform(
    platform: Platform, user_id: CurrentUserId, token_manager: TokenManagerDep
) -> Response:
    """Forget the stored tokens of a platform (no-op if not linked)."""
    await token_manager.disconnect(user_id, platform)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
