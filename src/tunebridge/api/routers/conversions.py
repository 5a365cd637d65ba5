"""Conversion endpoints: start, history, details, deletion and live progress."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Request, Response, status
from sse_starlette.sse import EventSourceResponse

from tunebridge.api.dependencies import (
    ConversionServiceDep,
    CurrentUserId,
    SettingsDep,
)
from tunebridge.api.schemas import (
    ConversionCreateRequest,
    ConversionDTO,
    ConversionListResponse,
)
from tunebridge.application.use_cases.convert_playlist import ConvertPlaylistRequest
from tunebridge.domain.entities import Conversion, ConversionProgress, PlaylistVisibility

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversions", tags=["conversions"])


@router.post("", status_code=status.HTTP_202_ACCEPTED, response_model=ConversionDTO)
async def start_conversion(
    body: ConversionCreateRequest,
    user_id: CurrentUserId,
    service: ConversionServiceDep,
    settings: SettingsDep,
) -> ConversionDTO:
    """Start converting a Spotify playlist into a YouTube playlist.

    Returns immediately with the processing record, follow progress via
    GET /api/conversions/{id}/events or by polling GET /api/conversions/{id}.
    """
    visibility = body.visibility or PlaylistVisibility(
        settings.conversion.default_visibility
    )
    conversion = await service.start_conversion(
        ConvertPlaylistRequest(
            user_id=user_id,
            playlist_id=body.playlist_id,
            selected_track_ids=body.selected_track_ids,
            visibility=visibility,
        )
    )
    return ConversionDTO.from_entity(conversion)


@router.get("", response_model=ConversionListResponse)
async def list_conversions(
    user_id: CurrentUserId, service: ConversionServiceDep
) -> ConversionListResponse:
    """Conversion history of the current user, newest first."""
    conversions = await service.list_conversions(user_id)
    return ConversionListResponse(
        items=[ConversionDTO.from_entity(c) for c in conversions],
        total=len(conversions),
    )


@router.get("/{conversion_id}", response_model=ConversionDTO)
async def get_conversion(
    conversion_id: str, user_id: CurrentUserId, service: ConversionServiceDep
) -> ConversionDTO:
    return ConversionDTO.from_entity(await service.get_conversion(user_id, conversion_id))


@router.delete("/{conversion_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversion(
    conversion_id: str, user_id: CurrentUserId, service: ConversionServiceDep
) -> Response:
    """Delete a finished conversion record. The YouTube playlist is kept."""
    await service.delete_conversion(user_id, conversion_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Hey future me - SSE stream of ONE conversion. Events:
#   progress  → {"processed", "total", "current_track", "progress", "outcome", ...}
#   finished  → the final ConversionDTO, then the stream ends
# Subscribing to an already finished conversion yields just "finished". The subscription is
# checked (404 for unknown / foreign ids) BEFORE the stream starts so errors are real HTTP errors.
@router.get("/{conversion_id}/events")
async def conversion_events(
    conversion_id: str,
    request: Request,
    user_id: CurrentUserId,
    service: ConversionServiceDep,
) -> EventSourceResponse:
    """Server-Sent Events with live progress of a conversion."""
    channel = await service.subscribe(user_id, conversion_id)

    async def event_generator() -> AsyncIterator[dict[str, str]]:
        try:
            async for event in channel:
                if await request.is_disconnected():
                    break
                if isinstance(event, ConversionProgress):
                    yield {"event": "progress", "data": json.dumps(event.to_dict())}
                elif isinstance(event, Conversion):
                    yield {
                        "event": "finished",
                        "data": ConversionDTO.from_entity(event).model_dump_json(),
                    }
        except asyncio.CancelledError:
            logger.debug("SSE connection for conversion %s cancelled", conversion_id)
            raise
        finally:
            service.unsubscribe(channel)

    return EventSourceResponse(event_generator())
