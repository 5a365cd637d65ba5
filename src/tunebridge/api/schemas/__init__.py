"""API request/response schemas."""

from tunebridge.api.schemas.conversions import (
    ConnectionStatusResponse,
    ConnectRequest,
    ConversionCreateRequest,
    ConversionDTO,
    ConversionListResponse,
    HealthResponse,
    PlaylistDTO,
    TrackDTO,
)

__all__ = [
    "ConnectRequest",
    "ConnectionStatusResponse",
    "ConversionCreateRequest",
    "ConversionDTO",
    "ConversionListResponse",
    "HealthResponse",
    "PlaylistDTO",
    "TrackDTO",
]
