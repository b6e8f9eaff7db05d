"""Request and response models for the HTTP API.

JSON keys are camelCase on the wire; see :class:`CamelModel`.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from ccstream.session.models import CamelModel, FileInfo


class ErrorResponse(CamelModel):
    """Error payload returned with every non-2xx API response."""

    error: str = Field(..., description="Human-readable error message")
    code: str | None = Field(None, description="Error class name")
    details: dict[str, Any] | None = Field(None, description="Extra context")


class TorrentAddRequest(CamelModel):
    """Body of ``POST /api/torrent``."""

    magnet_or_hash: str = Field(..., description="Magnet link or bare info hash")


class TorrentAddResponse(CamelModel):
    """Reply to a successful ``POST /api/torrent``."""

    success: bool = True
    name: str
    info_hash: str
    files: list[FileInfo] = Field(default_factory=list)


class PlaybackPositionRequest(CamelModel):
    """Body of ``POST /api/playback-position``."""

    file_index: int = Field(..., ge=0, description="Index of the file being played")
    current_time: float = Field(..., ge=0.0, description="Playhead in seconds")
    # Browsers report an unknown (NaN) duration as null; it maps to byte 0
    duration: float | None = Field(None, description="Media duration in seconds")


class PositionResponse(CamelModel):
    """Reply to a playback position report."""

    success: bool = True
    byte_position: int


class SuccessResponse(CamelModel):
    """Bare success acknowledgement."""

    success: bool = True


class TrackerCountResponse(CamelModel):
    """Number of loaded trackers."""

    success: bool | None = None
    count: int
