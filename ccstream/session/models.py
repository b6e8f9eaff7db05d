"""Snapshot models returned by the stream session.

Field names are snake_case in Python and camelCase on the wire, which is
what the browser UI polls.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """Dump with camelCase keys, leaving out unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class FileInfo(CamelModel):
    """File entry as listed after a torrent is added."""

    index: int = Field(..., description="Position in the torrent's file list")
    name: str = Field(..., description="File name")
    path: str = Field("", description="Path inside the torrent")
    length: int = Field(..., ge=0, description="File length in bytes")


class FileStatus(FileInfo):
    """File entry with download progress."""

    downloaded: int = Field(0, ge=0, description="Bytes downloaded")
    progress: float = Field(0.0, ge=0.0, le=1.0, description="Download progress")


class PositionInfo(CamelModel):
    """Tracked playback position."""

    file_index: int | None = Field(None, description="Tracked file, null before any report")
    byte_position: int = Field(0, ge=0, description="Byte offset inside the tracked file")


class StatusSnapshot(CamelModel):
    """Status polled by the UI."""

    active: bool = Field(..., description="Whether a torrent is active")
    ready: bool | None = Field(None, description="Whether metadata has arrived")
    name: str | None = None
    info_hash: str | None = None
    progress: float | None = Field(None, ge=0.0, le=1.0)
    downloaded: int | None = None
    total: int | None = None
    download_speed: float | None = None
    upload_speed: float | None = None
    num_peers: int | None = None
    buffer_ahead: int | None = Field(None, description="Contiguous bytes ready past the playhead")
    piece_map: list[bool] | None = Field(None, description="Availability per piece of the tracked file")
    current_position: PositionInfo | None = None
    piece_length: int | None = None
    files: list[FileStatus] | None = None
    tracker_count: int = Field(0, description="Number of loaded trackers")
