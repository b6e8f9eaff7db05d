"""Configuration models for ccstream.

Pydantic models validated by :class:`ccstream.config.config.ConfigManager`.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

DEFAULT_REMOTE_TRACKERS_URL = (
    "https://raw.githubusercontent.com/ngosang/trackerslist/master/trackers_best.txt"
)


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = Field(default="0.0.0.0", description="Interface to bind the HTTP server to")
    port: int = Field(default=8888, ge=0, le=65535, description="HTTP server port")
    static_dir: str | None = Field(
        default=None,
        description="Directory with the browser UI (index.html); not served when unset",
    )
    stream_chunk_size: int = Field(
        default=64 * 1024,
        ge=1024,
        le=16 * 1024 * 1024,
        description="Maximum bytes written to the HTTP response per chunk",
    )


class StreamingConfig(BaseModel):
    """Piece prioritization and torrent lifecycle configuration."""

    urgent_window_bytes: int = Field(
        default=5 * 1024 * 1024,
        ge=1,
        description="Bytes ahead of the playback position to fetch urgently",
    )
    max_urgent_pieces: int = Field(
        default=50,
        ge=1,
        le=10000,
        description="Upper bound on the number of pieces in one urgent window",
    )
    metadata_timeout: float = Field(
        default=30.0,
        gt=0.0,
        le=3600.0,
        description="Seconds to wait for torrent metadata before giving up",
    )


class EngineConfig(BaseModel):
    """Transfer engine configuration."""

    temp_dir: str = Field(default="temp", description="Scratch directory for torrent data")
    listen_interfaces: str = Field(
        default="0.0.0.0:6881",
        description="Peer listen interfaces (libtorrent format)",
    )
    upload_rate_limit: int = Field(
        default=5000,
        ge=0,
        description="Upload rate limit in bytes/sec (0 = unlimited)",
    )
    sequential_download: bool = Field(
        default=True,
        description="Download pieces in order when no urgent window applies",
    )
    piece_poll_interval: float = Field(
        default=0.25,
        gt=0.0,
        le=10.0,
        description="Seconds between availability checks while a read waits for a piece",
    )
    read_chunk_size: int = Field(
        default=256 * 1024,
        ge=1024,
        description="Bytes read from disk per step of a range read",
    )
    delete_timeout: float = Field(
        default=10.0,
        gt=0.0,
        le=120.0,
        description="Seconds to wait for the engine to delete torrent data on removal",
    )


class TrackerConfig(BaseModel):
    """Tracker list configuration."""

    trackers_file: str | None = Field(
        default="trackers.txt",
        description="Local file with one tracker URL per line",
    )
    remote_url: str | None = Field(
        default=DEFAULT_REMOTE_TRACKERS_URL,
        description="Remote tracker list merged with the local file",
    )
    fetch_remote: bool = Field(default=True, description="Fetch the remote tracker list")
    fetch_timeout: float = Field(
        default=10.0,
        gt=0.0,
        le=300.0,
        description="Timeout in seconds for fetching the remote list",
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Log level")
    log_file: str | None = Field(None, description="Log file path")
    structured_logging: bool = Field(
        default=False,
        description="Write JSON lines to the log file",
    )
    log_correlation_id: bool = Field(
        default=True,
        description="Include correlation IDs",
    )


class Config(BaseModel):
    """Top-level configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    trackers: TrackerConfig = Field(default_factory=TrackerConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
