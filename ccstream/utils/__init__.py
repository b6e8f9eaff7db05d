"""Errors, logging and task helpers shared across ccstream."""

from __future__ import annotations

from ccstream.utils.exceptions import (
    CCStreamError,
    ConfigurationError,
    EngineError,
    MetadataTimeoutError,
    NoActiveTorrentError,
    UnknownFileError,
    ValidationError,
)
from ccstream.utils.logging_config import get_logger, setup_logging

__all__ = [
    # Exceptions
    "CCStreamError",
    "ConfigurationError",
    "EngineError",
    "MetadataTimeoutError",
    "NoActiveTorrentError",
    "UnknownFileError",
    "ValidationError",
    # Logging
    "get_logger",
    "setup_logging",
]
