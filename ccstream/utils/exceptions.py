"""Exception hierarchy for ccstream.

Every error raised by the streaming core derives from :class:`CCStreamError`
so the HTTP layer can map it to a structured error payload.
"""

from __future__ import annotations

import asyncio
from typing import Any


class CCStreamError(Exception):
    """Base exception for all ccstream errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize ccstream error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ValidationError(CCStreamError):
    """Data validation errors."""


class ConfigurationError(ValidationError):
    """Configuration validation errors."""


class ByteRangeError(ValidationError):
    """A byte offset lies outside the file it refers to."""


class NoActiveTorrentError(CCStreamError):
    """The operation needs a ready torrent and none is active."""


class UnknownFileError(CCStreamError):
    """File index out of range for the active torrent."""


class CCStreamTimeoutError(CCStreamError):
    """Timeout errors."""


class MetadataTimeoutError(CCStreamTimeoutError):
    """Adding a torrent exceeded the metadata fetch deadline."""


class RangeError(CCStreamError):
    """HTTP Range header errors."""


class MalformedRangeError(RangeError):
    """Range header could not be parsed as a single byte range."""


class RangeNotSatisfiableError(RangeError):
    """Range starts at or beyond the end of the file."""


class EngineError(CCStreamError):
    """The transfer engine reported a fault."""


class TransientStreamDisconnect(CCStreamError):
    """Client closed or reset the connection while a stream was open."""


# Substrings seen in errors raised by writes to a connection the client dropped
_DISCONNECT_MARKERS = (
    "closing transport",
    "connection lost",
    "writable stream closed",
    "econnreset",
    "aborted",
)


def is_disconnect_error(exc: BaseException) -> bool:
    """Return True if ``exc`` is an ordinary consequence of a client disconnect."""
    if isinstance(
        exc,
        (
            TransientStreamDisconnect,
            ConnectionResetError,
            BrokenPipeError,
            ConnectionAbortedError,
            asyncio.CancelledError,
        ),
    ):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _DISCONNECT_MARKERS)
