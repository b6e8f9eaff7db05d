"""HTTP Range header parsing and media content types."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath

from ccstream.utils.exceptions import MalformedRangeError, RangeNotSatisfiableError

DEFAULT_CONTENT_TYPE = "application/octet-stream"

CONTENT_TYPES: dict[str, str] = {
    ".mp4": "video/mp4",
    ".mkv": "video/x-matroska",
    ".avi": "video/x-msvideo",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".wmv": "video/x-ms-wmv",
    ".flv": "video/x-flv",
    ".m4v": "video/x-m4v",
}

_RANGE_RE = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$", re.IGNORECASE)


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte range within a file."""

    start: int
    end: int
    total: int

    @property
    def length(self) -> int:
        """Number of bytes in the range."""
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        """Value for the ``Content-Range`` response header."""
        return f"bytes {self.start}-{self.end}/{self.total}"


def parse_range_header(header: str | None, file_length: int) -> ByteRange | None:
    """Parse a single-range ``Range`` header against a file of ``file_length``.

    Returns None when there is no header. A missing end defaults to the last
    byte and an end past the file is clamped; ``bytes=-N`` selects the last
    N bytes.

    Raises:
        MalformedRangeError: not a single ``bytes=`` range, or start > end
        RangeNotSatisfiableError: the range starts at or past the end of file

    """
    if header is None or not header.strip():
        return None

    match = _RANGE_RE.match(header)
    if match is None:
        msg = f"Unsupported Range header: {header!r}"
        raise MalformedRangeError(msg)

    raw_start, raw_end = match.groups()
    if not raw_start and not raw_end:
        msg = f"Empty byte range: {header!r}"
        raise MalformedRangeError(msg)

    if not raw_start:
        # Suffix range: the last N bytes
        suffix = int(raw_end)
        if suffix == 0 or file_length == 0:
            msg = f"Suffix range {header!r} selects no bytes"
            raise RangeNotSatisfiableError(msg, {"file_length": file_length})
        start = max(0, file_length - suffix)
        return ByteRange(start, file_length - 1, file_length)

    start = int(raw_start)
    if raw_end and int(raw_end) < start:
        msg = f"Range end before start: {header!r}"
        raise MalformedRangeError(msg)
    if start >= file_length:
        msg = f"Range start {start} beyond file length {file_length}"
        raise RangeNotSatisfiableError(msg, {"file_length": file_length})

    end = int(raw_end) if raw_end else file_length - 1
    return ByteRange(start, min(end, file_length - 1), file_length)


def content_type_for(file_name: str) -> str:
    """Media type for ``file_name`` based on its extension."""
    return CONTENT_TYPES.get(PurePosixPath(file_name).suffix.lower(), DEFAULT_CONTENT_TYPE)
