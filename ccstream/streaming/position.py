"""Playback position value and time-to-byte mapping."""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class PlaybackPosition:
    """Most recently reported viewer position.

    Frozen so the session can swap the whole pair in one assignment; a reader
    never sees a file index from one report with a byte offset from another.
    """

    file_index: int | None = None
    byte_position: int = 0

    @classmethod
    def unknown(cls) -> PlaybackPosition:
        """Position before any report for the current torrent."""
        return cls(None, 0)

    @property
    def is_known(self) -> bool:
        """True once a position has been reported."""
        return self.file_index is not None


def byte_position_for_time(file_length: int, current_time: float, duration: float | None) -> int:
    """Map a time offset to a byte offset by linear interpolation.

    Assumes a constant bitrate across the file, so the result is an estimate
    for variable-bitrate media. Returns 0 when ``duration`` is unknown (None)
    or not positive, and clamps into the file so a player reporting past the
    end still maps to the last byte.
    """
    if file_length <= 0 or duration is None or not duration > 0 or not math.isfinite(duration):
        return 0
    if not math.isfinite(current_time):
        return 0
    position = math.floor((current_time / duration) * file_length)
    return max(0, min(position, file_length - 1))
