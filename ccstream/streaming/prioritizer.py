"""Playback-driven piece prioritization.

Every position report re-issues an urgent window starting at the piece under
the playhead. The engine treats it as a scheduling hint; nothing here waits
for the pieces to arrive.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ccstream.streaming.geometry import (
    byte_to_piece,
    clamp_to_file,
    file_piece_span,
)

if TYPE_CHECKING:
    from ccstream.engine.base import TorrentFile, TorrentHandle

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_BYTES = 5 * 1024 * 1024
DEFAULT_MAX_PIECES = 50


@dataclass(frozen=True)
class UrgentWindow:
    """Inclusive range of pieces to fetch ahead of the normal schedule."""

    start_piece: int
    end_piece: int

    def __post_init__(self) -> None:
        if self.start_piece < 0 or self.end_piece < self.start_piece:
            msg = f"Invalid urgent window {self.start_piece}-{self.end_piece}"
            raise ValueError(msg)

    def __len__(self) -> int:
        return self.end_piece - self.start_piece + 1

    def __iter__(self):
        return iter(range(self.start_piece, self.end_piece + 1))

    def __contains__(self, piece: object) -> bool:
        return isinstance(piece, int) and self.start_piece <= piece <= self.end_piece


class PiecePrioritizer:
    """Computes urgent windows and hands them to the engine."""

    def __init__(
        self,
        window_bytes: int = DEFAULT_WINDOW_BYTES,
        max_pieces: int = DEFAULT_MAX_PIECES,
    ) -> None:
        """Initialize the prioritizer.

        Args:
            window_bytes: playback-ahead budget the window should cover
            max_pieces: hard cap on the window size in pieces

        """
        if window_bytes <= 0 or max_pieces <= 0:
            msg = "window_bytes and max_pieces must be positive"
            raise ValueError(msg)
        self.window_bytes = window_bytes
        self.max_pieces = max_pieces

    def pieces_for_budget(self, piece_length: int) -> int:
        """Number of pieces covering the byte budget, capped at ``max_pieces``."""
        return min(math.ceil(self.window_bytes / piece_length), self.max_pieces)

    def window_for(
        self,
        file: TorrentFile,
        piece_length: int,
        byte_in_file: int,
    ) -> UrgentWindow | None:
        """Window starting at the piece holding ``byte_in_file``.

        Never extends past the last piece of ``file``. Returns None for an
        empty file.
        """
        if file.length <= 0:
            return None
        _, last_piece = file_piece_span(file, piece_length)
        start = byte_to_piece(file.offset + clamp_to_file(file, byte_in_file), piece_length)
        end = min(start + self.pieces_for_budget(piece_length) - 1, last_piece)
        return UrgentWindow(start, end)

    def prioritize_from(
        self,
        handle: TorrentHandle,
        file: TorrentFile,
        byte_in_file: int,
    ) -> UrgentWindow | None:
        """Send the window for ``byte_in_file`` to the engine and return it."""
        window = self.window_for(file, handle.piece_length, byte_in_file)
        if window is None:
            return None
        handle.mark_urgent(window)
        logger.debug(
            "Marked pieces %d-%d as urgent (%d pieces) for file %d",
            window.start_piece,
            window.end_piece,
            len(window),
            file.index,
        )
        return window
