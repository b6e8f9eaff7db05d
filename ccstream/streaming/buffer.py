"""Buffer-ahead estimation and per-file piece maps."""

from __future__ import annotations

from typing import Callable

from ccstream.engine.base import TorrentFile
from ccstream.streaming.geometry import (
    byte_to_piece,
    file_byte_to_absolute,
    file_piece_span,
    piece_overlap,
)

PieceAvailability = Callable[[int], bool]


def buffer_ahead(
    file: TorrentFile,
    piece_length: int,
    has_piece: PieceAvailability,
    byte_in_file: int,
) -> int:
    """Contiguous bytes readable from ``byte_in_file`` without waiting.

    Walks forward from the piece holding the position and stops at the
    first missing piece or at the end of the file. Pieces available further
    on after a gap are not counted: they cannot be played without stalling.
    """
    if file.length <= 0 or not 0 <= byte_in_file < file.length:
        return 0

    start = file_byte_to_absolute(file, byte_in_file)
    _, last_piece = file_piece_span(file, piece_length)

    buffered = 0
    piece = byte_to_piece(start, piece_length)
    while piece <= last_piece and has_piece(piece):
        buffered += piece_overlap(piece, piece_length, start, file.end)
        piece += 1
    return buffered


def piece_map(file: TorrentFile, piece_length: int, has_piece: PieceAvailability) -> list[bool]:
    """One availability flag per piece spanned by ``file``."""
    if file.length <= 0:
        return []
    first, last = file_piece_span(file, piece_length)
    return [bool(has_piece(p)) for p in range(first, last + 1)]
