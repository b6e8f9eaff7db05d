"""Piece geometry: mapping between file bytes, torrent bytes and pieces.

Both the prioritizer and the buffer estimator go through these functions so
their piece numbering can never disagree.
"""

from __future__ import annotations

from ccstream.engine.base import TorrentFile
from ccstream.utils.exceptions import ByteRangeError


def _check_piece_length(piece_length: int) -> None:
    if piece_length <= 0:
        msg = f"piece_length must be positive, got {piece_length}"
        raise ValueError(msg)


def byte_to_piece(offset: int, piece_length: int) -> int:
    """Index of the piece containing absolute torrent byte ``offset``."""
    _check_piece_length(piece_length)
    if offset < 0:
        msg = f"offset must be non-negative, got {offset}"
        raise ValueError(msg)
    return offset // piece_length


def piece_to_byte(piece: int, piece_length: int) -> int:
    """Absolute torrent offset of the first byte of ``piece``."""
    _check_piece_length(piece_length)
    return piece * piece_length


def file_byte_to_absolute(file: TorrentFile, byte_in_file: int) -> int:
    """Convert a file-relative offset into an absolute torrent offset.

    Raises:
        ByteRangeError: ``byte_in_file`` is outside ``[0, file.length)``

    """
    if not 0 <= byte_in_file < file.length:
        msg = f"Byte {byte_in_file} is outside file {file.index} (length {file.length})"
        raise ByteRangeError(msg, {"file_index": file.index, "byte": byte_in_file})
    return file.offset + byte_in_file


def clamp_to_file(file: TorrentFile, byte_in_file: int) -> int:
    """Clamp an internally derived offset into ``[0, file.length - 1]``."""
    if file.length <= 0:
        return 0
    return max(0, min(byte_in_file, file.length - 1))


def file_piece_span(file: TorrentFile, piece_length: int) -> tuple[int, int]:
    """Inclusive ``(first_piece, last_piece)`` covering ``file``.

    Raises:
        ValueError: the file is empty and spans no piece

    """
    _check_piece_length(piece_length)
    if file.length <= 0:
        msg = f"File {file.index} is empty and spans no piece"
        raise ValueError(msg)
    return file.offset // piece_length, (file.end - 1) // piece_length


def piece_overlap(piece: int, piece_length: int, start: int, end: int) -> int:
    """Bytes of ``piece`` that fall inside the absolute range ``[start, end)``."""
    piece_start = piece_to_byte(piece, piece_length)
    piece_end = piece_start + piece_length
    return max(0, min(piece_end, end) - max(piece_start, start))
