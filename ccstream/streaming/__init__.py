"""Playback-driven piece prioritization and range streaming logic."""

from __future__ import annotations

from ccstream.streaming.buffer import buffer_ahead, piece_map
from ccstream.streaming.geometry import (
    byte_to_piece,
    clamp_to_file,
    file_byte_to_absolute,
    file_piece_span,
)
from ccstream.streaming.position import PlaybackPosition, byte_position_for_time
from ccstream.streaming.prioritizer import PiecePrioritizer, UrgentWindow
from ccstream.streaming.ranges import ByteRange, content_type_for, parse_range_header

__all__ = [
    "ByteRange",
    "PiecePrioritizer",
    "PlaybackPosition",
    "UrgentWindow",
    "buffer_ahead",
    "byte_position_for_time",
    "byte_to_piece",
    "clamp_to_file",
    "content_type_for",
    "file_byte_to_absolute",
    "file_piece_span",
    "parse_range_header",
    "piece_map",
]
