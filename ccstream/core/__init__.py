"""Core torrent helpers (magnet link handling)."""

from __future__ import annotations
