"""Peer discovery helpers (tracker lists)."""

from __future__ import annotations

from ccstream.discovery.trackers import TrackerListLoader, parse_tracker_lines

__all__ = ["TrackerListLoader", "parse_tracker_lines"]
