"""ccstream - stream a BitTorrent media file over HTTP while it downloads."""

from __future__ import annotations

__version__ = "0.1.0"
