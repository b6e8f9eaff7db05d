"""Transfer engine interface and adapters."""

from __future__ import annotations

from ccstream.engine.base import (
    TorrentFile,
    TorrentHandle,
    TorrentState,
    TransferEngine,
    TransferStats,
)

__all__ = [
    "TorrentFile",
    "TorrentHandle",
    "TorrentState",
    "TransferEngine",
    "TransferStats",
]
