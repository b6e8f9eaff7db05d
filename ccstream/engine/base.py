"""Transfer engine interface consumed by the streaming core.

The peer-to-peer engine (peer discovery, piece verification, disk writes) is
an external collaborator. The core only needs piece geometry, per-piece
availability, an urgent-fetch hint and a byte-range reader per file; this
module pins those down as abstract classes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, AsyncIterator

if TYPE_CHECKING:
    from ccstream.streaming.prioritizer import UrgentWindow


class TorrentState(str, Enum):
    """Lifecycle of the active torrent."""

    NO_TORRENT = "no_torrent"
    FETCHING_METADATA = "fetching_metadata"
    READY = "ready"
    DESTROYED = "destroyed"


@dataclass(frozen=True)
class TorrentFile:
    """One file inside the torrent's concatenated byte stream."""

    index: int
    name: str
    offset: int
    length: int
    path: str = ""

    @property
    def end(self) -> int:
        """Absolute offset one past the last byte of the file."""
        return self.offset + self.length


@dataclass
class TransferStats:
    """Point-in-time transfer counters for the status endpoint."""

    progress: float = 0.0
    downloaded: int = 0
    download_rate: float = 0.0
    upload_rate: float = 0.0
    num_peers: int = 0
    file_downloaded: list[int] = field(default_factory=list)


class TorrentHandle(ABC):
    """One torrent owned by the engine.

    Geometry properties are only meaningful once :meth:`wait_ready` has
    returned. ``has_piece``, ``stats`` and ``mark_urgent`` must not block.
    """

    @property
    @abstractmethod
    def info_hash(self) -> str:
        """Info hash as lowercase hex."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Torrent display name."""

    @property
    @abstractmethod
    def piece_length(self) -> int:
        """Nominal piece length in bytes."""

    @property
    @abstractmethod
    def total_length(self) -> int:
        """Sum of all file lengths."""

    @property
    @abstractmethod
    def files(self) -> list[TorrentFile]:
        """Files in torrent order."""

    @property
    def num_pieces(self) -> int:
        """Number of pieces spanning the whole torrent."""
        if self.piece_length <= 0:
            return 0
        return -(-self.total_length // self.piece_length)

    @abstractmethod
    async def wait_ready(self) -> None:
        """Wait until metadata is known.

        Raises:
            EngineError: the engine gave up on this torrent

        """

    @abstractmethod
    def has_piece(self, piece: int) -> bool:
        """Return True if ``piece`` is downloaded and verified."""

    @abstractmethod
    def stats(self) -> TransferStats:
        """Return current transfer counters."""

    @abstractmethod
    def mark_urgent(self, window: UrgentWindow) -> None:
        """Ask the engine to fetch ``window`` ahead of everything else.

        A one-way scheduling hint: returns immediately and promises nothing
        about when (or whether) the pieces arrive.
        """

    @abstractmethod
    def read_range(self, file: TorrentFile, start: int, end: int) -> AsyncIterator[bytes]:
        """Yield the bytes ``[start, end]`` (inclusive, file-relative) of ``file``.

        The iterator may suspend until the pieces it needs are downloaded.
        Closing it (``aclose``) or cancelling the consumer releases any
        resources it holds.
        """

    @abstractmethod
    async def destroy(self) -> None:
        """Stop the torrent and delete its on-disk data."""


class TransferEngine(ABC):
    """Factory for torrent handles."""

    @abstractmethod
    async def add_torrent(self, uri: str) -> TorrentHandle:
        """Start fetching ``uri``; the handle starts in FETCHING_METADATA.

        Raises:
            EngineError: the engine rejected the torrent

        """

    @abstractmethod
    async def shutdown(self) -> None:
        """Release engine-wide resources."""
