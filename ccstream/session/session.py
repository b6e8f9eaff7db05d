"""Stream session: the one active torrent and the viewer's playback position.

All mutable state lives here behind a single ``asyncio.Lock``. HTTP handlers
get the session passed in rather than reaching for module globals.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, AsyncIterator, Coroutine

from ccstream.core.magnet import normalize_magnet
from ccstream.engine.base import TorrentState
from ccstream.models import StreamingConfig
from ccstream.session.status import StatusReporter
from ccstream.streaming.position import PlaybackPosition, byte_position_for_time
from ccstream.streaming.prioritizer import PiecePrioritizer, UrgentWindow
from ccstream.utils.exceptions import (
    EngineError,
    MetadataTimeoutError,
    NoActiveTorrentError,
    UnknownFileError,
)
from ccstream.utils.logging_config import LoggingContext, log_exception
from ccstream.utils.tasks import BackgroundTaskGroup

if TYPE_CHECKING:
    from ccstream.discovery.trackers import TrackerListLoader
    from ccstream.engine.base import TorrentFile, TorrentHandle, TransferEngine
    from ccstream.session.models import StatusSnapshot

# Upper bound on waiting for stream pumps to notice cancellation during teardown
STREAM_CANCEL_TIMEOUT = 5.0


class StreamSession:
    """Owns the active torrent, its lifecycle state and the playback position."""

    def __init__(
        self,
        engine: TransferEngine,
        config: StreamingConfig | None = None,
        tracker_loader: TrackerListLoader | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            engine: transfer engine that creates torrent handles
            config: prioritization and timeout settings
            tracker_loader: source of trackers appended to added magnets

        """
        self.engine = engine
        self.config = config or StreamingConfig()
        self.tracker_loader = tracker_loader
        self.prioritizer = PiecePrioritizer(
            window_bytes=self.config.urgent_window_bytes,
            max_pieces=self.config.max_urgent_pieces,
        )
        self.status_reporter = StatusReporter()
        self.logger = logging.getLogger(__name__)

        self.lock = asyncio.Lock()
        self._handle: TorrentHandle | None = None
        self._state = TorrentState.NO_TORRENT
        self._position = PlaybackPosition.unknown()
        self._streams = BackgroundTaskGroup()

    @property
    def state(self) -> TorrentState:
        """Lifecycle state of the active torrent."""
        return self._state

    @property
    def handle(self) -> TorrentHandle | None:
        """Active torrent handle, if any."""
        return self._handle

    @property
    def position(self) -> PlaybackPosition:
        """Last reported playback position."""
        return self._position

    @property
    def tracker_count(self) -> int:
        """Number of trackers appended to added torrents."""
        return self.tracker_loader.count if self.tracker_loader else 0

    @property
    def active_streams(self) -> int:
        """Number of stream pumps currently running."""
        return len(self._streams)

    async def add_torrent(self, magnet_or_hash: str) -> TorrentHandle:
        """Replace the active torrent and wait for its metadata.

        Raises:
            ValidationError: input is not a magnet link or info hash
            MetadataTimeoutError: metadata did not arrive in time
            EngineError: the engine rejected or failed the torrent
            NoActiveTorrentError: another add or remove superseded this one

        """
        trackers = self.tracker_loader.trackers if self.tracker_loader else []
        uri = normalize_magnet(magnet_or_hash, trackers)

        with LoggingContext("torrent_add", logger=self.logger):
            async with self.lock:
                await self._destroy_locked()
                try:
                    handle = await self.engine.add_torrent(uri)
                except EngineError:
                    raise
                except Exception as e:
                    msg = f"Engine rejected torrent: {e}"
                    raise EngineError(msg) from e
                self._handle = handle
                self._state = TorrentState.FETCHING_METADATA
                self._position = PlaybackPosition.unknown()
                self.logger.info(
                    "Torrent added: %s, state transition: %s",
                    handle.info_hash,
                    self._state.value,
                )

            error = await self._wait_for_metadata(handle)

            async with self.lock:
                current = self._handle is handle
                if current and error is None:
                    self._state = TorrentState.READY
                    self.logger.info(
                        "Torrent ready: %s (%d files, piece length %d)",
                        handle.name,
                        len(handle.files),
                        handle.piece_length,
                    )
                    return handle
                if current:
                    await self._destroy_locked()

            if not current:
                msg = "Torrent was replaced or removed before its metadata arrived"
                raise NoActiveTorrentError(msg, {"info_hash": handle.info_hash})
            raise error  # type: ignore[misc]

    async def _wait_for_metadata(self, handle: TorrentHandle) -> Exception | None:
        """Wait for ``handle`` to become ready; return the failure instead of raising."""
        timeout = self.config.metadata_timeout
        try:
            await asyncio.wait_for(handle.wait_ready(), timeout=timeout)
        except asyncio.TimeoutError:
            return MetadataTimeoutError(
                "Timeout waiting for torrent metadata",
                {"info_hash": handle.info_hash, "timeout": timeout},
            )
        except asyncio.CancelledError:
            # Caller went away: do not leave a half-added torrent behind
            await asyncio.shield(self._abandon(handle))
            raise
        except EngineError as e:
            return e
        except Exception as e:
            return EngineError(f"Engine failed while fetching metadata: {e}")
        return None

    async def _abandon(self, handle: TorrentHandle) -> None:
        async with self.lock:
            if self._handle is handle:
                await self._destroy_locked()

    async def remove_torrent(self) -> bool:
        """Destroy the active torrent and its data. Returns False if none was active."""
        with LoggingContext("torrent_remove", logger=self.logger):
            async with self.lock:
                had_torrent = self._handle is not None
                await self._destroy_locked()
        return had_torrent

    async def close(self) -> None:
        """Tear down the active torrent on shutdown."""
        async with self.lock:
            await self._destroy_locked()

    async def _destroy_locked(self) -> None:
        """Destroy the current handle. Caller holds ``self.lock``.

        Streams are cancelled first so no reader outlives the storage it
        reads from. Cleanup failures are logged and never block the caller.
        """
        handle = self._handle
        if handle is None:
            return

        self._handle = None
        self._state = TorrentState.DESTROYED
        self._position = PlaybackPosition.unknown()
        streams, self._streams = self._streams, BackgroundTaskGroup()

        await streams.cancel_and_wait(timeout=STREAM_CANCEL_TIMEOUT)
        try:
            await handle.destroy()
        except Exception as e:
            log_exception(self.logger, e, f"Error destroying torrent {handle.info_hash}")
        finally:
            self._state = TorrentState.NO_TORRENT

        self.logger.info("Torrent destroyed: %s", handle.info_hash)

    def _require_file_locked(self, file_index: int) -> tuple[TorrentHandle, TorrentFile]:
        handle = self._handle
        if handle is None or self._state is not TorrentState.READY:
            msg = "No active torrent"
            raise NoActiveTorrentError(msg)
        files = handle.files
        if not 0 <= file_index < len(files):
            msg = "File not found"
            raise UnknownFileError(msg, {"file_index": file_index, "num_files": len(files)})
        return handle, files[file_index]

    async def require_file(self, file_index: int) -> tuple[TorrentHandle, TorrentFile]:
        """Return the active handle and file ``file_index``.

        Raises:
            NoActiveTorrentError: no torrent is ready
            UnknownFileError: ``file_index`` is out of range

        """
        async with self.lock:
            return self._require_file_locked(file_index)

    async def report_position(
        self, file_index: int, current_time: float, duration: float | None
    ) -> int:
        """Record the viewer's position and re-prioritize pieces from there.

        Last report wins. Returns the estimated byte position.

        Raises:
            NoActiveTorrentError: no torrent is ready
            UnknownFileError: ``file_index`` is out of range
            EngineError: the engine refused the priority hint

        """
        async with self.lock:
            handle, file = self._require_file_locked(file_index)
            byte_position = byte_position_for_time(file.length, current_time, duration)
            self._position = PlaybackPosition(file_index, byte_position)
            self._prioritize_locked(handle, file, byte_position)
        return byte_position

    def _prioritize_locked(
        self, handle: TorrentHandle, file: TorrentFile, byte_position: int
    ) -> UrgentWindow | None:
        try:
            return self.prioritizer.prioritize_from(handle, file, byte_position)
        except Exception as e:
            msg = f"Failed to prioritize pieces: {e}"
            raise EngineError(msg, {"file_index": file.index}) from e

    async def snapshot(self) -> StatusSnapshot:
        """Status of the active torrent, consistent with one position report."""
        async with self.lock:
            return self.status_reporter.snapshot(
                self._handle,
                self._state,
                self._position,
                self.tracker_count,
            )

    def open_reader(
        self, handle: TorrentHandle, file: TorrentFile, start: int, end: int
    ) -> AsyncIterator[bytes]:
        """Engine byte reader for ``[start, end]`` of ``file``."""
        return handle.read_range(file, start, end)

    def spawn_stream(
        self, handle: TorrentHandle, coro: Coroutine[Any, Any, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Run a stream pump whose lifetime is bound to ``handle``.

        Raises:
            NoActiveTorrentError: ``handle`` is no longer the active torrent

        """
        if self._handle is not handle or self._state is not TorrentState.READY:
            coro.close()
            msg = "Torrent was replaced while the stream was starting"
            raise NoActiveTorrentError(msg)
        return self._streams.create(coro, name=name)
