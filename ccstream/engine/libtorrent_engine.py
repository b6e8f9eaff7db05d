"""libtorrent-backed transfer engine.

Torrents are added from magnet URIs into a per-info-hash directory below the
configured scratch directory. Range reads wait for each piece to be
verified, then read the bytes straight from disk; libtorrent's own
``read_piece`` is too slow for playback.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Any, AsyncIterator

import aiofiles
import libtorrent as lt

from ccstream.core.magnet import parse_magnet
from ccstream.engine.base import TorrentFile, TorrentHandle, TransferEngine, TransferStats
from ccstream.models import EngineConfig
from ccstream.streaming.geometry import byte_to_piece, piece_to_byte
from ccstream.utils.exceptions import EngineError
from ccstream.utils.version import get_user_agent

if TYPE_CHECKING:
    from ccstream.streaming.prioritizer import UrgentWindow

logger = logging.getLogger(__name__)

# Milliseconds added to the deadline of each successive urgent piece
DEADLINE_STEP_MS = 100
METADATA_POLL_INTERVAL = 0.25
# Alert names (``alert.what()``) that end an asynchronous delete_files removal
_DELETE_ALERTS = frozenset({"torrent_deleted", "torrent_delete_failed"})


class LibtorrentTorrentHandle(TorrentHandle):
    """A torrent inside a libtorrent session."""

    def __init__(
        self,
        session: Any,
        handle: Any,
        info_hash: str,
        display_name: str | None,
        save_path: Path,
        config: EngineConfig,
    ) -> None:
        self._session = session
        self._handle = handle
        self._info_hash = info_hash
        self._display_name = display_name
        self.save_path = save_path
        self.config = config
        self._files: list[TorrentFile] = []
        self._piece_length = 0
        self._total_length = 0
        self._destroyed = False
        # Pieces carrying a deadline from the last urgent window
        self._urgent_pieces: set[int] = set()

    @property
    def info_hash(self) -> str:
        return self._info_hash

    @property
    def name(self) -> str:
        if self._destroyed:
            return self._display_name or self._info_hash
        return self._handle.status().name or self._display_name or self._info_hash

    @property
    def piece_length(self) -> int:
        return self._piece_length

    @property
    def total_length(self) -> int:
        return self._total_length

    @property
    def files(self) -> list[TorrentFile]:
        return list(self._files)

    async def wait_ready(self) -> None:
        while True:
            self._check_alive()
            status = self._handle.status()
            if status.errc.value() != 0:
                msg = f"Torrent error: {status.errc.message()}"
                raise EngineError(msg, {"info_hash": self._info_hash})
            if status.has_metadata:
                break
            await asyncio.sleep(METADATA_POLL_INTERVAL)

        self._load_geometry(self._handle.torrent_file())
        logger.debug(
            "Metadata received for %s: %d files, %d pieces of %d bytes",
            self._info_hash,
            len(self._files),
            self.num_pieces,
            self._piece_length,
        )

    def _load_geometry(self, info: Any) -> None:
        storage = info.files()
        self._piece_length = info.piece_length()
        self._total_length = info.total_size()
        self._files = [
            TorrentFile(
                index=i,
                name=storage.file_name(i),
                offset=storage.file_offset(i),
                length=storage.file_size(i),
                path=storage.file_path(i),
            )
            for i in range(storage.num_files())
        ]

    def _check_alive(self) -> None:
        if self._destroyed:
            msg = "Torrent was destroyed"
            raise EngineError(msg, {"info_hash": self._info_hash})

    def has_piece(self, piece: int) -> bool:
        if self._destroyed or not 0 <= piece < self.num_pieces:
            return False
        return bool(self._handle.have_piece(piece))

    def stats(self) -> TransferStats:
        status = self._handle.status()
        return TransferStats(
            progress=status.progress,
            downloaded=status.total_done,
            download_rate=float(status.download_rate),
            upload_rate=float(status.upload_rate),
            num_peers=status.num_peers,
            file_downloaded=list(self._handle.file_progress()),
        )

    def mark_urgent(self, window: UrgentWindow) -> None:
        if self._destroyed:
            return
        wanted = [piece for piece in window if piece < self.num_pieces]
        # A deadline stays until the piece arrives; pieces left behind by a seek
        # would otherwise keep their place at the head of the queue
        for piece in sorted(self._urgent_pieces.difference(wanted)):
            self._handle.reset_piece_deadline(piece)
        # Earlier pieces get earlier deadlines so playback order is honoured
        for rank, piece in enumerate(wanted):
            self._handle.set_piece_deadline(piece, rank * DEADLINE_STEP_MS)
        self._urgent_pieces = set(wanted)

    async def _wait_for_piece(self, piece: int) -> None:
        while not self.has_piece(piece):
            self._check_alive()
            await asyncio.sleep(self.config.piece_poll_interval)

    async def read_range(self, file: TorrentFile, start: int, end: int) -> AsyncIterator[bytes]:
        piece_length = self._piece_length
        path = self.save_path / file.path
        position = start

        # The file only exists on disk once a piece overlapping it is written
        await self._wait_for_piece(byte_to_piece(file.offset + position, piece_length))
        async with aiofiles.open(path, "rb") as f:
            while position <= end:
                piece = byte_to_piece(file.offset + position, piece_length)
                await self._wait_for_piece(piece)

                piece_last = piece_to_byte(piece + 1, piece_length) - 1 - file.offset
                chunk_end = min(end, piece_last, position + self.config.read_chunk_size - 1)
                await f.seek(position)
                data = await f.read(chunk_end - position + 1)
                if not data:
                    msg = f"Short read from {path} at offset {position}"
                    raise EngineError(msg, {"file_index": file.index})
                position += len(data)
                yield data

    async def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        try:
            self._session.remove_torrent(self._handle, lt.options_t.delete_files)
            # delete_files runs on libtorrent's disk thread; a re-add of the same
            # info hash reuses save_path, so wait until the delete has happened
            await self._wait_for_deletion()
        finally:
            await asyncio.to_thread(shutil.rmtree, self.save_path, True)
        logger.debug("Removed torrent data for %s from %s", self._info_hash, self.save_path)

    async def _wait_for_deletion(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.delete_timeout
        while loop.time() < deadline:
            for alert in self._session.pop_alerts():
                kind = alert.what()
                if kind not in _DELETE_ALERTS or str(alert.info_hashes.v1) != self._info_hash:
                    continue
                if kind == "torrent_deleted":
                    return
                if kind == "torrent_delete_failed":
                    logger.warning(
                        "libtorrent could not delete data of %s: %s", self._info_hash, alert.message()
                    )
                    return
            await asyncio.sleep(self.config.piece_poll_interval)
        logger.warning(
            "Timed out after %.1fs waiting for libtorrent to delete data of %s",
            self.config.delete_timeout,
            self._info_hash,
        )


class LibtorrentEngine(TransferEngine):
    """Transfer engine backed by one ``libtorrent.session``."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        """Initialize the engine.

        Args:
            config: engine configuration (defaults when None)

        """
        self.config = config or EngineConfig()
        self.temp_dir = Path(self.config.temp_dir)
        self._session = lt.session(
            {
                "listen_interfaces": self.config.listen_interfaces,
                "upload_rate_limit": self.config.upload_rate_limit,
                "user_agent": get_user_agent(),
                # torrent_deleted / torrent_delete_failed alerts
                "alert_mask": lt.alert.category_t.storage_notification
                | lt.alert.category_t.error_notification,
            }
        )
        logger.info(
            "libtorrent session listening on %s (upload limit %d B/s)",
            self.config.listen_interfaces,
            self.config.upload_rate_limit,
        )

    async def add_torrent(self, uri: str) -> LibtorrentTorrentHandle:
        magnet = parse_magnet(uri)
        save_path = self.temp_dir / magnet.info_hash_hex
        await asyncio.to_thread(save_path.mkdir, parents=True, exist_ok=True)

        try:
            params = lt.parse_magnet_uri(uri)
            params.save_path = str(save_path)
            handle = self._session.add_torrent(params)
        except RuntimeError as e:
            msg = f"libtorrent rejected torrent: {e}"
            raise EngineError(msg, {"info_hash": magnet.info_hash_hex}) from e

        if self.config.sequential_download:
            handle.set_flags(lt.torrent_flags.sequential_download)

        logger.info("Added torrent %s into %s", magnet.info_hash_hex, save_path)
        return LibtorrentTorrentHandle(
            self._session,
            handle,
            magnet.info_hash_hex,
            magnet.display_name,
            save_path,
            self.config,
        )

    async def shutdown(self) -> None:
        self._session.pause()
        logger.info("libtorrent session stopped")
