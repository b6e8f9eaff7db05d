"""Status aggregation for the active torrent."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ccstream.engine.base import TorrentState
from ccstream.session.models import FileStatus, PositionInfo, StatusSnapshot
from ccstream.streaming.buffer import buffer_ahead, piece_map

if TYPE_CHECKING:
    from ccstream.engine.base import TorrentFile, TorrentHandle
    from ccstream.streaming.position import PlaybackPosition


class StatusReporter:
    """Assembles status snapshots from engine state and the playback position.

    Pure aggregation: reads the handle, never changes it.
    """

    def snapshot(
        self,
        handle: TorrentHandle | None,
        state: TorrentState,
        position: PlaybackPosition,
        tracker_count: int = 0,
    ) -> StatusSnapshot:
        """Build a snapshot for ``handle`` in ``state``."""
        if handle is None or state in (TorrentState.NO_TORRENT, TorrentState.DESTROYED):
            return StatusSnapshot(active=False, tracker_count=tracker_count)

        if state is not TorrentState.READY:
            return StatusSnapshot(
                active=True,
                ready=False,
                name=handle.name,
                info_hash=handle.info_hash,
                tracker_count=tracker_count,
            )

        stats = handle.stats()
        tracked = self._tracked_file(handle, position)

        buffered = 0
        pieces: list[bool] = []
        if tracked is not None:
            buffered = buffer_ahead(
                tracked, handle.piece_length, handle.has_piece, position.byte_position
            )
            pieces = piece_map(tracked, handle.piece_length, handle.has_piece)

        return StatusSnapshot(
            active=True,
            ready=True,
            name=handle.name,
            info_hash=handle.info_hash,
            progress=min(max(stats.progress, 0.0), 1.0),
            downloaded=stats.downloaded,
            total=handle.total_length,
            download_speed=stats.download_rate,
            upload_speed=stats.upload_rate,
            num_peers=stats.num_peers,
            buffer_ahead=buffered,
            piece_map=pieces,
            current_position=PositionInfo(
                file_index=position.file_index,
                byte_position=position.byte_position,
            ),
            piece_length=handle.piece_length,
            files=self._file_statuses(handle, stats.file_downloaded),
            tracker_count=tracker_count,
        )

    @staticmethod
    def _tracked_file(handle: TorrentHandle, position: PlaybackPosition) -> TorrentFile | None:
        # A stale index (position from before a replacement) yields no file
        if position.file_index is None:
            return None
        files = handle.files
        if not 0 <= position.file_index < len(files):
            return None
        return files[position.file_index]

    @staticmethod
    def _file_statuses(handle: TorrentHandle, file_downloaded: list[int]) -> list[FileStatus]:
        statuses = []
        for f in handle.files:
            done = file_downloaded[f.index] if f.index < len(file_downloaded) else 0
            done = max(0, min(done, f.length))
            statuses.append(
                FileStatus(
                    index=f.index,
                    name=f.name,
                    path=f.path,
                    length=f.length,
                    downloaded=done,
                    progress=(done / f.length) if f.length else 1.0,
                )
            )
        return statuses
