"""Unit tests for the libtorrent torrent handle on stub libtorrent objects."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

lt = pytest.importorskip("libtorrent")

pytestmark = [pytest.mark.unit, pytest.mark.engine]

from ccstream.engine.libtorrent_engine import LibtorrentTorrentHandle
from ccstream.models import EngineConfig
from ccstream.streaming.prioritizer import UrgentWindow
from ccstream.utils.exceptions import EngineError

HASH = "cd" * 20
PIECE = 4096


def content(length: int) -> bytes:
    return bytes(i % 251 for i in range(length))


class StubStorage:
    """``file_storage`` lookalike over (path, length) pairs."""

    def __init__(self, files):
        self._files = files
        self._offsets = []
        offset = 0
        for _path, length in files:
            self._offsets.append(offset)
            offset += length
        self.total = offset

    def num_files(self):
        return len(self._files)

    def file_path(self, i):
        return self._files[i][0]

    def file_name(self, i):
        return self._files[i][0].rsplit("/", 1)[-1]

    def file_offset(self, i):
        return self._offsets[i]

    def file_size(self, i):
        return self._files[i][1]


class StubTorrentInfo:
    def __init__(self, files, piece_length):
        self._storage = StubStorage(files)
        self._piece_length = piece_length

    def files(self):
        return self._storage

    def piece_length(self):
        return self._piece_length

    def total_size(self):
        return self._storage.total


class StubErrorCode:
    def __init__(self, value=0, message=""):
        self._value = value
        self._message = message

    def value(self):
        return self._value

    def message(self):
        return self._message


class StubLtHandle:
    """``torrent_handle`` lookalike recording deadline calls."""

    def __init__(self, info, available=()):
        self.info = info
        self.available = set(available)
        self.errc = StubErrorCode()
        self.has_metadata = True
        self.deadlines: list[tuple[int, int]] = []
        self.resets: list[int] = []

    def status(self):
        return SimpleNamespace(
            name="Movie",
            errc=self.errc,
            has_metadata=self.has_metadata,
            progress=0.5,
            total_done=1000,
            download_rate=2048,
            upload_rate=16,
            num_peers=4,
        )

    def torrent_file(self):
        return self.info

    def have_piece(self, piece):
        return piece in self.available

    def file_progress(self):
        return [0 for _ in range(self.info.files().num_files())]

    def set_piece_deadline(self, piece, deadline):
        self.deadlines.append((piece, deadline))

    def reset_piece_deadline(self, piece):
        self.resets.append(piece)


def delete_alert(info_hash, kind="torrent_deleted"):
    return SimpleNamespace(
        what=lambda: kind,
        message=lambda: f"{kind} for {info_hash}",
        info_hashes=SimpleNamespace(v1=info_hash),
    )


class StubLtSession:
    """``session`` lookalike handing out queued alert batches."""

    def __init__(self):
        self.removed: list[tuple[object, object]] = []
        self.alert_batches: list[list[object]] = []
        self.polls = 0

    def remove_torrent(self, handle, options):
        self.removed.append((handle, options))

    def pop_alerts(self):
        self.polls += 1
        return self.alert_batches.pop(0) if self.alert_batches else []


@pytest.fixture
def engine_config():
    return EngineConfig(piece_poll_interval=0.01, read_chunk_size=8192, delete_timeout=2.0)


@pytest.fixture
def make_handle(tmp_path, engine_config):
    """Build a ready handle whose ``Movie/`` files live under ``tmp_path``."""

    async def _make(files, piece_length=PIECE, available=(), on_disk=None, config=None):
        save_path = tmp_path / HASH
        for path, length in files:
            target = save_path / path
            target.parent.mkdir(parents=True, exist_ok=True)
            size = length if on_disk is None else on_disk.get(path, length)
            target.write_bytes(content(size))
        lt_handle = StubLtHandle(StubTorrentInfo(files, piece_length), available)
        session = StubLtSession()
        handle = LibtorrentTorrentHandle(
            session, lt_handle, HASH, "Movie", save_path, config or engine_config
        )
        await handle.wait_ready()
        return handle, lt_handle, session

    return _make


TWO_FILES = [("Movie/intro.txt", 1000), ("Movie/movie.mp4", 10000)]


class TestMetadata:
    """Geometry from the torrent info."""

    @pytest.mark.asyncio
    async def test_geometry(self, make_handle):
        handle, _lt_handle, _session = await make_handle(TWO_FILES)
        assert handle.piece_length == PIECE
        assert handle.total_length == 11000
        assert handle.num_pieces == 3
        movie = handle.files[1]
        assert (movie.index, movie.name, movie.offset, movie.length) == (1, "movie.mp4", 1000, 10000)
        assert movie.path == "Movie/movie.mp4"
        assert handle.name == "Movie"

    @pytest.mark.asyncio
    async def test_torrent_error(self, tmp_path, engine_config):
        lt_handle = StubLtHandle(StubTorrentInfo(TWO_FILES, PIECE))
        lt_handle.has_metadata = False
        lt_handle.errc = StubErrorCode(2, "tracker said no")
        handle = LibtorrentTorrentHandle(
            StubLtSession(), lt_handle, HASH, None, tmp_path, engine_config
        )
        with pytest.raises(EngineError, match="tracker said no"):
            await handle.wait_ready()


class TestReadRange:
    """Piece-gated reads from disk."""

    @pytest.mark.asyncio
    async def test_chunks_end_at_piece_boundaries(self, make_handle):
        handle, _lt_handle, _session = await make_handle(TWO_FILES, available={0, 1, 2})
        movie = handle.files[1]

        chunks = [chunk async for chunk in handle.read_range(movie, 0, 9999)]

        # The movie starts 1000 bytes into piece 0
        assert [len(c) for c in chunks] == [3096, 4096, 2808]
        assert b"".join(chunks) == content(10000)

    @pytest.mark.asyncio
    async def test_read_chunk_size_bounds_chunks(self, make_handle, engine_config):
        config = engine_config.model_copy(update={"read_chunk_size": 1024})
        handle, _lt_handle, _session = await make_handle(
            TWO_FILES, available={0, 1, 2}, config=config
        )
        movie = handle.files[1]

        chunks = [chunk async for chunk in handle.read_range(movie, 500, 4499)]

        assert all(len(c) <= 1024 for c in chunks)
        assert b"".join(chunks) == content(10000)[500:4500]

    @pytest.mark.asyncio
    async def test_waits_for_missing_piece(self, make_handle):
        handle, lt_handle, _session = await make_handle(TWO_FILES, available={0})
        movie = handle.files[1]
        reader = handle.read_range(movie, 0, 9999)

        first = await reader.__anext__()
        assert len(first) == 3096

        pending = asyncio.ensure_future(reader.__anext__())
        await asyncio.sleep(0.05)
        assert not pending.done()

        lt_handle.available.add(1)
        second = await asyncio.wait_for(pending, timeout=1.0)
        assert second == content(10000)[3096:7192]
        await reader.aclose()

    @pytest.mark.asyncio
    async def test_short_file_on_disk(self, make_handle):
        handle, _lt_handle, _session = await make_handle(
            TWO_FILES, available={0, 1, 2}, on_disk={"Movie/movie.mp4": 5000}
        )
        movie = handle.files[1]

        received = []
        with pytest.raises(EngineError, match="Short read"):
            async for chunk in handle.read_range(movie, 0, 9999):
                received.append(chunk)
        assert b"".join(received) == content(5000)

    @pytest.mark.asyncio
    async def test_destroy_ends_waiting_read(self, make_handle):
        handle, _lt_handle, session = await make_handle(TWO_FILES, available={0})
        session.alert_batches.append([delete_alert(HASH)])
        movie = handle.files[1]

        async def drain():
            return [chunk async for chunk in handle.read_range(movie, 0, 9999)]

        reading = asyncio.ensure_future(drain())
        await asyncio.sleep(0.05)
        await handle.destroy()

        with pytest.raises(EngineError, match="destroyed"):
            await asyncio.wait_for(reading, timeout=1.0)


class TestMarkUrgent:
    """Deadline scheduling."""

    @pytest.mark.asyncio
    async def test_deadlines_follow_window_order(self, make_handle):
        handle, lt_handle, _session = await make_handle([("Movie/movie.mkv", 100 * PIECE)])

        handle.mark_urgent(UrgentWindow(10, 13))

        assert lt_handle.deadlines == [(10, 0), (11, 100), (12, 200), (13, 300)]
        assert lt_handle.resets == []

    @pytest.mark.asyncio
    async def test_seek_resets_abandoned_pieces(self, make_handle):
        handle, lt_handle, _session = await make_handle([("Movie/movie.mkv", 100 * PIECE)])
        handle.mark_urgent(UrgentWindow(0, 4))
        lt_handle.deadlines.clear()

        handle.mark_urgent(UrgentWindow(50, 52))

        assert lt_handle.resets == [0, 1, 2, 3, 4]
        assert lt_handle.deadlines == [(50, 0), (51, 100), (52, 200)]

    @pytest.mark.asyncio
    async def test_overlapping_window_keeps_shared_pieces(self, make_handle):
        handle, lt_handle, _session = await make_handle([("Movie/movie.mkv", 100 * PIECE)])
        handle.mark_urgent(UrgentWindow(0, 4))

        handle.mark_urgent(UrgentWindow(2, 6))

        assert lt_handle.resets == [0, 1]

    @pytest.mark.asyncio
    async def test_window_past_last_piece(self, make_handle):
        handle, lt_handle, _session = await make_handle([("Movie/movie.mkv", 100 * PIECE)])

        handle.mark_urgent(UrgentWindow(98, 105))

        assert lt_handle.deadlines == [(98, 0), (99, 100)]


class TestDestroy:
    """Removal with delete_files."""

    @pytest.mark.asyncio
    async def test_waits_for_deleted_alert(self, make_handle):
        handle, lt_handle, session = await make_handle(TWO_FILES)
        session.alert_batches = [
            [SimpleNamespace(what=lambda: "listen_succeeded"), delete_alert("ef" * 20)],
            [],
            [delete_alert(HASH)],
        ]

        await asyncio.wait_for(handle.destroy(), timeout=1.0)

        assert session.removed == [(lt_handle, lt.options_t.delete_files)]
        assert session.polls == 3
        assert not handle.save_path.exists()

    @pytest.mark.asyncio
    async def test_delete_failed_alert(self, make_handle):
        handle, _lt_handle, session = await make_handle(TWO_FILES)
        session.alert_batches = [[delete_alert(HASH, "torrent_delete_failed")]]

        await asyncio.wait_for(handle.destroy(), timeout=1.0)

        assert session.polls == 1
        assert not handle.save_path.exists()

    @pytest.mark.asyncio
    async def test_gives_up_after_timeout(self, make_handle, engine_config):
        config = engine_config.model_copy(update={"delete_timeout": 0.05})
        handle, _lt_handle, session = await make_handle(TWO_FILES, config=config)

        await asyncio.wait_for(handle.destroy(), timeout=1.0)

        assert session.polls >= 1
        assert not handle.save_path.exists()

    @pytest.mark.asyncio
    async def test_destroy_twice(self, make_handle):
        handle, _lt_handle, session = await make_handle(TWO_FILES)
        session.alert_batches = [[delete_alert(HASH)]]

        await handle.destroy()
        await handle.destroy()

        assert len(session.removed) == 1
        assert not handle.has_piece(0)
