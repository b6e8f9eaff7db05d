"""HTTP API tests for the stream server."""

from __future__ import annotations

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

pytestmark = [pytest.mark.server]

from ccstream.discovery.trackers import TrackerListLoader
from ccstream.models import ServerConfig, TrackerConfig
from ccstream.server.http_server import StreamServer, status_for_error
from ccstream.utils.exceptions import (
    CCStreamError,
    EngineError,
    MetadataTimeoutError,
    NoActiveTorrentError,
    UnknownFileError,
    ValidationError,
)

HASH = "ab" * 20


@pytest_asyncio.fixture
async def api_client(stream_session):
    server = StreamServer(stream_session, config=ServerConfig(stream_chunk_size=1024))
    async with TestClient(TestServer(server.app)) as client:
        yield client


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (ValidationError("x"), 400),
        (NoActiveTorrentError("x"), 404),
        (UnknownFileError("x"), 404),
        (MetadataTimeoutError("x"), 408),
        (EngineError("x"), 502),
        (CCStreamError("x"), 500),
    ],
)
def test_status_for_error(error, status):
    assert status_for_error(error) == status


class TestStatusEndpoint:
    """GET /api/status."""

    @pytest.mark.asyncio
    async def test_inactive(self, api_client):
        resp = await api_client.get("/api/status")
        assert resp.status == 200
        assert await resp.json() == {"active": False, "trackerCount": 0}

    @pytest.mark.asyncio
    async def test_active_with_position(self, api_client, stream_session):
        await api_client.post("/api/torrent", json={"magnetOrHash": HASH})
        await api_client.post(
            "/api/playback-position",
            json={"fileIndex": 0, "currentTime": 5, "duration": 10},
        )

        data = await (await api_client.get("/api/status")).json()
        assert data["active"] is True
        assert data["ready"] is True
        assert data["infoHash"] == HASH
        assert data["currentPosition"] == {"fileIndex": 0, "bytePosition": 5000}
        assert data["pieceMap"] == [True]
        assert data["bufferAhead"] == 5000
        assert data["files"][0]["name"] == "movie.mp4"


class TestTorrentEndpoints:
    """POST and DELETE /api/torrent."""

    @pytest.mark.asyncio
    async def test_add(self, api_client):
        resp = await api_client.post("/api/torrent", json={"magnetOrHash": HASH})
        assert resp.status == 200
        assert await resp.json() == {
            "success": True,
            "name": "Test Torrent",
            "infoHash": HASH,
            "files": [
                {"index": 0, "name": "movie.mp4", "path": "Test Torrent/movie.mp4", "length": 10000}
            ],
        }

    @pytest.mark.asyncio
    async def test_missing_field(self, api_client):
        resp = await api_client.post("/api/torrent", json={})
        assert resp.status == 400
        body = await resp.json()
        assert body["code"] == "ValidationError"
        assert body["error"] == "Invalid request body"

    @pytest.mark.asyncio
    async def test_not_json(self, api_client):
        resp = await api_client.post("/api/torrent", data=b"magnet please")
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_empty_magnet(self, api_client):
        resp = await api_client.post("/api/torrent", json={"magnetOrHash": "  "})
        assert resp.status == 400
        assert (await resp.json())["error"] == "Magnet link or hash required"

    @pytest.mark.asyncio
    async def test_metadata_timeout(self, api_client, fake_engine, fake_handle_cls):
        fake_engine.queued.append(fake_handle_cls(ready=False))
        resp = await api_client.post("/api/torrent", json={"magnetOrHash": HASH})
        assert resp.status == 408
        assert (await resp.json())["code"] == "MetadataTimeoutError"

    @pytest.mark.asyncio
    async def test_engine_failure(self, api_client, fake_engine):
        fake_engine.reject = EngineError("session closed")
        resp = await api_client.post("/api/torrent", json={"magnetOrHash": HASH})
        assert resp.status == 502

    @pytest.mark.asyncio
    async def test_delete(self, api_client, stream_session):
        await api_client.post("/api/torrent", json={"magnetOrHash": HASH})
        handle = stream_session.handle

        resp = await api_client.delete("/api/torrent")
        assert resp.status == 200
        assert await resp.json() == {"success": True}
        assert handle.destroyed

        status = await (await api_client.get("/api/status")).json()
        assert status["active"] is False

    @pytest.mark.asyncio
    async def test_delete_without_torrent(self, api_client):
        resp = await api_client.delete("/api/torrent")
        assert resp.status == 200


class TestPlaybackPosition:
    """POST /api/playback-position."""

    @pytest.mark.asyncio
    async def test_byte_position(self, api_client, fake_engine, fake_handle_cls):
        fake_engine.queued.append(
            fake_handle_cls(files=[("movie.mkv", 100_000_000)], piece_length=262144, complete=False)
        )
        await api_client.post("/api/torrent", json={"magnetOrHash": HASH})

        resp = await api_client.post(
            "/api/playback-position",
            json={"fileIndex": 0, "currentTime": 30, "duration": 60},
        )
        assert resp.status == 200
        assert await resp.json() == {"success": True, "bytePosition": 50_000_000}

    @pytest.mark.asyncio
    async def test_no_torrent(self, api_client):
        resp = await api_client.post(
            "/api/playback-position",
            json={"fileIndex": 0, "currentTime": 1, "duration": 2},
        )
        assert resp.status == 404
        assert (await resp.json())["code"] == "NoActiveTorrentError"

    @pytest.mark.asyncio
    async def test_unknown_file(self, api_client):
        await api_client.post("/api/torrent", json={"magnetOrHash": HASH})
        resp = await api_client.post(
            "/api/playback-position",
            json={"fileIndex": 3, "currentTime": 1, "duration": 2},
        )
        assert resp.status == 404
        assert (await resp.json())["code"] == "UnknownFileError"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"fileIndex": 0, "currentTime": 5, "duration": -1},
            {"fileIndex": 0, "currentTime": 5, "duration": None},
            {"fileIndex": 0, "currentTime": 5},
        ],
    )
    async def test_unknown_duration_maps_to_start(self, api_client, stream_session, body):
        await api_client.post("/api/torrent", json={"magnetOrHash": HASH})
        resp = await api_client.post("/api/playback-position", json=body)
        assert resp.status == 200
        assert await resp.json() == {"success": True, "bytePosition": 0}
        assert stream_session.position.file_index == 0

    @pytest.mark.asyncio
    async def test_negative_time(self, api_client):
        await api_client.post("/api/torrent", json={"magnetOrHash": HASH})
        resp = await api_client.post(
            "/api/playback-position",
            json={"fileIndex": 0, "currentTime": -1, "duration": 2},
        )
        assert resp.status == 400


class TestTrackerEndpoints:
    """GET /api/trackers and POST /api/trackers/reload."""

    @pytest.mark.asyncio
    async def test_count_without_loader(self, api_client):
        resp = await api_client.get("/api/trackers")
        assert await resp.json() == {"count": 0}

    @pytest.mark.asyncio
    async def test_reload(self, stream_session, tmp_path):
        path = tmp_path / "trackers.txt"
        path.write_text("udp://a.example.org:80/announce\n")
        loader = TrackerListLoader(TrackerConfig(trackers_file=str(path), fetch_remote=False))
        server = StreamServer(stream_session, loader)

        async with TestClient(TestServer(server.app)) as client:
            assert await (await client.get("/api/trackers")).json() == {"count": 0}

            path.write_text("udp://a.example.org:80/announce\nudp://b.example.org:80/announce\n")
            resp = await client.post("/api/trackers/reload")
            assert await resp.json() == {"success": True, "count": 2}
            assert await (await client.get("/api/trackers")).json() == {"count": 2}


class TestStaticUi:
    """Serving the browser UI."""

    @pytest.mark.asyncio
    async def test_index(self, stream_session, tmp_path):
        (tmp_path / "index.html").write_text("<html>player</html>")
        (tmp_path / "app.js").write_text("console.log('ok');")
        server = StreamServer(stream_session, config=ServerConfig(static_dir=str(tmp_path)))

        async with TestClient(TestServer(server.app)) as client:
            index = await client.get("/")
            assert index.status == 200
            assert "player" in await index.text()
            script = await client.get("/app.js")
            assert script.status == 200

    @pytest.mark.asyncio
    async def test_no_ui_configured(self, api_client):
        resp = await api_client.get("/")
        assert resp.status == 404
