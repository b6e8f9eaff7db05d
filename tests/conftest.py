"""Pytest configuration and shared fixtures for ccstream tests."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import AsyncIterator

import pytest
import pytest_asyncio

from ccstream.engine.base import TorrentFile, TorrentHandle, TransferEngine, TransferStats
from ccstream.models import StreamingConfig
from ccstream.session.session import StreamSession
from ccstream.utils.exceptions import EngineError

DEFAULT_INFO_HASH = "ab" * 20


def pytest_configure(config):
    """Register all project markers to avoid warnings when ini isn't loaded."""
    markers = [
        ("asyncio", "marks tests as async"),
        ("unit", "marks tests as unit tests"),
        ("streaming", "marks tests as streaming core tests"),
        ("session", "marks tests as stream session tests"),
        ("server", "marks tests as HTTP server tests"),
        ("config", "marks tests as configuration tests"),
        ("tracker", "marks tests as tracker list tests"),
        ("observability", "marks tests as logging tests"),
        ("engine", "marks tests as transfer engine adapter tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


def content_byte(offset: int) -> int:
    """Deterministic content of the fake torrent at absolute ``offset``."""
    return offset % 251


def expected_bytes(file: TorrentFile, start: int, end: int) -> bytes:
    """Bytes ``[start, end]`` of ``file`` as the fake handle serves them."""
    return bytes(content_byte(file.offset + i) for i in range(start, end + 1))


class FakeTorrentHandle(TorrentHandle):
    """In-memory torrent with controllable availability and readiness."""

    def __init__(
        self,
        files: list[tuple[str, int]] | None = None,
        piece_length: int = 16384,
        info_hash: str = DEFAULT_INFO_HASH,
        name: str = "Test Torrent",
        ready: bool = True,
        complete: bool = True,
        read_chunk: int = 4096,
    ) -> None:
        self._info_hash = info_hash
        self._name = name
        self._piece_length = piece_length
        self._files: list[TorrentFile] = []
        offset = 0
        for index, (file_name, length) in enumerate(files or [("movie.mp4", 10000)]):
            self._files.append(TorrentFile(index, file_name, offset, length, f"{name}/{file_name}"))
            offset += length
        self._total = offset
        self.available: set[int] = set(range(self.num_pieces)) if complete else set()
        self.urgent_windows: list = []
        self.read_chunk = read_chunk
        self.read_gate: asyncio.Event | None = None
        self.open_readers = 0
        self.destroyed = False
        self.destroy_error: Exception | None = None
        self.ready_error: Exception | None = None
        self._ready = asyncio.Event()
        if ready:
            self._ready.set()

    def make_ready(self) -> None:
        self._ready.set()

    @property
    def info_hash(self) -> str:
        return self._info_hash

    @property
    def name(self) -> str:
        return self._name

    @property
    def piece_length(self) -> int:
        return self._piece_length

    @property
    def total_length(self) -> int:
        return self._total

    @property
    def files(self) -> list[TorrentFile]:
        return list(self._files)

    async def wait_ready(self) -> None:
        await self._ready.wait()
        if self.destroyed:
            raise EngineError("Torrent was destroyed")
        if self.ready_error is not None:
            raise self.ready_error

    def has_piece(self, piece: int) -> bool:
        return piece in self.available

    def stats(self) -> TransferStats:
        done = min(self._total, len(self.available) * self._piece_length)
        return TransferStats(
            progress=done / self._total if self._total else 1.0,
            downloaded=done,
            download_rate=1024.0,
            upload_rate=512.0,
            num_peers=3,
            file_downloaded=[f.length if len(self.available) == self.num_pieces else 0 for f in self._files],
        )

    def mark_urgent(self, window) -> None:
        self.urgent_windows.append(window)

    async def read_range(self, file: TorrentFile, start: int, end: int) -> AsyncIterator[bytes]:
        self.open_readers += 1
        try:
            position = start
            while position <= end:
                # The first chunk is always served; later ones wait on the gate
                if self.read_gate is not None and position > start:
                    await self.read_gate.wait()
                chunk_end = min(end, position + self.read_chunk - 1)
                yield expected_bytes(file, position, chunk_end)
                position = chunk_end + 1
        finally:
            self.open_readers -= 1

    async def destroy(self) -> None:
        self.destroyed = True
        self._ready.set()
        if self.destroy_error is not None:
            raise self.destroy_error


class FakeEngine(TransferEngine):
    """Engine handing out queued fake handles."""

    def __init__(self) -> None:
        self.queued: list[FakeTorrentHandle] = []
        self.handles: list[FakeTorrentHandle] = []
        self.added_uris: list[str] = []
        self.reject: Exception | None = None
        self.shut_down = False

    async def add_torrent(self, uri: str) -> FakeTorrentHandle:
        if self.reject is not None:
            raise self.reject
        handle = self.queued.pop(0) if self.queued else FakeTorrentHandle()
        self.added_uris.append(uri)
        self.handles.append(handle)
        return handle

    async def shutdown(self) -> None:
        self.shut_down = True


@pytest.fixture
def fake_handle_cls():
    """The fake handle class, for tests that build their own torrents."""
    return FakeTorrentHandle


@pytest.fixture
def fake_engine():
    """Fake transfer engine."""
    return FakeEngine()


@pytest.fixture
def streaming_config():
    """Streaming config with a short metadata timeout."""
    return StreamingConfig(metadata_timeout=0.5)


@pytest_asyncio.fixture
async def stream_session(fake_engine, streaming_config):
    """Stream session over the fake engine, closed after the test."""
    session = StreamSession(fake_engine, streaming_config)
    yield session
    await session.close()


@pytest.fixture(autouse=True)
def _isolate_ccstream_env(monkeypatch):
    """Keep CCSTREAM_* variables from the developer's shell out of tests."""
    for key in list(os.environ):
        if key.startswith("CCSTREAM_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Clean up logging handlers after each test to prevent closed file errors."""
    yield
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)
