"""HTTP server exposing the streaming API and the media streams.

Routes:
    GET    /api/status              status snapshot
    POST   /api/torrent             replace the active torrent
    DELETE /api/torrent             destroy the active torrent
    POST   /api/playback-position   report the playhead, re-prioritize pieces
    GET    /api/trackers            number of loaded trackers
    POST   /api/trackers/reload     reload the tracker list
    GET    /stream/{fileIndex}      file bytes, honouring Range
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from aiohttp import web
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ccstream.models import ServerConfig
from ccstream.server.protocol import (
    ErrorResponse,
    PlaybackPositionRequest,
    PositionResponse,
    SuccessResponse,
    TorrentAddRequest,
    TorrentAddResponse,
    TrackerCountResponse,
)
from ccstream.server.range_stream import RangeStreamResponder
from ccstream.session.models import FileInfo
from ccstream.utils.exceptions import (
    CCStreamError,
    EngineError,
    MetadataTimeoutError,
    NoActiveTorrentError,
    UnknownFileError,
    ValidationError,
)
from ccstream.utils.logging_config import LoggingContext, set_correlation_id

if TYPE_CHECKING:
    from aiohttp.web_request import Request
    from aiohttp.web_response import Response

    from ccstream.discovery.trackers import TrackerListLoader
    from ccstream.session.session import StreamSession

logger = logging.getLogger(__name__)

API_BASE_PATH = "/api"

ModelT = TypeVar("ModelT", bound=BaseModel)

# Checked in order; the first matching class wins
_ERROR_STATUS: list[tuple[type[CCStreamError], int]] = [
    (ValidationError, 400),
    (NoActiveTorrentError, 404),
    (UnknownFileError, 404),
    (MetadataTimeoutError, 408),
    (EngineError, 502),
]


def status_for_error(error: CCStreamError) -> int:
    """HTTP status code for a ccstream error."""
    for error_type, status in _ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def error_response(error: str, status: int, code: str | None = None, details: dict[str, Any] | None = None) -> Response:
    """JSON error response in the API's error shape."""
    payload = ErrorResponse(error=error, code=code, details=details or None)
    return web.json_response(payload.to_wire(), status=status)


class StreamServer:
    """aiohttp application serving the API and streams for one session."""

    def __init__(
        self,
        session: StreamSession,
        tracker_loader: TrackerListLoader | None = None,
        config: ServerConfig | None = None,
    ) -> None:
        """Initialize the server.

        Args:
            session: stream session the handlers operate on
            tracker_loader: tracker list exposed under ``/api/trackers``
            config: bind address, static UI directory and chunk size

        """
        self.session = session
        self.tracker_loader = tracker_loader
        self.config = config or ServerConfig()
        self.responder = RangeStreamResponder(session, chunk_size=self.config.stream_chunk_size)

        self.app = web.Application()
        self.runner: web.AppRunner | None = None
        self.site: web.TCPSite | None = None

        self._setup_middleware()
        self._setup_routes()

    def _setup_middleware(self) -> None:
        """Set up error handling middleware."""

        @web.middleware
        async def error_middleware(request: Request, handler: Any) -> web.StreamResponse:
            set_correlation_id()
            try:
                return await handler(request)
            except asyncio.CancelledError:
                raise
            except web.HTTPException:
                raise
            except CCStreamError as e:
                status = status_for_error(e)
                log = logger.warning if status >= 500 else logger.debug
                log("%s %s failed with %d: %s", request.method, request.path, status, e)
                return error_response(e.message, status, type(e).__name__, e.details)
            except Exception as e:
                logger.exception(
                    "Error handling request %s %s from %s",
                    request.method,
                    request.path,
                    request.remote,
                )
                return error_response(str(e) or "Internal server error", 500, "INTERNAL_ERROR")

        self.app.middlewares.append(error_middleware)

    def _setup_routes(self) -> None:
        """Set up API, stream and static routes."""
        router = self.app.router
        router.add_get(f"{API_BASE_PATH}/status", self._handle_status)
        router.add_post(f"{API_BASE_PATH}/torrent", self._handle_add_torrent)
        router.add_delete(f"{API_BASE_PATH}/torrent", self._handle_remove_torrent)
        router.add_post(f"{API_BASE_PATH}/playback-position", self._handle_playback_position)
        router.add_get(f"{API_BASE_PATH}/trackers", self._handle_trackers)
        router.add_post(f"{API_BASE_PATH}/trackers/reload", self._handle_reload_trackers)
        # add_get also registers HEAD
        router.add_get(r"/stream/{file_index:\d+}", self._handle_stream)

        if self.config.static_dir:
            static_dir = Path(self.config.static_dir)
            router.add_get("/", self._handle_index)
            router.add_static("/", static_dir, show_index=False)
            logger.debug("Serving UI from %s", static_dir)

    @staticmethod
    async def _parse_body(request: Request, model: type[ModelT]) -> ModelT:
        try:
            data = await request.json()
        except ValueError as e:
            msg = "Request body must be JSON"
            raise ValidationError(msg) from e
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            errors = [
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            msg = "Invalid request body"
            raise ValidationError(msg, {"errors": errors}) from e

    async def _handle_status(self, _request: Request) -> Response:
        snapshot = await self.session.snapshot()
        return web.json_response(snapshot.to_wire())

    async def _handle_add_torrent(self, request: Request) -> Response:
        body = await self._parse_body(request, TorrentAddRequest)
        handle = await self.session.add_torrent(body.magnet_or_hash)
        reply = TorrentAddResponse(
            name=handle.name,
            info_hash=handle.info_hash,
            files=[FileInfo(index=f.index, name=f.name, path=f.path, length=f.length) for f in handle.files],
        )
        return web.json_response(reply.to_wire())

    async def _handle_remove_torrent(self, _request: Request) -> Response:
        await self.session.remove_torrent()
        return web.json_response(SuccessResponse().to_wire())

    async def _handle_playback_position(self, request: Request) -> Response:
        body = await self._parse_body(request, PlaybackPositionRequest)
        byte_position = await self.session.report_position(
            body.file_index, body.current_time, body.duration
        )
        return web.json_response(PositionResponse(byte_position=byte_position).to_wire())

    async def _handle_trackers(self, _request: Request) -> Response:
        count = self.tracker_loader.count if self.tracker_loader else 0
        return web.json_response(TrackerCountResponse(count=count).to_wire())

    async def _handle_reload_trackers(self, _request: Request) -> Response:
        if self.tracker_loader is None:
            return web.json_response(TrackerCountResponse(success=True, count=0).to_wire())
        trackers = await self.tracker_loader.load()
        return web.json_response(TrackerCountResponse(success=True, count=len(trackers)).to_wire())

    async def _handle_stream(self, request: Request) -> web.StreamResponse:
        file_index = int(request.match_info["file_index"])
        return await self.responder.respond(request, file_index)

    async def _handle_index(self, _request: Request) -> web.FileResponse:
        index = Path(self.config.static_dir or ".") / "index.html"
        if not index.is_file():
            raise web.HTTPNotFound
        return web.FileResponse(index)

    async def start(self) -> None:
        """Bind and start serving."""
        with LoggingContext("server_start", logger=logger, host=self.config.host, port=self.config.port):
            self.runner = web.AppRunner(self.app, handler_cancellation=True)
            await self.runner.setup()
            self.site = web.TCPSite(self.runner, self.config.host, self.config.port)
            await self.site.start()
        logger.info("Stream server listening on http://%s:%d", self.config.host, self.config.port)

    async def stop(self) -> None:
        """Stop serving and release the listening socket."""
        with LoggingContext("server_stop", logger=logger):
            if self.site:
                await self.site.stop()
                self.site = None
            if self.runner:
                await self.runner.cleanup()
                self.runner = None
        logger.info("Stream server stopped")
