"""Serving torrent files over HTTP with byte-range support.

Each request pumps bytes from the engine reader to the client in a task owned
by the stream session, so destroying the torrent stops every open stream.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from aiohttp import hdrs, web

from ccstream.streaming.ranges import ByteRange, content_type_for, parse_range_header
from ccstream.utils.exceptions import (
    MalformedRangeError,
    NoActiveTorrentError,
    RangeNotSatisfiableError,
    TransientStreamDisconnect,
    is_disconnect_error,
)
from ccstream.utils.logging_config import log_exception

if TYPE_CHECKING:
    from ccstream.engine.base import TorrentFile, TorrentHandle
    from ccstream.session.session import StreamSession

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class RangeStreamResponder:
    """Answers ``GET``/``HEAD /stream/{fileIndex}`` requests."""

    def __init__(self, session: StreamSession, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.session = session
        self.chunk_size = chunk_size

    async def respond(self, request: web.Request, file_index: int) -> web.StreamResponse:
        """Stream file ``file_index`` of the active torrent.

        Raises:
            NoActiveTorrentError: no torrent is ready
            UnknownFileError: ``file_index`` is out of range

        """
        handle, file = await self.session.require_file(file_index)

        try:
            byte_range = parse_range_header(request.headers.get(hdrs.RANGE), file.length)
        except MalformedRangeError as e:
            # Degrade to a full response rather than rejecting the player
            logger.debug("Ignoring Range header on file %d: %s", file_index, e)
            byte_range = None
        except RangeNotSatisfiableError:
            return web.Response(
                status=416,
                headers={
                    hdrs.CONTENT_RANGE: f"bytes */{file.length}",
                    hdrs.ACCEPT_RANGES: "bytes",
                },
            )

        response = self._build_response(file, byte_range)
        await response.prepare(request)

        if byte_range is None:
            start, end = 0, file.length - 1
        else:
            start, end = byte_range.start, byte_range.end

        if request.method == hdrs.METH_HEAD or end < start:
            await response.write_eof()
            return response

        try:
            task = self.session.spawn_stream(
                handle,
                self._pump(request, response, handle, file, start, end),
                name=f"stream-{file_index}-{start}",
            )
        except NoActiveTorrentError:
            # Headers are already sent; the only way left to fail is to drop the connection
            logger.info("Stream aborted: file %d (torrent replaced)", file_index)
            response.force_close()
            return response
        logger.info("Stream opened: file %d bytes %d-%d/%d", file_index, start, end, file.length)
        try:
            await asyncio.wait({task})
        finally:
            if not task.done():
                # Handler cancelled: the client went away mid-stream
                task.cancel()
                logger.debug("Stream cancelled: file %d (client disconnected)", file_index)

        if task.cancelled():
            logger.info("Stream cancelled: file %d (torrent destroyed)", file_index)
            response.force_close()
            return response

        exc = task.exception()
        if exc is not None:
            if is_disconnect_error(exc):
                logger.debug("Stream closed by client: file %d (%s)", file_index, exc)
            else:
                log_exception(logger, exc, f"Error streaming file {file_index}")
            response.force_close()
            return response

        await response.write_eof()
        logger.debug("Stream closed: file %d, %d bytes sent", file_index, task.result())
        return response

    def _build_response(self, file: TorrentFile, byte_range: ByteRange | None) -> web.StreamResponse:
        if byte_range is None:
            response = web.StreamResponse(status=200)
            response.content_length = file.length
        else:
            response = web.StreamResponse(status=206)
            response.headers[hdrs.CONTENT_RANGE] = byte_range.content_range
            response.content_length = byte_range.length
        response.headers[hdrs.ACCEPT_RANGES] = "bytes"
        response.content_type = content_type_for(file.name)
        return response

    async def _pump(
        self,
        request: web.Request,
        response: web.StreamResponse,
        handle: TorrentHandle,
        file: TorrentFile,
        start: int,
        end: int,
    ) -> int:
        """Copy ``[start, end]`` of ``file`` to ``response``; returns bytes sent."""
        sent = 0
        reader = self.session.open_reader(handle, file, start, end)
        async with contextlib.aclosing(reader):
            async for data in reader:
                for offset in range(0, len(data), self.chunk_size):
                    transport = request.transport
                    if transport is None or transport.is_closing():
                        msg = "Client closed the connection"
                        raise TransientStreamDisconnect(msg, {"sent": sent})
                    chunk = data[offset : offset + self.chunk_size]
                    await response.write(chunk)
                    sent += len(chunk)
        return sent
