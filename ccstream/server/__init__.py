"""HTTP API and range streaming."""

from ccstream.server.http_server import StreamServer
from ccstream.server.range_stream import RangeStreamResponder

__all__ = ["RangeStreamResponder", "StreamServer"]
