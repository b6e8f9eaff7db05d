"""Stream session and status reporting."""

from ccstream.session.models import FileInfo, FileStatus, PositionInfo, StatusSnapshot
from ccstream.session.session import StreamSession
from ccstream.session.status import StatusReporter

__all__ = [
    "FileInfo",
    "FileStatus",
    "PositionInfo",
    "StatusReporter",
    "StatusSnapshot",
    "StreamSession",
]
