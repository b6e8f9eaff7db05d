"""Rich console logging for ccstream.

The console handler highlights streaming lifecycle lines (torrent added,
stream opened, urgent windows) so they stand out between peer and request
noise. Log files get the same text without markup.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

# Lifecycle messages worth spotting at a glance
_HIGHLIGHT = re.compile(
    r"Marked pieces \d+-\d+ as urgent"
    r"|Stream (?:opened|closed|cancelled|aborted)"
    r"|Torrent (?:added|ready|destroyed)"
    r"|state transition: \w+"
)
_MARKUP = re.compile(r"(?<!\\)\[/?[a-z#][^\]]*\]")


class CorrelationRichHandler(RichHandler):
    """RichHandler that tags lines with the correlation id and highlights lifecycle events."""

    def __init__(self, *args: Any, show_colors: bool = True, **kwargs: Any) -> None:
        self.show_colors = show_colors
        kwargs.setdefault("markup", True)
        super().__init__(*args, **kwargs)

    def _render_message(self, record: logging.LogRecord) -> str:
        # Torrent names and paths are user data: escape before adding markup
        message = record.getMessage().replace("[", r"\[")
        if not self.show_colors:
            return message
        message = _HIGHLIGHT.sub(lambda m: f"[bright_cyan]{m.group(0)}[/bright_cyan]", message)
        corr = getattr(record, "correlation_id", None)
        if corr and corr != "-":
            message = f"[dim]{corr}[/dim] {message}"
        return message

    def emit(self, record: logging.LogRecord) -> None:
        try:
            # Other handlers see the same record; render into a copy
            rendered = logging.makeLogRecord(record.__dict__)
            rendered.msg = self._render_message(record)
            rendered.args = ()
            super().emit(rendered)
        except Exception:
            self.handleError(record)


def strip_rich_markup(text: str) -> str:
    """Remove Rich markup tags and unescape ``\\[``."""
    return _MARKUP.sub("", text).replace(r"\[", "[")


class FileFormatter(logging.Formatter):
    """Plain-text formatter that drops any Rich markup from the output."""

    def format(self, record: logging.LogRecord) -> str:
        return strip_rich_markup(super().format(record))


def create_rich_handler(
    console: Console | None = None,
    level: int | str = logging.INFO,
    show_path: bool = False,
    rich_tracebacks: bool = True,
    show_colors: bool = True,
) -> logging.Handler:
    """Create the console handler used by :func:`setup_logging`.

    Args:
        console: console to write to (default: stdout)
        level: minimum level handled
        show_path: show the source location column
        rich_tracebacks: render tracebacks with Rich
        show_colors: highlight lifecycle messages and prefix the correlation id

    """
    if console is None:
        console = Console(file=sys.stdout, force_interactive=False, markup=True)
    return CorrelationRichHandler(
        console=console,
        level=level,
        show_path=show_path,
        rich_tracebacks=rich_tracebacks,
        show_colors=show_colors,
    )
