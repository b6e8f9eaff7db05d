"""Version lookup for ccstream."""

from __future__ import annotations

import importlib.metadata
from typing import Final

UI_CLIENT_NAME: Final[str] = "ccstream"


def get_version() -> str:
    """Get the installed package version.

    Uses importlib.metadata to get version from installed package.
    Falls back to ccstream.__version__ if metadata is unavailable.
    """
    try:
        return importlib.metadata.version("ccstream")
    except importlib.metadata.PackageNotFoundError:
        import ccstream

        return getattr(ccstream, "__version__", "0.0.1")


def get_user_agent() -> str:
    """Return the User-Agent used for outgoing HTTP requests."""
    return f"{UI_CLIENT_NAME}/{get_version()}"
