"""Tracker list loading.

Merges a local tracker file with a remote "best trackers" list. More trackers
only means more peers; a failure in either source is logged and skipped.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable

import aiofiles
import aiohttp

from ccstream.models import TrackerConfig
from ccstream.utils.version import get_user_agent

logger = logging.getLogger(__name__)


def parse_tracker_lines(lines: Iterable[str]) -> list[str]:
    """Return tracker URLs from ``lines``, skipping blanks and ``#`` comments."""
    trackers: list[str] = []
    for line in lines:
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            trackers.append(stripped)
    return trackers


class TrackerListLoader:
    """Loads and holds the merged tracker list."""

    def __init__(self, config: TrackerConfig | None = None) -> None:
        """Initialize the loader.

        Args:
            config: tracker configuration (defaults when None)

        """
        self.config = config or TrackerConfig()
        self._trackers: list[str] = []
        self._lock = asyncio.Lock()

    @property
    def trackers(self) -> list[str]:
        """Trackers from the last successful load, in first-seen order."""
        return list(self._trackers)

    @property
    def count(self) -> int:
        """Number of loaded trackers."""
        return len(self._trackers)

    async def load(self) -> list[str]:
        """Reload both sources and replace the tracker list."""
        async with self._lock:
            merged: dict[str, None] = {}

            local = await self._load_local()
            merged.update(dict.fromkeys(local))
            if local:
                logger.info("Loaded %d trackers from %s", len(local), self.config.trackers_file)

            if self.config.fetch_remote and self.config.remote_url:
                remote = await self._load_remote()
                added = [t for t in remote if t not in merged]
                merged.update(dict.fromkeys(added))
                logger.info("Loaded %d additional trackers from %s", len(added), self.config.remote_url)

            self._trackers = list(merged)
            logger.info("Total trackers loaded: %d", len(self._trackers))
            return self.trackers

    async def _load_local(self) -> list[str]:
        path_str = self.config.trackers_file
        if not path_str:
            return []
        path = Path(path_str)
        if not path.exists():
            return []
        try:
            async with aiofiles.open(path, encoding="utf-8") as f:
                content = await f.read()
        except OSError as e:
            logger.warning("Error loading local trackers from %s: %s", path, e)
            return []
        return parse_tracker_lines(content.splitlines())

    async def _load_remote(self) -> list[str]:
        timeout = aiohttp.ClientTimeout(total=self.config.fetch_timeout)
        try:
            async with aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": get_user_agent()},
            ) as session:
                async with session.get(self.config.remote_url) as response:
                    if response.status != 200:
                        logger.warning(
                            "Remote tracker list %s returned HTTP %d",
                            self.config.remote_url,
                            response.status,
                        )
                        return []
                    content = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Error loading remote trackers from %s: %s", self.config.remote_url, e)
            return []
        return parse_tracker_lines(content.splitlines())
