"""Tracking of background tasks that must end together."""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine


class BackgroundTaskGroup:
    """A set of tasks cancelled as one, e.g. every stream of one torrent."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        """Number of tasks that have not finished yet."""
        return len([task for task in self._tasks if not task.done()])

    def create(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        """Start ``coro`` as a task owned by this group."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def cancel_and_wait(self, timeout: float | None = None) -> None:
        """Cancel every task and wait up to ``timeout`` seconds for them to finish.

        Tasks still running after the timeout are left to finish on their own.
        """
        pending = [task for task in self._tasks if not task.done()]
        self._tasks.clear()
        if not pending:
            return
        for task in pending:
            task.cancel()
        await asyncio.wait(pending, timeout=timeout)
