"""Fire-and-forget task scope for markdown exports."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger("taskvault.export")


class ExportScope:
    """Runs export coroutines as detached background tasks.

    Callers never await the work they schedule. The scope holds a reference to
    every pending task so it is not garbage collected mid-flight, logs anything
    that escapes a task, and can drain pending work on shutdown.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def launch(self, coro: Coroutine[Any, Any, Any], description: str = "export") -> asyncio.Task | None:
        if self._closed:
            logger.warning(f"Export scope closed, dropping {description}")
            coro.close()
            return None
        task = asyncio.get_running_loop().create_task(coro, name=f"taskvault-{description}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug(f"Background {task.get_name()} cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Background {task.get_name()} failed: {exc}", exc_info=exc)

    async def join(self) -> None:
        """Wait until no export is pending, including exports scheduled while waiting."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            # wait() rather than gather(): cancelling a join must not cancel the exports.
            await asyncio.wait(pending)

    async def drain(self, timeout: float | None = None) -> None:
        """Stop accepting work, give pending exports ``timeout`` seconds, then cancel the rest."""
        self._closed = True
        if not self._tasks:
            return
        logger.info(f"Draining {len(self._tasks)} pending markdown export(s)")
        try:
            await asyncio.wait_for(self.join(), timeout=timeout)
        except asyncio.TimeoutError:
            remaining = list(self._tasks)
            logger.warning(f"Export drain timed out, cancelling {len(remaining)} task(s)")
            for task in remaining:
                task.cancel()
            await asyncio.gather(*remaining, return_exceptions=True)
