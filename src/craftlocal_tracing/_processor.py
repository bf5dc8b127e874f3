"""Background task that flushes the tracer on a fixed interval."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

logger = logging.getLogger("craftlocal_tracing.processor")

FlushCallback = Callable[[], Awaitable[None]]


def run_soon(coro: Coroutine[Any, Any, None]) -> asyncio.Task[None] | None:
    """Schedule ``coro`` on the running loop, or run it to completion.

    Returns the scheduled task, or None when no loop was running and the
    coroutine has already finished.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        asyncio.run(coro)
        return None
    return loop.create_task(coro)


class BackgroundProcessor:
    """asyncio task that awaits ``flush`` every ``flush_interval_ms``.

    ``start()`` must be called while an event loop is running.
    """

    def __init__(
        self,
        flush: FlushCallback,
        *,
        flush_interval_ms: int = 5000,
    ) -> None:
        self._flush = flush
        self._flush_interval_s = flush_interval_ms / 1000.0
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        """Start the periodic flush loop on the running event loop."""
        if self.is_running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name="craftlocal-tracing-flush")

    def stop(self) -> None:
        """Cancel the flush loop. A flush already in progress is not awaited."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        if task.get_loop().is_closed():
            return
        task.cancel()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._flush_interval_s)
            try:
                await self._flush()
            except Exception:  # noqa: BLE001
                # Never let a failed flush end the loop
                logger.debug("Periodic flush failed", exc_info=True)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()
