"""
Keepalive – periodically runs a cheap command so a silently dead link gets noticed.

A failed ping is only logged. The session's own close event is what
triggers reconnection, so the keepalive never reconnects by itself.
"""

import asyncio
import logging
from typing import Awaitable, Callable

log = logging.getLogger("Keepalive")


class Keepalive:

    def __init__(self, ping: Callable[[], Awaitable[object]]):
        self.ping = ping
        self.interval: float = 0
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval: float) -> None:
        self.cancel()
        self.interval = interval
        self._task = asyncio.create_task(self._loop())
        log.debug(f"Keepalive started (every {interval:g}s)")

    def cancel(self) -> None:
        """Stop without waiting; safe from synchronous callbacks."""
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _loop(self) -> None:
        while True:
            # Wait BEFORE the first ping; connect() has just proven the link.
            await asyncio.sleep(self.interval)
            try:
                await self.ping()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.warning(f"Keepalive failed: {e}")
