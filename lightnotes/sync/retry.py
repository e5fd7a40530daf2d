"""Background retry of the offline queue.

Drains on a fixed interval, when connectivity returns, and whenever someone
asks for an early retry (the queue does after every enqueue).
"""

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class RetryLoop:
    """Runs ``drain`` on the event loop until stopped.

    Args:
        drain: Coroutine function performing one drain pass
        interval: Seconds between timer-driven drains
    """

    def __init__(self, drain: Callable[[], Awaitable[object]], interval: float = 15.0):
        self._drain = drain
        self.interval = interval
        self._wake = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.online = True

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def request_retry_soon(self) -> None:
        """Wake the loop for an early drain."""
        self._wake.set()

    def notify_online(self) -> None:
        """Connectivity regained: drain now."""
        if not self.online:
            logger.info("Connectivity regained, draining queue")
        self.online = True
        self._wake.set()

    def notify_offline(self) -> None:
        self.online = False

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="lightnotes-retry")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def run_once(self) -> None:
        """One drain pass; failures are logged, never raised."""
        try:
            await self._drain()
        except Exception as e:
            logger.warning(f"Background drain failed: {e}")

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
            await self.run_once()
