"""Event-processing primitive pumped by the lifecycle loop."""

import asyncio
import logging


class AsyncioLoopDriver:
    """Runs an asyncio event loop one cycle at a time.

    A cycle lasts until the next wakeup is posted: a forwarded signal, a
    termination request or an explicit wakeup(). Timers and tasks scheduled
    on ``loop`` run inside cycles.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self.logger = logging.getLogger("driver")
        self.loop = loop or asyncio.new_event_loop()
        self._wakeup = asyncio.Event()
        self.cycles = 0

    def wakeup(self) -> None:
        """End the current cycle. Safe to call from other threads."""
        if not self.loop.is_closed():
            self.loop.call_soon_threadsafe(self._wakeup.set)

    async def _wait_for_wakeup(self) -> None:
        await self._wakeup.wait()
        self._wakeup.clear()

    def run_once(self) -> bool:
        """Block until one unit of work has been processed.

        Returns:
            False if the loop cannot continue
        """
        if self.loop.is_closed() or self.loop.is_running():
            self.logger.error("Event loop is closed or already running")
            return False

        asyncio.set_event_loop(self.loop)
        self.loop.run_until_complete(self._wait_for_wakeup())
        self.cycles += 1
        return True

    def close(self) -> None:
        """Cancel leftover tasks and close the loop."""
        if self.loop.is_closed():
            return
        pending = [task for task in asyncio.all_tasks(self.loop) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            self.loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        self.loop.run_until_complete(self.loop.shutdown_asyncgens())
        self.loop.close()
        asyncio.set_event_loop(None)
        self.logger.debug(f"Event loop closed after {self.cycles} cycles")
