"""Periodic ticker that runs a callback on the event loop.

Each PeriodicTask serializes its callback into the same asyncio loop as
interactive calls and never overlaps its own previous invocation.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs `callback` every `interval` seconds until stopped.

    The "is running" guard makes run_once() skip when a previous
    invocation has not finished, whether it came from the ticker or
    from an explicit call. stop() halts further ticks but lets an
    in-flight callback finish.

    Args:
        name: Label used in log messages.
        interval: Seconds between invocations.
        callback: Sync or async callable taking no arguments.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: Callable[[], Awaitable[object] | object],
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self._callback = callback
        self._task: asyncio.Task | None = None
        self._running = False
        self._executing = False
        self._generation = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def executing(self) -> bool:
        return self._executing

    def start(self) -> None:
        """Start ticking. Calling start() on a running ticker is a no-op."""
        if self._task is not None and not self._task.done():
            return
        self._running = True
        self._generation += 1
        self._task = asyncio.get_running_loop().create_task(
            self._loop(self._generation), name=f"periodic-{self.name}"
        )
        logger.debug("Started periodic task %s every %.1fs", self.name, self.interval)

    async def _loop(self, generation: int) -> None:
        # A restart bumps the generation, retiring any loop still finishing a tick.
        while self._running and self._generation == generation:
            await asyncio.sleep(self.interval)
            if not self._running or self._generation != generation:
                break
            await self.run_once()

    async def run_once(self) -> bool:
        """Invoke the callback unless a previous invocation is still running.

        Returns:
            True if the callback ran, False if it was skipped.
        """
        if self._executing:
            logger.debug("Skipping %s tick: previous run still active", self.name)
            return False
        self._executing = True
        try:
            result = self._callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.error("Periodic task %s failed", self.name, exc_info=True)
        finally:
            self._executing = False
        return True

    def stop(self) -> None:
        """Stop ticking. An in-flight callback is allowed to complete."""
        self._running = False
        self._generation += 1
        if self._task is not None and not self._executing:
            self._task.cancel()
        self._task = None
        logger.debug("Stopped periodic task %s", self.name)
