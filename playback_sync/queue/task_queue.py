"""Priority task queue bounding concurrent remote calls.

Tasks are coroutine factories ordered by priority (high before medium
before low) and by submission order within a tier. At most
`max_concurrency` tasks run at once, consecutive dispatches are spaced
out, each attempt is bounded by a timeout, and failed tasks are retried
with capped exponential backoff.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from playback_sync.config import QueueConfig
from playback_sync.utils.errors import TaskTimeoutError

logger = logging.getLogger(__name__)


class TaskPriority(IntEnum):
    HIGH = 0
    MEDIUM = 1
    LOW = 2

    @classmethod
    def parse(cls, value: TaskPriority | str) -> TaskPriority:
        if isinstance(value, TaskPriority):
            return value
        try:
            return cls[value.upper()]
        except KeyError as exc:
            raise ValueError(f"Invalid task priority: '{value}'") from exc


@dataclass
class QueueStatus:
    """Counters describing the queue's workload."""

    total: int
    completed: int
    pending: int
    running: int
    failed: int
    retried: int

    @property
    def percent_complete(self) -> int:
        if self.total == 0:
            return 0
        return round(self.completed / self.total * 100)


@dataclass(order=True)
class _QueuedTask:
    priority: int
    seq: int
    task_id: str = field(compare=False)
    factory: Callable[[], Awaitable[Any]] = field(compare=False)
    future: asyncio.Future = field(compare=False)
    attempts: int = field(default=0, compare=False)


class TaskQueue:
    """Bounded-concurrency priority queue for remote calls.

    Workers are started lazily on the first submission inside a running
    event loop. stop() cancels pending tasks but lets in-flight calls
    finish.

    Args:
        config: Concurrency, spacing, timeout and retry settings.
    """

    def __init__(self, config: QueueConfig | None = None) -> None:
        self.config = config or QueueConfig()
        self._queue: asyncio.PriorityQueue[_QueuedTask] | None = None
        self._workers: list[asyncio.Task] = []
        self._idle: set[asyncio.Task] = set()
        self._retry_handles: dict[int, tuple[asyncio.TimerHandle, _QueuedTask]] = {}
        self._counter = itertools.count()
        self._dispatch_lock: asyncio.Lock | None = None
        self._last_dispatch: float | None = None
        self._running = False
        self._stopped = False
        self._submitted = 0
        self._completed = 0
        self._failed = 0
        self._retried = 0
        self._in_flight = 0

    @property
    def running(self) -> bool:
        return self._running

    def _ensure_started(self) -> None:
        if self._running:
            return
        loop = asyncio.get_running_loop()
        self._queue = asyncio.PriorityQueue()
        self._dispatch_lock = asyncio.Lock()
        self._running = True
        self._workers = [
            loop.create_task(self._worker(), name=f"task-queue-worker-{i}")
            for i in range(self.config.max_concurrency)
        ]
        logger.debug("Task queue started with %d workers", self.config.max_concurrency)

    def enqueue(
        self,
        factory: Callable[[], Awaitable[Any]],
        priority: TaskPriority | str = TaskPriority.MEDIUM,
        name: str | None = None,
    ) -> asyncio.Future:
        """Schedule `factory()` and return a future for its result.

        Raises:
            RuntimeError: If the queue has been stopped.
        """
        if self._stopped:
            raise RuntimeError("Task queue is stopped")
        self._ensure_started()
        seq = next(self._counter)
        future = asyncio.get_running_loop().create_future()
        item = _QueuedTask(
            priority=int(TaskPriority.parse(priority)),
            seq=seq,
            task_id=name or f"task-{seq}",
            factory=factory,
            future=future,
        )
        self._submitted += 1
        self._queue.put_nowait(item)  # type: ignore[union-attr]
        return future

    async def submit(
        self,
        factory: Callable[[], Awaitable[Any]],
        priority: TaskPriority | str = TaskPriority.MEDIUM,
        name: str | None = None,
    ) -> Any:
        """Schedule `factory()` and wait for its result.

        Raises:
            TaskTimeoutError: If the final attempt timed out.
            Exception: Whatever the final attempt raised.
        """
        return await self.enqueue(factory, priority, name)

    async def _worker(self) -> None:
        current = asyncio.current_task()
        while self._running:
            self._idle.add(current)  # type: ignore[arg-type]
            try:
                item = await self._queue.get()  # type: ignore[union-attr]
            finally:
                self._idle.discard(current)  # type: ignore[arg-type]
            try:
                if item.future.done():
                    continue
                await self._pace()
                await self._run(item)
            finally:
                self._queue.task_done()  # type: ignore[union-attr]

    async def _pace(self) -> None:
        loop = asyncio.get_running_loop()
        async with self._dispatch_lock:  # type: ignore[union-attr]
            if self._last_dispatch is not None:
                wait = self.config.spacing_seconds - (loop.time() - self._last_dispatch)
                if wait > 0:
                    await asyncio.sleep(wait)
            self._last_dispatch = loop.time()

    async def _run(self, item: _QueuedTask) -> None:
        item.attempts += 1
        self._in_flight += 1
        try:
            result = await asyncio.wait_for(
                item.factory(), timeout=self.config.timeout_seconds
            )
        except TimeoutError:
            error: Exception = TaskTimeoutError(
                f"Task {item.task_id} exceeded {self.config.timeout_seconds}s",
                task_id=item.task_id,
            )
            self._handle_failure(item, error)
        except Exception as exc:
            self._handle_failure(item, exc)
        else:
            self._completed += 1
            if not item.future.done():
                item.future.set_result(result)
        finally:
            self._in_flight -= 1

    def _handle_failure(self, item: _QueuedTask, error: Exception) -> None:
        if item.attempts < self.config.max_attempts and self._running:
            delay = min(
                self.config.base_delay * (2 ** (item.attempts - 1)),
                self.config.max_delay,
            )
            logger.warning(
                "Attempt %d/%d failed for %s, retrying in %.1fs: %s",
                item.attempts,
                self.config.max_attempts,
                item.task_id,
                delay,
                error,
                extra={"component": "task_queue", "error": str(error)},
            )
            self._retried += 1
            handle = asyncio.get_running_loop().call_later(delay, self._requeue, item)
            self._retry_handles[item.seq] = (handle, item)
            return

        self._failed += 1
        logger.error(
            "Task %s failed after %d attempts: %s",
            item.task_id,
            item.attempts,
            error,
            extra={"component": "task_queue", "error": str(error)},
        )
        if not item.future.done():
            item.future.set_exception(error)

    def _requeue(self, item: _QueuedTask) -> None:
        self._retry_handles.pop(item.seq, None)
        if not self._running:
            if not item.future.done():
                item.future.cancel()
            return
        self._queue.put_nowait(item)  # type: ignore[union-attr]

    def status(self) -> QueueStatus:
        queued = self._queue.qsize() if self._queue is not None else 0
        waiting = queued + len(self._retry_handles)
        return QueueStatus(
            total=self._submitted,
            completed=self._completed,
            pending=waiting + self._in_flight,
            running=self._in_flight,
            failed=self._failed,
            retried=self._retried,
        )

    async def join(self) -> None:
        """Wait until every queued task, including retries, has settled."""
        while self._queue is not None and (
            self._retry_handles or not self._queue.empty() or self._in_flight
        ):
            await asyncio.sleep(0.01)

    def stop(self) -> None:
        """Stop scheduling, cancel pending tasks, let in-flight calls finish."""
        self._running = False
        self._stopped = True
        for handle, item in self._retry_handles.values():
            handle.cancel()
            if not item.future.done():
                item.future.cancel()
        self._retry_handles.clear()
        if self._queue is not None:
            while not self._queue.empty():
                item = self._queue.get_nowait()
                self._queue.task_done()
                if not item.future.done():
                    item.future.cancel()
        for worker in list(self._idle):
            worker.cancel()
        logger.debug("Task queue stopped")
