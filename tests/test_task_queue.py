"""Tests for the priority task queue."""

import asyncio

import pytest

from playback_sync.config import QueueConfig
from playback_sync.queue.task_queue import TaskPriority, TaskQueue
from playback_sync.utils.errors import TaskTimeoutError


@pytest.fixture
async def make_queue():
    queues: list[TaskQueue] = []

    def factory(**overrides) -> TaskQueue:
        settings = {
            "spacing_seconds": 0.0,
            "timeout_seconds": 1.0,
            "base_delay": 0.001,
            "max_delay": 0.005,
            **overrides,
        }
        queue = TaskQueue(QueueConfig(**settings))
        queues.append(queue)
        return queue

    yield factory
    for queue in queues:
        queue.stop()


class TestTaskPriority:
    def test_parse(self) -> None:
        assert TaskPriority.parse("high") is TaskPriority.HIGH
        assert TaskPriority.parse("Low") is TaskPriority.LOW
        assert TaskPriority.parse(TaskPriority.MEDIUM) is TaskPriority.MEDIUM

    def test_parse_invalid(self) -> None:
        with pytest.raises(ValueError, match="urgent"):
            TaskPriority.parse("urgent")


class TestScheduling:
    async def test_priority_then_submission_order(self, make_queue) -> None:
        """High runs before medium before low; FIFO within a tier."""
        queue = make_queue(max_concurrency=1)
        order: list[str] = []

        def job(label: str):
            async def run() -> str:
                order.append(label)
                return label

            return run

        futures = [
            queue.enqueue(job("low"), "low"),
            queue.enqueue(job("medium-1"), TaskPriority.MEDIUM),
            queue.enqueue(job("high"), TaskPriority.HIGH),
            queue.enqueue(job("medium-2"), "medium"),
        ]
        results = await asyncio.gather(*futures)

        assert order == ["high", "medium-1", "medium-2", "low"]
        assert results == ["low", "medium-1", "high", "medium-2"]

    async def test_concurrency_is_bounded(self, make_queue) -> None:
        queue = make_queue(max_concurrency=2)
        active = 0
        peak = 0

        async def job() -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        await asyncio.gather(*(queue.submit(job) for _ in range(6)))

        assert peak == 2
        assert queue.status().completed == 6

    async def test_dispatches_are_spaced(self, make_queue) -> None:
        queue = make_queue(max_concurrency=3, spacing_seconds=0.02)
        loop = asyncio.get_running_loop()
        started: list[float] = []

        async def job() -> None:
            started.append(loop.time())

        await asyncio.gather(*(queue.submit(job) for _ in range(3)))

        gaps = [b - a for a, b in zip(started, started[1:])]
        assert all(gap >= 0.015 for gap in gaps)


class TestRetries:
    async def test_retry_then_success(self, make_queue) -> None:
        queue = make_queue()
        calls = 0

        async def flaky() -> str:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ConnectionError("blip")
            return "ok"

        assert await queue.submit(flaky) == "ok"
        status = queue.status()
        assert (status.completed, status.retried, status.failed) == (1, 1, 0)

    async def test_exhausted_retries_raise_last_error(self, make_queue) -> None:
        queue = make_queue(max_attempts=3)
        calls = 0

        async def broken() -> None:
            nonlocal calls
            calls += 1
            raise ValueError(f"attempt {calls}")

        with pytest.raises(ValueError, match="attempt 3"):
            await queue.submit(broken, name="broken")

        status = queue.status()
        assert (status.failed, status.retried, status.pending) == (1, 2, 0)

    async def test_timeout(self, make_queue) -> None:
        queue = make_queue(timeout_seconds=0.01, max_attempts=2)

        async def slow() -> None:
            await asyncio.sleep(1)

        with pytest.raises(TaskTimeoutError) as exc_info:
            await queue.submit(slow, name="slow")
        assert exc_info.value.task_id == "slow"


class TestStatusAndStop:
    async def test_status_counts(self, make_queue) -> None:
        queue = make_queue(max_concurrency=1)
        gate = asyncio.Event()

        async def blocked() -> None:
            await gate.wait()

        first = queue.enqueue(blocked)
        second = queue.enqueue(blocked)
        await asyncio.sleep(0.01)

        status = queue.status()
        assert (status.total, status.running, status.pending) == (2, 1, 2)
        assert status.percent_complete == 0

        gate.set()
        await asyncio.gather(first, second)
        status = queue.status()
        assert (status.completed, status.pending, status.percent_complete) == (2, 0, 100)

    async def test_stop_cancels_pending_but_not_in_flight(self, make_queue) -> None:
        queue = make_queue(max_concurrency=1)
        gate = asyncio.Event()

        async def blocked() -> str:
            await gate.wait()
            return "done"

        in_flight = queue.enqueue(blocked)
        pending = queue.enqueue(blocked)
        await asyncio.sleep(0.01)

        queue.stop()
        gate.set()

        assert await in_flight == "done"
        assert pending.cancelled()
        assert not queue.running

    async def test_enqueue_after_stop(self, make_queue) -> None:
        queue = make_queue()
        queue.stop()

        async def job() -> None:
            return None

        with pytest.raises(RuntimeError, match="stopped"):
            queue.enqueue(job)

    async def test_join_waits_for_retries(self, make_queue) -> None:
        queue = make_queue()
        calls = 0

        async def flaky() -> None:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise ConnectionError("blip")

        future = queue.enqueue(flaky)
        await queue.join()
        assert future.done()
        assert calls == 3
