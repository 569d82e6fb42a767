"""Tests for the Ingestion Pipeline."""

from unittest.mock import AsyncMock

from conftest import FakeClock

from playback_sync.config import IngestionConfig
from playback_sync.models import SyncObservation
from playback_sync.queue.ingestion import IngestionPipeline


def _observation(word: str = "ola") -> SyncObservation:
    return SyncObservation(word, actual_time=1.1, expected_time=1.0)


class TestBuffering:
    async def test_flushes_when_buffer_is_full(self) -> None:
        writer = AsyncMock(return_value=True)
        pipeline = IngestionPipeline(writer, IngestionConfig(buffer_size=3), FakeClock())

        await pipeline.add(_observation("a"))
        await pipeline.add(_observation("b"))
        assert writer.await_count == 0
        assert pipeline.pending == 2

        await pipeline.add(_observation("c"))
        assert writer.await_count == 3
        assert pipeline.pending == 0
        assert pipeline.flushed == 3

    async def test_flushes_when_interval_elapsed(self) -> None:
        clock = FakeClock()
        writer = AsyncMock(return_value=True)
        pipeline = IngestionPipeline(writer, IngestionConfig(), clock)

        await pipeline.add(_observation())
        clock.advance(4.5)
        await pipeline.add(_observation())
        assert writer.await_count == 0

        clock.advance(0.5)
        await pipeline.add(_observation())
        assert writer.await_count == 3

    async def test_disabled_pipeline_drops_observations(self) -> None:
        writer = AsyncMock(return_value=True)
        pipeline = IngestionPipeline(writer, IngestionConfig(buffer_size=1), FakeClock())
        pipeline.enabled = False
        await pipeline.add(_observation())
        assert pipeline.pending == 0
        writer.assert_not_awaited()


class TestFlush:
    async def test_failures_are_counted_not_requeued(self) -> None:
        """Exceptions and False results both count as failed writes."""
        results = {"a": True, "b": False}

        async def writer(observation: SyncObservation) -> bool:
            if observation.word == "c":
                raise RuntimeError("store down")
            return results[observation.word]

        pipeline = IngestionPipeline(writer, clock=FakeClock())
        for word in "abc":
            await pipeline.add(_observation(word))

        assert await pipeline.flush() == 1
        assert (pipeline.flushed, pipeline.failed, pipeline.pending) == (1, 2, 0)

    async def test_empty_flush(self) -> None:
        pipeline = IngestionPipeline(AsyncMock(), clock=FakeClock())
        assert await pipeline.flush() == 0

    async def test_stop_flushes_remaining(self) -> None:
        writer = AsyncMock(return_value=True)
        pipeline = IngestionPipeline(writer, clock=FakeClock())
        pipeline.start()
        await pipeline.add(_observation())
        await pipeline.stop()
        writer.assert_awaited_once()
        assert pipeline.pending == 0
