"""Ingestion Pipeline.

Buffers playback observations and writes them back to the Metric Store
in concurrent batches, decoupling real-time playback from remote write
latency. A batch is flushed when the buffer is full, when the flush
interval has elapsed on add(), or on the periodic flush tick.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from playback_sync.config import IngestionConfig
from playback_sync.models import SyncObservation
from playback_sync.utils.scheduler import PeriodicTask

logger = logging.getLogger(__name__)

Writer = Callable[[SyncObservation], Awaitable[bool]]


class IngestionPipeline:
    """Bounded buffer of observations with batched write-back.

    Failed writes are logged individually and never requeued; retries
    happen per task inside the task queue.

    Args:
        writer: Coroutine persisting one observation, typically
            MetricStoreClient.record_observation.
        config: Buffer size and flush interval.
        clock: Monotonic clock in seconds.
    """

    def __init__(
        self,
        writer: Writer,
        config: IngestionConfig | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._writer = writer
        self.config = config or IngestionConfig()
        self._clock = clock or time.monotonic
        self._buffer: list[SyncObservation] = []
        self._last_flush = self._clock()
        self.enabled = True
        self.flushed = 0
        self.failed = 0
        self._ticker = PeriodicTask(
            "ingestion-flush", self.config.flush_interval_seconds, self.flush
        )

    @property
    def pending(self) -> int:
        return len(self._buffer)

    async def add(self, observation: SyncObservation) -> None:
        """Buffer an observation, flushing if the buffer is full or stale."""
        if not self.enabled:
            return
        self._buffer.append(observation)
        elapsed = self._clock() - self._last_flush
        if (
            len(self._buffer) >= self.config.buffer_size
            or elapsed >= self.config.flush_interval_seconds
        ):
            await self.flush()

    async def flush(self) -> int:
        """Write every buffered observation concurrently.

        Returns:
            Number of observations written successfully.
        """
        self._last_flush = self._clock()
        if not self._buffer:
            return 0
        batch, self._buffer = self._buffer, []

        results = await asyncio.gather(
            *(self._writer(observation) for observation in batch),
            return_exceptions=True,
        )

        written = 0
        for observation, result in zip(batch, results):
            if isinstance(result, BaseException):
                self.failed += 1
                logger.error(
                    "Failed to write observation: %s",
                    result,
                    extra={
                        "component": "ingestion",
                        "word": observation.word,
                        "error": str(result),
                    },
                )
            elif result is False:
                self.failed += 1
                logger.warning(
                    "Observation was not stored",
                    extra={"component": "ingestion", "word": observation.word},
                )
            else:
                written += 1
        self.flushed += written
        logger.debug(
            "Flushed %d/%d observations",
            written,
            len(batch),
            extra={"component": "ingestion", "sample_count": len(batch)},
        )
        return written

    def start(self) -> None:
        self._ticker.start()

    async def stop(self) -> None:
        """Stop the ticker and flush what is left in the buffer."""
        self._ticker.stop()
        await self.flush()
