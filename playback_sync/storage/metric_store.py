"""Metric Store Client.

The only component that talks to the Pattern Store. Adds retry with
backoff, short-lived caching, queue-bounded writes and embedding
generation on top of PatternStoreClient. Every operation except
verify_connection() returns a safe default instead of raising.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from playback_sync.config import StoreConfig
from playback_sync.models import (
    RemoteMetricRecord,
    SimilarTranscript,
    SimilarWord,
    SyncObservation,
    WordMetrics,
)
from playback_sync.queue.task_queue import TaskPriority, TaskQueue
from playback_sync.storage.cache import ExpiringCache
from playback_sync.storage.embeddings import (
    EmbeddingProvider,
    is_zero_vector,
    zero_vector,
)
from playback_sync.storage.pattern_store import PatternStoreClient
from playback_sync.utils.errors import EmbeddingError, StoreError
from playback_sync.utils.result import Result
from playback_sync.utils.retry import retry_with_backoff
from playback_sync.utils.scheduler import PeriodicTask

logger = logging.getLogger(__name__)

LEARNING_TABLE = "learning_data"
OBSERVATION_TABLE = "word_timestamps"
TRANSCRIPT_TABLE = "transcricoes"
SIMILAR_WORDS_RPC = "buscar_palavras_similares"
SIMILAR_TRANSCRIPTS_RPC = "buscar_transcricoes_similares"
PREFIX_LENGTH = 3


def _iso_days_ago(days: float) -> str:
    return (datetime.now(UTC) - timedelta(days=days)).isoformat()


def _stored_vector(vector: list[float] | None) -> list[float] | None:
    """Zero vectors are persisted as NULL so similarity functions skip them."""
    if is_zero_vector(vector):
        return None
    return vector


class MetricStoreClient:
    """Cached, retrying access to per-word metrics in the Pattern Store.

    Args:
        store: HTTP client for the Pattern Store.
        embeddings: Provider used for word, context and transcript vectors.
        queue: Task queue bounding concurrent writes.
        config: Cache, retry and retention settings.
        clock: Monotonic clock in seconds used by the caches.
    """

    def __init__(
        self,
        store: PatternStoreClient,
        embeddings: EmbeddingProvider,
        queue: TaskQueue,
        config: StoreConfig | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.store = store
        self.embeddings = embeddings
        self.queue = queue
        self.config = config or StoreConfig()
        clock = clock or time.monotonic
        self._metrics_cache: ExpiringCache[WordMetrics | None] = ExpiringCache(
            self.config.metrics_cache_ttl, clock
        )
        self._similar_cache: ExpiringCache[list[SimilarWord]] = ExpiringCache(
            self.config.similar_cache_ttl, clock
        )
        self._select_record = retry_with_backoff(
            max_retries=self.config.max_attempts - 1,
            base_delay=self.config.base_delay,
            max_delay=self.config.max_delay,
            retryable_exceptions=(StoreError,),
        )(self._select_record_once)
        self._pruner = PeriodicTask(
            "store-prune", self.config.prune_interval_seconds, self.prune_older_than
        )

    async def close(self) -> None:
        self.stop()
        await self.store.close()
        await self.embeddings.close()

    async def _embed(self, text: str) -> list[float]:
        try:
            return await self.embeddings.embed(text)
        except EmbeddingError as exc:
            logger.warning(
                "Embedding failed, using zero vector: %s",
                exc,
                extra={"component": "metric_store", "error": str(exc)},
            )
            return zero_vector(self.embeddings.dimensions)

    async def _select_record_once(self, word: str) -> RemoteMetricRecord | None:
        rows = await self.store.select(
            LEARNING_TABLE, filters={"word": f"eq.{word}"}, limit=1
        )
        if not rows:
            return None
        return RemoteMetricRecord.from_row(rows[0])

    async def lookup_word_metrics(self, word: str) -> Result[WordMetrics | None]:
        """Fetch metrics for `word`, distinguishing "not found" from failure.

        A missing word is a successful None. Both outcomes are cached; a
        terminal failure is returned as Result.failure and not cached.
        """
        key = word.strip().lower()
        if self._metrics_cache.contains(key):
            return Result.success(self._metrics_cache.get(key))
        try:
            record = await self._select_record(key)
        except StoreError as exc:
            logger.error(
                "Metrics lookup failed after retries: %s",
                exc,
                extra={"component": "metric_store", "word": key, "error": str(exc)},
            )
            return Result.failure(exc)
        metrics = WordMetrics.from_record(record) if record is not None else None
        self._metrics_cache.set(key, metrics)
        return Result.success(metrics)

    async def get_word_metrics(self, word: str) -> WordMetrics | None:
        """Metrics for `word`, or None when unknown or unreachable."""
        return (await self.lookup_word_metrics(word)).unwrap_or(None)

    async def upsert_learning_record(
        self,
        word: str,
        compensation_ms: float | None,
        context: str = "",
        playback_rate: float = 1.0,
        accuracy: float | None = None,
    ) -> bool:
        """Merge one observation into the word's `learning_data` row.

        Runs through the task queue with high priority. playback_rate is
        accepted for interface compatibility; the table has no column
        for it.

        Returns:
            True if the row was written, False otherwise.
        """
        if not word or not word.strip():
            logger.warning(
                "Empty word, skipping learning record",
                extra={"component": "metric_store"},
            )
            return False
        key = word.strip().lower()
        if compensation_ms is None or math.isnan(compensation_ms):
            logger.warning(
                "Invalid compensation %r, using default",
                compensation_ms,
                extra={"component": "metric_store", "word": key},
            )
            compensation_ms = self.config.default_compensation_ms
        context = context or ""

        async def write() -> None:
            word_vector = await self._embed(word.strip())
            context_vector = (
                await self._embed(context.strip()) if context.strip() else None
            )
            await self._write_learning_record(
                key, compensation_ms, context, accuracy, word_vector, context_vector
            )

        try:
            await self.queue.submit(write, TaskPriority.HIGH, name=f"upsert:{key}")
        except Exception as exc:
            logger.error(
                "Learning record write failed: %s",
                exc,
                extra={"component": "metric_store", "word": key, "error": str(exc)},
            )
            return False
        finally:
            self._metrics_cache.invalidate(key)
        return True

    async def _write_learning_record(
        self,
        key: str,
        compensation_ms: float,
        context: str,
        accuracy: float | None,
        word_vector: list[float],
        context_vector: list[float] | None,
    ) -> None:
        existing = await self._select_record_once(key)
        if existing is not None:
            weight = self.config.recency_weight
            await self.store.update(
                LEARNING_TABLE,
                {
                    "expected_time": existing.expected_time_ms,
                    "actual_time": existing.actual_time_ms * (1 - weight)
                    + compensation_ms * weight,
                    "user_accuracy": accuracy
                    if accuracy is not None
                    else min(0.95, existing.user_accuracy + 0.05),
                    "context": context,
                    "word_embedding": _stored_vector(word_vector),
                    "context_embedding": _stored_vector(context_vector),
                },
                filters={"word": f"eq.{key}"},
            )
            return
        record = RemoteMetricRecord(
            word=key,
            expected_time_ms=0.0,
            actual_time_ms=compensation_ms,
            user_accuracy=accuracy if accuracy is not None else 0.1,
            context=context,
            word_embedding=_stored_vector(word_vector),
            context_embedding=_stored_vector(context_vector),
        )
        await self.store.insert(LEARNING_TABLE, record.to_row())

    async def record_observation(self, observation: SyncObservation) -> bool:
        """Insert a raw observation into `word_timestamps` (medium priority)."""
        if not observation.word.strip():
            return False

        async def write() -> None:
            await self.store.insert(OBSERVATION_TABLE, observation.to_row())

        try:
            await self.queue.submit(
                write, TaskPriority.MEDIUM, name=f"observation:{observation.word}"
            )
        except Exception as exc:
            logger.error(
                "Observation write failed: %s",
                exc,
                extra={
                    "component": "metric_store",
                    "word": observation.word,
                    "error": str(exc),
                },
            )
            return False
        return True

    async def find_similar_words(
        self, word: str, limit: int = 5, threshold: float = 0.7
    ) -> list[SimilarWord]:
        """Words whose embeddings are close to `word`, best first.

        Falls back to a prefix search on `learning_data` when the word
        has no usable embedding or the similarity RPC fails.
        """
        key = word.strip().lower()
        if not key:
            return []
        cache_key = f"{key}:{limit}:{threshold}"
        cached = self._similar_cache.get(cache_key)
        if cached is not None:
            return cached

        results: list[SimilarWord] | None = None
        vector = await self._embed(key)
        if not is_zero_vector(vector):
            try:
                rows = await self.store.rpc(
                    SIMILAR_WORDS_RPC,
                    {
                        "query_embedding": vector,
                        "similarity_threshold": threshold,
                        "match_count": limit,
                    },
                )
                results = [
                    SimilarWord(
                        word=row["word"],
                        context=row.get("context") or "",
                        similarity=float(row.get("similarity") or 0.0),
                    )
                    for row in rows or []
                ]
            except StoreError as exc:
                logger.warning(
                    "Vector search failed, using prefix search: %s",
                    exc,
                    extra={"component": "metric_store", "word": key, "error": str(exc)},
                )
        if results is None:
            results = await self._prefix_search(key, limit)
            if results is None:
                return []

        self._similar_cache.set(cache_key, results)
        return results

    async def _prefix_search(self, key: str, limit: int) -> list[SimilarWord] | None:
        try:
            rows = await self.store.select(
                LEARNING_TABLE,
                filters={"word": f"ilike.{key[:PREFIX_LENGTH]}*"},
                order="user_accuracy.desc",
                limit=limit,
            )
        except StoreError as exc:
            logger.error(
                "Prefix search failed: %s",
                exc,
                extra={"component": "metric_store", "word": key, "error": str(exc)},
            )
            return None
        similar: list[SimilarWord] = []
        for row in rows:
            record = RemoteMetricRecord.from_row(row)
            self._metrics_cache.set(record.word, WordMetrics.from_record(record))
            similar.append(
                SimilarWord(
                    word=record.word,
                    context=record.context,
                    similarity=record.user_accuracy,
                )
            )
        return similar

    async def find_similar_transcripts(
        self, text: str, limit: int = 5, threshold: float = 0.7
    ) -> list[SimilarTranscript]:
        if not text.strip():
            return []
        vector = await self._embed(text.strip())
        if is_zero_vector(vector):
            return []
        try:
            rows = await self.store.rpc(
                SIMILAR_TRANSCRIPTS_RPC,
                {
                    "query_embedding": vector,
                    "similarity_threshold": threshold,
                    "match_count": limit,
                },
            )
        except StoreError as exc:
            logger.error(
                "Transcript search failed: %s",
                exc,
                extra={"component": "metric_store", "error": str(exc)},
            )
            return []
        return [
            SimilarTranscript(
                id=int(row["id"]),
                file_name=row.get("nome_arquivo") or "",
                text=row.get("transcricao") or "",
                similarity=float(row.get("similarity") or 0.0),
            )
            for row in rows or []
        ]

    async def save_transcript(
        self, file_name: str, text: str, size_bytes: int | None = None
    ) -> bool:
        """Store a full transcript with its embedding in `transcricoes`."""
        cleaned = text.strip()
        if not cleaned:
            logger.warning(
                "Empty transcript, skipping save",
                extra={"component": "metric_store"},
            )
            return False

        async def write() -> None:
            vector = await self._embed(cleaned)
            row: dict[str, Any] = {
                "nome_arquivo": file_name,
                "transcricao": cleaned,
                "tamanho_arquivo": size_bytes,
                "transcricao_embedding": _stored_vector(vector),
            }
            await self.store.insert(TRANSCRIPT_TABLE, row)

        try:
            await self.queue.submit(write, TaskPriority.LOW, name=f"transcript:{file_name}")
        except Exception as exc:
            logger.error(
                "Transcript save failed: %s",
                exc,
                extra={"component": "metric_store", "error": str(exc)},
            )
            return False
        return True

    async def fetch_history(self, days: int | None = None) -> list[dict[str, Any]]:
        """Observations from the last `days` days, newest first."""
        days = self.config.retention_days if days is None else days
        return await self._fetch_observations(
            _iso_days_ago(days), self.config.history_limit, "fetch_history"
        )

    async def fetch_recent(self, since: datetime) -> list[dict[str, Any]]:
        """Observations created at or after `since`, newest first."""
        return await self._fetch_observations(
            since.isoformat(), self.config.recent_limit, "fetch_recent"
        )

    async def _fetch_observations(
        self, since_iso: str, limit: int, operation: str
    ) -> list[dict[str, Any]]:
        try:
            return await self.store.select(
                OBSERVATION_TABLE,
                filters={"created_at": f"gte.{since_iso}"},
                order="created_at.desc",
                limit=limit,
            )
        except StoreError as exc:
            logger.error(
                "Observation fetch failed: %s",
                exc,
                extra={
                    "component": "metric_store",
                    "operation": operation,
                    "error": str(exc),
                },
            )
            return []

    async def prune_older_than(self, days: int | None = None) -> bool:
        """Delete observations older than the retention window."""
        days = self.config.retention_days if days is None else days
        try:
            await self.store.delete(
                OBSERVATION_TABLE, filters={"created_at": f"lt.{_iso_days_ago(days)}"}
            )
        except StoreError as exc:
            logger.error(
                "Pruning failed: %s",
                exc,
                extra={"component": "metric_store", "operation": "prune", "error": str(exc)},
            )
            return False
        logger.info(
            "Pruned observations older than %d days",
            days,
            extra={"component": "metric_store", "operation": "prune"},
        )
        return True

    def start_pruning(self) -> None:
        """Run prune_older_than() on a daily ticker."""
        self._pruner.start()

    def stop(self) -> None:
        self._pruner.stop()

    async def verify_connection(self) -> None:
        """Probe the store.

        Raises:
            StoreError: If the store cannot be reached.
        """
        await self.store.select(LEARNING_TABLE, columns="word", limit=1)

