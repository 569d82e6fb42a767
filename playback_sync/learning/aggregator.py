"""Pattern Aggregator.

Keeps per-word compensation statistics combining the current session with
history reloaded from the Metric Store, predicts per-word compensation
from them, and periodically prunes weak patterns and recomputes learning
metrics.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, fields
from datetime import UTC, datetime
from typing import Any

from playback_sync.config import AggregatorConfig
from playback_sync.estimator.statistics import clamp01
from playback_sync.models import WordPattern
from playback_sync.observability.metrics import (
    LearningMetrics,
    StageTimer,
    log_learning_metrics,
)
from playback_sync.storage.metric_store import MetricStoreClient
from playback_sync.utils.scheduler import PeriodicTask

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatternStats:
    total_patterns: int
    active_patterns: int
    most_frequent_word: str | None
    mean_compensation_ms: float


@dataclass(frozen=True)
class WordProgress:
    word: str
    accuracy: float
    frequency: int
    improvement: float


@dataclass(frozen=True)
class ProgressReport:
    """Summary of what the aggregator has learned so far."""

    total_words: int
    mean_accuracy: float
    overall_improvement: float
    last_updated: datetime
    top_words: list[WordProgress]
    high_learning_words: int
    low_learning_words: int
    mean_compensation_ms: float
    trend: str


@dataclass(frozen=True)
class Recommendation:
    kind: str
    priority: str
    description: str
    action: str


def observation_from_row(row: dict[str, Any]) -> tuple[str, float, str, float]:
    """Extract (word, compensation_ms, context, playback_rate) from a stored observation.

    Raises:
        KeyError: If the row lacks the word or its times.
        TypeError, ValueError: If the times are not numeric.
    """
    word = row["word"]
    compensation_ms = (float(row["timestamp"]) - float(row["start_time"])) * 1000.0
    return (
        word,
        compensation_ms,
        row.get("context") or "",
        float(row.get("playback_rate") or 1.0),
    )


class PatternAggregator:
    """Per-word pattern learning with optional remote persistence.

    Args:
        store: Metric Store Client for history and persistence. Without
            one the aggregator learns from the session only.
        config: Aggregation tuning.
    """

    def __init__(
        self,
        store: MetricStoreClient | None = None,
        config: AggregatorConfig | None = None,
    ) -> None:
        self.store = store
        self.config = config or AggregatorConfig()
        self.patterns: dict[str, WordPattern] = {}
        self.metrics = LearningMetrics()
        self.is_learning = False
        self.initialized = False
        self._background: set[asyncio.Task] = set()
        self._ticker: PeriodicTask | None = None

    def analyze_record(
        self,
        word: str,
        compensation_ms: float,
        context: str = "",
        playback_rate: float = 1.0,
        persist: bool = True,
    ) -> WordPattern | None:
        """Fold one observation into the word's pattern.

        When `persist` is set and a store is configured, the aggregate is
        written in the background; this must then run inside the event loop.
        """
        key = word.strip().lower()
        if not key:
            return None
        pattern = self.patterns.get(key)
        if pattern is None:
            pattern = WordPattern(
                word=key,
                compensation_mean_ms=compensation_ms,
                common_contexts=[context],
                mean_playback_rate=playback_rate,
            )
            self.patterns[key] = pattern
            logger.debug(
                "New pattern",
                extra={"component": "aggregator", "word": key},
            )
        else:
            weight = self.config.recency_weight
            pattern.compensation_mean_ms = (
                pattern.compensation_mean_ms * (1 - weight) + compensation_ms * weight
            )
            pattern.mean_playback_rate = (
                pattern.mean_playback_rate * (1 - weight) + playback_rate * weight
            )
            pattern.usage_frequency += 1
            if context not in pattern.common_contexts:
                pattern.common_contexts.append(context)
                pattern.common_contexts = pattern.common_contexts[
                    -self.config.max_contexts :
                ]

        if persist and self.store is not None:
            accuracy = clamp01(
                1 - abs(pattern.compensation_mean_ms - compensation_ms) / 1000.0
            )
            self._spawn(
                self.store.upsert_learning_record(
                    key, compensation_ms, context, playback_rate, accuracy
                )
            )
        return pattern

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for background persistence to settle."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def predict_compensation(
        self, word: str, context: str = "", playback_rate: float = 1.0
    ) -> float:
        """Compensation in ms learned for `word`, or the default."""
        pattern = self.patterns.get(word.strip().lower())
        if pattern is None or pattern.usage_frequency < self.config.min_samples:
            return self.config.default_compensation_ms
        rate_factor = (
            playback_rate / pattern.mean_playback_rate
            if pattern.mean_playback_rate > 0
            else 1.0
        )
        context_matches = any(
            stored in context or context in stored for stored in pattern.common_contexts
        )
        return pattern.compensation_mean_ms * rate_factor * (1.1 if context_matches else 0.9)

    def _active(self) -> list[WordPattern]:
        return [
            p
            for p in self.patterns.values()
            if p.usage_frequency >= self.config.min_samples
        ]

    def update_metrics(self) -> LearningMetrics:
        active = self._active()
        self.metrics.overall_precision = (
            sum(p.historical_accuracy for p in active) / len(active) if active else 0.0
        )
        self.metrics.words_learned = len(active)
        self.metrics.response_time_improvement = min(95.0, len(active) * 0.5)
        return self.metrics

    def optimize(self) -> int:
        """Recompute metrics, evict weak patterns and report strong ones.

        historical_accuracy is never raised after a pattern is created,
        so the accuracy rule evicts nearly every pattern.

        Returns:
            Number of evicted patterns.
        """
        self.update_metrics()
        weak = [
            key
            for key, p in self.patterns.items()
            if p.usage_frequency < 2 or p.historical_accuracy < 0.3
        ]
        for key in weak:
            del self.patterns[key]
        for pattern in self._active():
            logger.info(
                "Optimized pattern: mean compensation %.2fms",
                pattern.compensation_mean_ms,
                extra={"component": "aggregator", "word": pattern.word},
            )
        return len(weak)

    async def run_learning_cycle(self) -> bool:
        """Analyze observations newer than the last update and optimize.

        Returns:
            False if a cycle was already running, True otherwise.
        """
        if self.is_learning:
            return False
        self.is_learning = True
        try:
            if self.store is not None:
                rows = await self.store.fetch_recent(self.metrics.last_updated)
                for row in rows:
                    try:
                        word, compensation, context, rate = observation_from_row(row)
                    except (KeyError, TypeError, ValueError) as exc:
                        logger.warning(
                            "Skipping malformed observation: %s",
                            exc,
                            extra={"component": "aggregator", "error": str(exc)},
                        )
                        continue
                    self.analyze_record(word, compensation, context, rate, persist=False)
            self.optimize()
            self.metrics.last_updated = datetime.now(UTC)
            log_learning_metrics(self.metrics, len(self._active()))
        except Exception:
            logger.error(
                "Learning cycle failed",
                exc_info=True,
                extra={"component": "aggregator", "operation": "learning_cycle"},
            )
        finally:
            self.is_learning = False
        return True

    async def load_history(self) -> int:
        """Rehydrate patterns from stored observations in paced batches.

        Returns:
            Number of records analyzed.
        """
        if self.store is None:
            return 0
        timer = StageTimer("load_history")
        with timer:
            rows = await self.store.fetch_history(self.config.history_days)
            analyzed = 0
            size = self.config.batch_size
            for start in range(0, len(rows), size):
                batch = rows[start : start + size]
                try:
                    for row in batch:
                        word, compensation, context, rate = observation_from_row(row)
                        self.analyze_record(
                            word, compensation, context, rate, persist=False
                        )
                        analyzed += 1
                except (KeyError, TypeError, ValueError) as exc:
                    logger.warning(
                        "Skipping history batch %d: %s",
                        start // size + 1,
                        exc,
                        extra={"component": "aggregator", "error": str(exc)},
                    )
                if start + size < len(rows):
                    await asyncio.sleep(self.config.batch_pause_seconds)
        logger.info(
            "Loaded %d historical records into %d patterns",
            analyzed,
            len(self.patterns),
            extra={
                "component": "aggregator",
                "operation": "load_history",
                "duration_seconds": round(timer.duration_seconds, 3),
                "sample_count": analyzed,
            },
        )
        return analyzed

    async def initialize(self) -> None:
        """Load history and start the learning cycle. Idempotent."""
        if self.initialized:
            return
        await self.load_history()
        self._start_ticker()
        self.initialized = True

    def _start_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()
        self._ticker = PeriodicTask(
            "learning-cycle",
            self.config.cycle_interval_minutes * 60,
            self.run_learning_cycle,
        )
        self._ticker.start()

    def update_config(self, **changes: Any) -> None:
        """Change tuning fields and restart the learning ticker if running.

        Raises:
            ValueError: If a field name is unknown.
        """
        known = {f.name for f in fields(AggregatorConfig)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown aggregator settings: {', '.join(sorted(unknown))}")
        for name, value in changes.items():
            setattr(self.config, name, value)
        if self._ticker is not None and self._ticker.running:
            self._start_ticker()

    async def force_learning(self) -> bool:
        return await self.run_learning_cycle()

    def stop(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None
        self.is_learning = False
        logger.info("Pattern aggregator stopped", extra={"component": "aggregator"})

    def pattern_stats(self) -> PatternStats:
        active = self._active()
        most_frequent = (
            max(active, key=lambda p: p.usage_frequency).word if active else None
        )
        mean_compensation = (
            sum(p.compensation_mean_ms for p in active) / len(active) if active else 0.0
        )
        return PatternStats(
            total_patterns=len(self.patterns),
            active_patterns=len(active),
            most_frequent_word=most_frequent,
            mean_compensation_ms=mean_compensation,
        )

    def progress_report(self) -> ProgressReport:
        patterns = list(self.patterns.values())
        total = len(patterns)
        top = sorted(
            (
                WordProgress(
                    word=p.word,
                    accuracy=p.historical_accuracy,
                    frequency=p.usage_frequency,
                    improvement=p.historical_accuracy * p.usage_frequency,
                )
                for p in patterns
            ),
            key=lambda w: w.improvement,
            reverse=True,
        )[:10]
        improvement = self.metrics.response_time_improvement
        if improvement > 0.1:
            trend = "increasing"
        elif improvement < -0.1:
            trend = "decreasing"
        else:
            trend = "stable"
        return ProgressReport(
            total_words=total,
            mean_accuracy=(
                sum(p.historical_accuracy for p in patterns) / total if total else 0.0
            ),
            overall_improvement=improvement,
            last_updated=self.metrics.last_updated,
            top_words=top,
            high_learning_words=sum(1 for p in patterns if p.historical_accuracy > 0.8),
            low_learning_words=sum(1 for p in patterns if p.historical_accuracy < 0.5),
            mean_compensation_ms=(
                sum(p.compensation_mean_ms for p in patterns) / total if total else 0.0
            ),
            trend=trend,
        )

    def recommendations(self) -> list[Recommendation]:
        result: list[Recommendation] = []
        low_accuracy = [
            p
            for p in self.patterns.values()
            if p.historical_accuracy < 0.5 and p.usage_frequency > 5
        ]
        if low_accuracy:
            result.append(
                Recommendation(
                    kind="word",
                    priority="high",
                    description=f"{len(low_accuracy)} frequent words with low accuracy",
                    action="Review compensation for frequent low-accuracy words",
                )
            )
        if len(self.patterns) < self.config.min_samples:
            result.append(
                Recommendation(
                    kind="data",
                    priority="medium",
                    description="Too little data for effective learning",
                    action="Keep using playback to collect more observations",
                )
            )
        if self.config.cycle_interval_minutes > 30:
            result.append(
                Recommendation(
                    kind="config",
                    priority="low",
                    description="Learning interval may be too long",
                    action="Reduce cycle_interval_minutes for faster learning",
                )
            )
        return result

    def analyze_transcript(
        self,
        words: list[str],
        processing_time: float = 0.0,
        audio_size: int = 0,
        quality: float = 1.0,
    ) -> int:
        """Seed patterns from a finished transcription.

        Each word gets an estimated compensation of 50 ms per character,
        plus up to 100 ms for low transcription quality and 100 ms for the
        first five words.

        Returns:
            Number of words analyzed.
        """
        analyzed = 0
        for index, word in enumerate(words):
            compensation = round(
                len(word) * 50 + (1 - quality) * 100 + (100 if index < 5 else 0)
            )
            context = " ".join(words[max(0, index - 2) : min(len(words), index + 3)])
            if self.analyze_record(word, compensation, context, 1.0) is not None:
                analyzed += 1
        logger.info(
            "Analyzed transcript of %d words from %d bytes of audio",
            len(words),
            audio_size,
            extra={
                "component": "aggregator",
                "operation": "analyze_transcript",
                "duration_seconds": processing_time,
                "sample_count": analyzed,
            },
        )
        return analyzed
