"""Prediction Blender.

Produces a per-word compensation with a confidence by consulting, in
order, the Pattern Aggregator, stored word metrics, similar words, and
finally the punctuation defaults. Results are cached per word.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from playback_sync.learning.aggregator import PatternAggregator
from playback_sync.models import CompensationPrediction, PredictionSource, WordContext
from playback_sync.prediction.punctuation import PunctuationOffsets
from playback_sync.storage.cache import ExpiringCache
from playback_sync.storage.metric_store import MetricStoreClient

logger = logging.getLogger(__name__)

PREDICTION_CACHE_TTL = 30.0
SIMILAR_LIMIT = 3
DEFAULT_CONFIDENCE = 0.2
SIMILAR_CONFIDENCE_FACTOR = 0.7
MIN_STORED_CONFIDENCE = 0.3


class PredictionBlender:
    """Chooses the best available compensation source for a word.

    Args:
        aggregator: Session pattern learner.
        store: Metric Store Client, or None when running without a store.
        punctuation: Offsets for the default prediction.
        clock: Monotonic clock in seconds for the prediction cache.
    """

    def __init__(
        self,
        aggregator: PatternAggregator | None = None,
        store: MetricStoreClient | None = None,
        punctuation: PunctuationOffsets | None = None,
        clock: Callable[[], float] | None = None,
        cache_ttl: float = PREDICTION_CACHE_TTL,
    ) -> None:
        self.aggregator = aggregator
        self.store = store
        self.punctuation = punctuation or PunctuationOffsets()
        self._cache: ExpiringCache[CompensationPrediction] = ExpiringCache(
            cache_ttl, clock or time.monotonic
        )

    async def predict(
        self, word: str, context: WordContext | str | None = None
    ) -> CompensationPrediction:
        """Blended compensation for `word`. Never raises."""
        key = word.strip().lower()
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        try:
            prediction = await self._predict(word, key, context)
        except Exception as exc:
            logger.error(
                "Prediction failed: %s",
                exc,
                extra={"component": "blender", "word": key, "error": str(exc)},
            )
            prediction = CompensationPrediction(0.0, 0.0, PredictionSource.DEFAULT)
        self._cache.set(key, prediction)
        return prediction

    async def _predict(
        self, word: str, key: str, context: WordContext | str | None
    ) -> CompensationPrediction:
        if context and self.aggregator is not None:
            context_key = context.to_key() if isinstance(context, WordContext) else context
            active = self.aggregator.pattern_stats().active_patterns
            if active > 0:
                return CompensationPrediction(
                    compensation_ms=self.aggregator.predict_compensation(
                        key, context_key, 1.0
                    ),
                    confidence=min(0.95, 0.6 + 0.05 * active),
                    based_on=PredictionSource.HISTORICAL,
                )

        if self.store is not None:
            metrics = await self.store.get_word_metrics(key)
            if metrics is not None and metrics.confidence > MIN_STORED_CONFIDENCE:
                return CompensationPrediction(
                    compensation_ms=metrics.mean_compensation_ms,
                    confidence=metrics.confidence,
                    based_on=PredictionSource.HISTORICAL,
                )

            similar = await self._from_similar(key)
            if similar is not None:
                return similar

        return CompensationPrediction(
            compensation_ms=self.punctuation.offset_for(word),
            confidence=DEFAULT_CONFIDENCE,
            based_on=PredictionSource.DEFAULT,
        )

    async def _from_similar(self, key: str) -> CompensationPrediction | None:
        candidates = await self.store.find_similar_words(key, limit=SIMILAR_LIMIT)  # type: ignore[union-attr]
        weighted_sum = 0.0
        weight_total = 0.0
        confidences: list[float] = []
        for candidate in candidates:
            metrics = await self.store.get_word_metrics(candidate.word)  # type: ignore[union-attr]
            if metrics is None:
                continue
            weighted_sum += metrics.mean_compensation_ms * candidate.similarity
            weight_total += candidate.similarity
            confidences.append(metrics.confidence)
        if not confidences or weight_total <= 0:
            return None
        return CompensationPrediction(
            compensation_ms=weighted_sum / weight_total,
            confidence=SIMILAR_CONFIDENCE_FACTOR * sum(confidences) / len(confidences),
            based_on=PredictionSource.SIMILAR,
        )

    def invalidate(self, word: str) -> None:
        self._cache.invalidate(word.strip().lower())
