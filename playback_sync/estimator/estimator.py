"""Synchronization Estimator.

Maintains a decaying estimate of the systematic offset between predicted
and observed word timing, adjusts the audio latency it compensates for,
and corrects transcript timestamps with that model.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from playback_sync.config import EstimatorConfig
from playback_sync.estimator import correction, statistics
from playback_sync.models import (
    InteractionSample,
    SyncMetrics,
    SyncPattern,
    SyncSnapshot,
    WordTimestamp,
)
from playback_sync.prediction.punctuation import PunctuationOffsets
from playback_sync.utils.scheduler import PeriodicTask

if TYPE_CHECKING:
    from playback_sync.prediction.blender import PredictionBlender

logger = logging.getLogger(__name__)

LATENCY_NUDGE_WINDOW = 10
MIN_ANALYSIS_SAMPLES = 3
MIN_CALIBRATION_SAMPLES = 5


def _epoch_ms() -> float:
    return time.time() * 1000.0


@dataclass(frozen=True)
class AnalysisReport:
    """Intermediate values of one analysis pass.

    periodicity is reported for diagnostics only and does not feed any
    correction.
    """

    weighted_mean: float
    trend: float
    periodicity: float
    outliers: list[bool] = field(default_factory=list)
    variance: float = 0.0
    stability: float = 0.0
    consistency: float = 0.0
    confidence: float = 0.0
    adaptive_rate: float = 0.0


class SyncEstimator:
    """Learns the playback offset from user interactions.

    All state mutations happen synchronously on the event loop thread,
    so one analysis pass always completes before the next starts.

    Args:
        config: Tuning parameters. learning_rate and confidence_threshold
            are mutated in place by the real-time monitor.
        blender: Optional per-word predictor consulted by
            compute_time_compensation().
        clock: Returns the current time in epoch milliseconds.
    """

    def __init__(
        self,
        config: EstimatorConfig | None = None,
        blender: PredictionBlender | None = None,
        clock: Callable[[], float] | None = None,
        punctuation: PunctuationOffsets | None = None,
    ) -> None:
        self.config = config or EstimatorConfig()
        self.blender = blender
        self._clock = clock or _epoch_ms
        self.punctuation = punctuation or PunctuationOffsets()
        self.pattern = SyncPattern()
        self.metrics = SyncMetrics(
            audio_latency_ms=self.config.initial_audio_latency_ms,
            system_delay_ms=self.config.system_delay_ms,
        )
        self._buffer: deque[InteractionSample] = deque(maxlen=self.config.max_samples)
        self._last_calibration: float | None = None
        self.last_report: AnalysisReport | None = None
        self._monitor = PeriodicTask(
            "sync-monitor", self.config.monitor_interval_seconds, self.monitor_tick
        )

    @property
    def interactions(self) -> list[InteractionSample]:
        return list(self._buffer)

    @property
    def audio_latency_ms(self) -> float:
        return self.metrics.audio_latency_ms

    def register_interaction(self, expected_time: float, actual_time: float) -> None:
        """Record an observed alignment (times in seconds) and re-analyze."""
        self._buffer.append(
            InteractionSample(
                expected_time=expected_time,
                actual_time=actual_time,
                observed_at=self._clock(),
            )
        )
        self.metrics.interactions = list(self._buffer)
        if len(self._buffer) >= MIN_ANALYSIS_SAMPLES:
            self._analyze()

    def _analyze(self) -> None:
        now = self._clock()
        samples = list(self._buffer)
        offsets = [s.offset_ms for s in samples]
        weights = statistics.temporal_weights(
            [now - s.observed_at for s in samples], self.config.decay_ms
        )

        trend = statistics.linear_trend(offsets)
        periodicity = statistics.autocorrelation_peak(offsets)
        outliers = statistics.iqr_outliers(offsets)
        kept = [i for i, flagged in enumerate(outliers) if not flagged]
        filtered = [offsets[i] for i in kept]
        weighted = statistics.weighted_mean(filtered, [weights[i] for i in kept])

        variance = statistics.variance(filtered)
        stability = statistics.stability(offsets)
        consistency = statistics.consistency(offsets, trend)
        confidence = statistics.clamp01(
            0.4 * (1 - variance / 1000.0) + 0.3 * stability + 0.3 * consistency
        )
        adaptive_rate = self.config.learning_rate * (0.5 + 0.5 * confidence)

        if self.pattern.sample_count == 0:
            self.pattern.average_delay_ms = weighted
        else:
            self.pattern.average_delay_ms = statistics.lerp(
                self.pattern.average_delay_ms, weighted, adaptive_rate
            )
        self.pattern.confidence = statistics.clamp01(
            statistics.lerp(self.pattern.confidence, confidence, self.config.learning_rate)
        )
        self.pattern.sample_count = len(samples)
        self.pattern.last_updated = now

        self.last_report = AnalysisReport(
            weighted_mean=weighted,
            trend=trend,
            periodicity=periodicity,
            outliers=outliers,
            variance=variance,
            stability=stability,
            consistency=consistency,
            confidence=confidence,
            adaptive_rate=adaptive_rate,
        )

        self._adjust_latency(offsets)
        self._maybe_calibrate(offsets, now)

    def _adjust_latency(self, offsets: list[float]) -> None:
        recent = offsets[-LATENCY_NUDGE_WINDOW:]
        mean_offset = statistics.mean(recent)
        trend = statistics.linear_trend(recent)
        factor = min(0.3, self.pattern.confidence * statistics.stability(recent))

        latency = self.metrics.audio_latency_ms
        if abs(mean_offset) > 30:
            latency += mean_offset * factor
        if abs(trend) > 5:
            latency += trend * 10 * factor
        self.metrics.audio_latency_ms = statistics.clamp(
            latency, self.config.latency_min_ms, self.config.latency_max_ms
        )

    def _maybe_calibrate(self, offsets: list[float], now: float) -> None:
        since = now - (self._last_calibration or 0.0)
        if since <= self.config.calibration_interval_ms:
            return
        if len(offsets) < MIN_CALIBRATION_SAMPLES:
            return
        self._calibrate(offsets)
        self._last_calibration = now

    def _calibrate(self, offsets: list[float]) -> None:
        outliers = statistics.iqr_outliers(offsets)
        filtered = [o for o, flagged in zip(offsets, outliers) if not flagged]
        if len(filtered) < MIN_ANALYSIS_SAMPLES:
            return
        target = statistics.mean(filtered)
        blended = statistics.lerp(
            self.metrics.audio_latency_ms,
            target,
            min(0.5, self.pattern.confidence),
        )
        self.metrics.audio_latency_ms = statistics.clamp(
            blended, self.config.latency_min_ms, self.config.latency_max_ms
        )
        logger.info(
            "Calibrated audio latency to %.2fms",
            self.metrics.audio_latency_ms,
            extra={"component": "estimator", "operation": "calibrate"},
        )

    def correct_timestamps(
        self,
        transcript: list[WordTimestamp],
        current_playback_time: float | None = None,
    ) -> list[WordTimestamp]:
        """Return a corrected copy of `transcript`.

        Uses the basic latency shift while confidence is below the
        threshold, the advanced per-word correction otherwise.
        current_playback_time is accepted for interface compatibility.
        """
        if not transcript:
            return []
        if self.pattern.confidence < self.config.confidence_threshold:
            return correction.basic_correction(transcript, self.metrics.audio_latency_ms)
        return correction.advanced_correction(
            transcript, self.metrics.audio_latency_ms, self.pattern.average_delay_ms
        )

    async def compute_time_compensation(
        self, current_time: float, word: str | None = None
    ) -> float:
        """Compensation in ms for highlighting `word` at `current_time`.

        Never raises: a failing prediction falls back to the local estimate.
        """
        latency = self.metrics.audio_latency_ms
        if word and self.blender is not None:
            try:
                prediction = await self.blender.predict(word)
                if prediction.confidence > 0.5:
                    return latency + prediction.compensation_ms
                if prediction.confidence > 0.2:
                    traditional = self._traditional_compensation(word)
                    weight = prediction.confidence
                    return latency + (
                        prediction.compensation_ms * weight
                        + traditional * (1 - weight)
                    )
            except Exception as exc:
                logger.warning(
                    "Prediction lookup failed, using local estimate: %s",
                    exc,
                    extra={"component": "estimator", "word": word, "error": str(exc)},
                )
        return self._traditional_compensation(word)

    def _traditional_compensation(self, word: str | None) -> float:
        compensation = 0.0
        if self.pattern.confidence > 0.5:
            compensation += self.pattern.average_delay_ms
        if word:
            compensation += self.punctuation.offset_for(word)
        return compensation

    def adjust_punctuation_offset(self, kind: str, offset_ms: float) -> float:
        """Change the delay for one punctuation kind. Clamped to [0, 500] ms."""
        return self.punctuation.set(kind, offset_ms)

    def get_metrics(self) -> SyncSnapshot:
        return SyncSnapshot(
            average_delay=self.pattern.average_delay_ms,
            confidence=self.pattern.confidence,
            samples=self.pattern.sample_count,
            audio_latency=self.metrics.audio_latency_ms,
            last_updated=self.pattern.last_updated,
        )

    def start_monitoring(self) -> None:
        """Start the real-time monitor. Repeated calls are no-ops."""
        self._monitor.start()

    def stop(self) -> None:
        self._monitor.stop()

    def reset_patterns(self) -> None:
        self.pattern = SyncPattern(last_updated=self._clock())
        self._buffer.clear()
        self.metrics.interactions = []
        self.metrics.audio_latency_ms = self.config.initial_audio_latency_ms
        self.last_report = None
        logger.info("Sync patterns reset", extra={"component": "estimator"})

    def monitor_tick(self) -> None:
        """Re-examine the last 10 s of interactions and tune parameters."""
        if not self._buffer:
            return
        now = self._clock()
        recent = [
            s for s in self._buffer if now - s.observed_at < self.config.recent_window_ms
        ]
        if len(recent) < 2:
            return
        offsets = [s.offset_ms for s in recent]
        self._tune_parameters(offsets)
        self._detect_anomalies(offsets)

    def _tune_parameters(self, offsets: list[float]) -> None:
        cfg = self.config
        mean_offset = statistics.mean(offsets)
        variance = statistics.variance(offsets)

        if variance > 200:
            cfg.learning_rate = max(cfg.learning_rate_min, cfg.learning_rate * 0.9)
        elif variance < 50:
            cfg.learning_rate = min(cfg.learning_rate_max, cfg.learning_rate * 1.1)

        if abs(mean_offset) < 30 and variance < 100:
            cfg.confidence_threshold = max(
                cfg.confidence_threshold_min, cfg.confidence_threshold - 0.05
            )
        else:
            cfg.confidence_threshold = min(
                cfg.confidence_threshold_max, cfg.confidence_threshold + 0.05
            )

    def _detect_anomalies(self, offsets: list[float]) -> None:
        outliers = statistics.iqr_outliers(offsets)
        if sum(outliers) / len(outliers) > 0.5:
            logger.warning(
                "Too many outliers in recent interactions, partially resetting",
                extra={"component": "estimator", "sample_count": len(offsets)},
            )
            self._partial_reset()

        if len(offsets) >= 3:
            jump = offsets[-1] - offsets[-2]
            if abs(jump) > self.config.emergency_jump_ms:
                logger.warning(
                    "Sudden latency change of %.1fms detected",
                    jump,
                    extra={"component": "estimator", "operation": "emergency_correction"},
                )
                self._emergency_correction(jump)

    def _partial_reset(self) -> None:
        samples = list(self._buffer)
        outliers = statistics.iqr_outliers([s.offset_ms for s in samples])
        stable = [s for s, flagged in zip(samples, outliers) if not flagged]
        self._buffer.clear()
        self._buffer.extend(stable[-5:])
        self.metrics.interactions = list(self._buffer)
        self.pattern.sample_count = len(self._buffer)
        self.pattern.confidence *= 0.7
        self.config.learning_rate = self.config.reset_learning_rate

    def _emergency_correction(self, jump_ms: float) -> None:
        self.metrics.audio_latency_ms = statistics.clamp(
            self.metrics.audio_latency_ms + jump_ms * 0.3,
            self.config.emergency_latency_min_ms,
            self.config.emergency_latency_max_ms,
        )
