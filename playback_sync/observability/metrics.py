"""Learning metrics collection and reporting.

Provides the LearningMetrics dataclass recomputed by the Pattern
Aggregator, StageTimer for measuring wall-clock durations, and
log_learning_metrics() for emitting a snapshot as one JSON line.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime


@dataclass
class LearningMetrics:
    """Aggregate quality of the learned word patterns."""

    overall_precision: float = 0.0
    response_time_improvement: float = 0.0
    words_learned: int = 0
    last_updated: datetime = field(default_factory=lambda: datetime.now(UTC))


class StageTimer:
    """Context manager that records the wall-clock duration of a stage.

    Usage:
        timer = StageTimer("load_history")
        with timer:
            await load()
        print(timer.duration_seconds)
    """

    def __init__(self, stage_name: str) -> None:
        self.stage_name = stage_name
        self.start_time: datetime | None = None
        self.end_time: datetime | None = None
        self.duration_seconds: float = 0.0
        self._mono_start: float = 0.0

    def __enter__(self) -> StageTimer:
        self.start_time = datetime.now(UTC)
        self._mono_start = time.monotonic()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        elapsed = time.monotonic() - self._mono_start
        self.end_time = datetime.now(UTC)
        self.duration_seconds = elapsed


def log_learning_metrics(metrics: LearningMetrics, active_patterns: int) -> None:
    """Emit a learning metrics snapshot as a single JSON line to stdout.

    Args:
        metrics: Current LearningMetrics.
        active_patterns: Number of patterns in the aggregator's active set.
    """
    payload = asdict(metrics)
    payload["last_updated"] = metrics.last_updated.isoformat()
    entry = {
        "timestamp": datetime.now(UTC).isoformat(),
        "severity": "INFO",
        "metric_type": "learning_cycle",
        "active_patterns": active_patterns,
        **payload,
    }
    print(json.dumps(entry))
