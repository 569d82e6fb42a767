"""Tests for playback_sync.observability.metrics module."""

from __future__ import annotations

import json
import time

from playback_sync.observability.metrics import (
    LearningMetrics,
    StageTimer,
    log_learning_metrics,
)


class TestStageTimer:
    """Tests for the StageTimer context manager."""

    def test_measures_duration(self) -> None:
        timer = StageTimer("load_history")
        with timer:
            time.sleep(0.01)
        assert timer.duration_seconds >= 0.01
        assert timer.start_time is not None
        assert timer.end_time >= timer.start_time

    def test_records_duration_on_exception(self) -> None:
        timer = StageTimer("cycle")
        try:
            with timer:
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert timer.end_time is not None


class TestLogLearningMetrics:
    """log_learning_metrics emits one JSON line."""

    def test_emits_json_snapshot(self, capsys) -> None:
        metrics = LearningMetrics(
            overall_precision=0.8, response_time_improvement=1.5, words_learned=3
        )
        log_learning_metrics(metrics, active_patterns=3)

        entry = json.loads(capsys.readouterr().out.strip())
        assert entry["metric_type"] == "learning_cycle"
        assert entry["severity"] == "INFO"
        assert entry["active_patterns"] == 3
        assert entry["words_learned"] == 3
        assert entry["last_updated"] == metrics.last_updated.isoformat()
