"""Data models shared by the synchronization components.

Times attached to transcript words are in seconds; compensations,
offsets and latencies are in milliseconds.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class WordTimestamp:
    """A transcribed word with its predicted display window."""

    word: str
    start_time: float
    end_time: float
    confidence: float | None = None
    speaker: str | None = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WordTimestamp:
        """Build from a provider record using startTime/endTime or start/end keys.

        Raises:
            ValueError: If the word or its times are missing.
        """
        word = data.get("word")
        if word is None:
            raise ValueError("Missing 'word' in timestamp record")
        start = data.get("startTime", data.get("start"))
        end = data.get("endTime", data.get("end"))
        if start is None or end is None:
            raise ValueError(f"Missing start/end time for word '{word}'")
        confidence = data.get("confidence")
        return cls(
            word=str(word),
            start_time=float(start),
            end_time=float(end),
            confidence=float(confidence) if confidence is not None else None,
            speaker=data.get("speaker"),
        )


@dataclass(frozen=True)
class InteractionSample:
    """Ground truth about one word alignment, observed from a user action."""

    expected_time: float
    actual_time: float
    observed_at: float

    @property
    def offset_ms(self) -> float:
        return (self.actual_time - self.expected_time) * 1000.0


@dataclass
class SyncPattern:
    """Global synchronization estimate maintained by the estimator."""

    average_delay_ms: float = 0.0
    confidence: float = 0.0
    sample_count: int = 0
    last_updated: float = 0.0


@dataclass
class SyncMetrics:
    """Interaction buffer and latency state of the estimator."""

    interactions: list[InteractionSample] = field(default_factory=list)
    audio_latency_ms: float = 100.0
    system_delay_ms: float = 50.0


@dataclass(frozen=True)
class SyncSnapshot:
    """Read-only view of the estimator state exposed to the app shell."""

    average_delay: float
    confidence: float
    samples: int
    audio_latency: float
    last_updated: float

    def as_dict(self) -> dict[str, float]:
        return {
            "averageDelay": self.average_delay,
            "confidence": self.confidence,
            "samples": self.samples,
            "audioLatency": self.audio_latency,
            "lastUpdated": self.last_updated,
        }


@dataclass
class WordPattern:
    """Session and historical statistics for one lowercase word."""

    word: str
    compensation_mean_ms: float
    usage_frequency: int = 1
    common_contexts: list[str] = field(default_factory=list)
    mean_playback_rate: float = 1.0
    historical_accuracy: float = 0.0


@dataclass
class RemoteMetricRecord:
    """One `learning_data` row: the persisted aggregate for a word."""

    word: str
    expected_time_ms: float
    actual_time_ms: float
    user_accuracy: float
    context: str = ""
    word_embedding: list[float] | None = None
    context_embedding: list[float] | None = None
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> RemoteMetricRecord:
        return cls(
            word=row["word"],
            expected_time_ms=float(row.get("expected_time") or 0.0),
            actual_time_ms=float(row.get("actual_time") or 0.0),
            user_accuracy=float(row.get("user_accuracy") or 0.0),
            context=row.get("context") or "",
            word_embedding=row.get("word_embedding"),
            context_embedding=row.get("context_embedding"),
            created_at=row.get("created_at"),
        )

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "word": self.word,
            "expected_time": self.expected_time_ms,
            "actual_time": self.actual_time_ms,
            "user_accuracy": self.user_accuracy,
            "context": self.context,
            "word_embedding": self.word_embedding,
            "context_embedding": self.context_embedding,
        }
        if self.created_at is not None:
            row["created_at"] = self.created_at
        return row

    @property
    def mean_compensation_ms(self) -> float:
        return self.expected_time_ms - self.actual_time_ms


@dataclass(frozen=True)
class WordMetrics:
    """Compensation statistics for a word as read back from the store."""

    word: str
    mean_compensation_ms: float
    confidence: float
    sample_count: int = 1
    last_updated: str | None = None

    @classmethod
    def from_record(cls, record: RemoteMetricRecord) -> WordMetrics:
        return cls(
            word=record.word,
            mean_compensation_ms=record.mean_compensation_ms,
            confidence=record.user_accuracy,
            last_updated=record.created_at,
        )


@dataclass(frozen=True)
class WordContext:
    """Where a word sits in the transcript being played."""

    word: str
    position: int
    sentence: str
    previous_word: str | None = None
    next_word: str | None = None

    def to_key(self) -> str:
        """Compact JSON rendering used as the stored context string."""
        return json.dumps(
            {
                "posicao": self.position,
                "frase": self.sentence[:100],
                "palavraAnterior": self.previous_word,
                "proximaPalavra": self.next_word,
            },
            ensure_ascii=False,
        )

    @classmethod
    def from_transcript(
        cls, transcript: list[WordTimestamp], index: int, window: int = 3
    ) -> WordContext:
        """Context of transcript[index] with `window` words on each side."""
        start = max(0, index - window)
        end = min(len(transcript), index + window + 1)
        return cls(
            word=transcript[index].word,
            position=index,
            sentence=" ".join(item.word for item in transcript[start:end]),
            previous_word=transcript[index - 1].word if index > 0 else None,
            next_word=(
                transcript[index + 1].word if index < len(transcript) - 1 else None
            ),
        )


@dataclass(frozen=True)
class SyncObservation:
    """One raw playback observation destined for `word_timestamps`."""

    word: str
    actual_time: float
    expected_time: float
    context: str = ""
    playback_rate: float = 1.0

    def to_row(self) -> dict[str, Any]:
        return {
            "word": self.word.lower(),
            "timestamp": self.actual_time,
            "start_time": self.expected_time,
            "context": self.context,
            "playback_rate": self.playback_rate,
        }


class PredictionSource(str, Enum):
    HISTORICAL = "historical"
    SIMILAR = "similar"
    DEFAULT = "default"


@dataclass(frozen=True)
class CompensationPrediction:
    """A blended per-word compensation and how much to trust it."""

    compensation_ms: float
    confidence: float
    based_on: PredictionSource


@dataclass(frozen=True)
class SimilarWord:
    word: str
    context: str
    similarity: float


@dataclass(frozen=True)
class SimilarTranscript:
    id: int
    file_name: str
    text: str
    similarity: float


@dataclass(frozen=True)
class SummaryResult:
    """Outcome of a summarization request."""

    success: bool
    text: str | None = None
    error: str | None = None

