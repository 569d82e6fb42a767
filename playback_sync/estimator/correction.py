"""Timestamp correction strategies.

Word times are in seconds while every compensation term is computed in
milliseconds, so each strategy converts once when shifting a word.
Punctuation delays are never applied here; they only enter through
SyncEstimator.compute_time_compensation().
"""

from dataclasses import replace

from playback_sync.estimator import statistics
from playback_sync.models import WordTimestamp

CONTEXT_WINDOW = 3
EXPECTED_INTERVAL_MS = 500.0
SMOOTHING_GAP_MS = 50.0
POSITION_DECAY = 0.3
PREDICTIVE_WEIGHT = 0.3
TREND_WEIGHT = 0.2


def basic_correction(
    transcript: list[WordTimestamp], audio_latency_ms: float
) -> list[WordTimestamp]:
    """Shift every word earlier by the audio latency.

    Starts are floored at 0 and ends never move before the original start.
    """
    shift = audio_latency_ms / 1000.0
    return [
        replace(
            word,
            start_time=max(0.0, word.start_time - shift),
            end_time=max(word.start_time, word.end_time - shift),
        )
        for word in transcript
    ]


def position_factor(index: int, total: int) -> float:
    """Correction strength, decaying linearly by up to 30% along the transcript."""
    return 1.0 - (index / total) * POSITION_DECAY


def local_trend(transcript: list[WordTimestamp]) -> float:
    """Deviation of the mean inter-onset interval from 500 ms, scaled down by 1000."""
    if len(transcript) < 3:
        return 0.0
    intervals = [
        (transcript[i].start_time - transcript[i - 1].start_time) * 1000.0
        for i in range(1, len(transcript))
    ]
    return (statistics.mean(intervals) - EXPECTED_INTERVAL_MS) / 1000.0


def predictive_correction(transcript: list[WordTimestamp], index: int) -> float:
    """Relative duration deviation from the surrounding window, in ms."""
    start = max(0, index - CONTEXT_WINDOW)
    end = min(len(transcript), index + CONTEXT_WINDOW + 1)
    window = transcript[start:end]
    mean_duration = statistics.mean([w.duration for w in window])
    if mean_duration == 0:
        return 0.0
    return (transcript[index].duration - mean_duration) / mean_duration * 100.0


def temporal_smoothing(
    transcript: list[WordTimestamp], index: int
) -> tuple[float, float]:
    """Start and end adjustments in ms from the gaps to neighbouring words."""
    if index == 0 or index == len(transcript) - 1:
        return 0.0, 0.0
    word = transcript[index]
    gap_previous = (word.start_time - transcript[index - 1].end_time) * 1000.0
    gap_next = (transcript[index + 1].start_time - word.end_time) * 1000.0
    start_adjust = -gap_previous * 0.5 if gap_previous < SMOOTHING_GAP_MS else 0.0
    end_adjust = gap_next * 0.5 if gap_next < SMOOTHING_GAP_MS else 0.0
    return start_adjust, end_adjust


def advanced_correction(
    transcript: list[WordTimestamp],
    audio_latency_ms: float,
    average_delay_ms: float,
) -> list[WordTimestamp]:
    """Per-word correction combining base, predictive, trend and smoothing terms."""
    total = len(transcript)
    base = audio_latency_ms + average_delay_ms
    trend = local_trend(transcript)
    corrected: list[WordTimestamp] = []
    for index, word in enumerate(transcript):
        relative = index / total
        adaptive_ms = (
            base * position_factor(index, total)
            + predictive_correction(transcript, index) * PREDICTIVE_WEIGHT
            + trend * relative * TREND_WEIGHT
        )
        start_adjust, end_adjust = temporal_smoothing(transcript, index)
        start = max(0.0, word.start_time + (start_adjust - adaptive_ms) / 1000.0)
        end = max(start, word.end_time + (end_adjust - adaptive_ms) / 1000.0)
        corrected.append(replace(word, start_time=start, end_time=end))
    return corrected
