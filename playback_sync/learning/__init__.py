"""Per-word pattern learning."""

from playback_sync.learning.aggregator import PatternAggregator

__all__ = ["PatternAggregator"]
