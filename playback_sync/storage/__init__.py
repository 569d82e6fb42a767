"""Pattern Store access: HTTP client, embeddings and the Metric Store Client."""

from playback_sync.storage.metric_store import MetricStoreClient
from playback_sync.storage.pattern_store import PatternStoreClient

__all__ = ["MetricStoreClient", "PatternStoreClient"]
