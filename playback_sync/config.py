"""Configuration for the synchronization engine.

Tuning parameters live in per-component dataclasses. Connection settings
are read from environment variables by Settings.from_env().
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from playback_sync.utils.errors import ConfigError


@dataclass
class EstimatorConfig:
    """Tuning for the Synchronization Estimator.

    learning_rate and confidence_threshold are adjusted at runtime by the
    real-time monitor and stay within their *_min / *_max bounds.
    """

    max_samples: int = 50
    learning_rate: float = 0.1
    learning_rate_min: float = 0.05
    learning_rate_max: float = 0.3
    reset_learning_rate: float = 0.15
    confidence_threshold: float = 0.7
    confidence_threshold_min: float = 0.3
    confidence_threshold_max: float = 0.7
    initial_audio_latency_ms: float = 100.0
    system_delay_ms: float = 50.0
    latency_min_ms: float = -500.0
    latency_max_ms: float = 1000.0
    emergency_latency_min_ms: float = -300.0
    emergency_latency_max_ms: float = 800.0
    decay_ms: float = 30_000.0
    calibration_interval_ms: float = 30_000.0
    monitor_interval_seconds: float = 2.0
    recent_window_ms: float = 10_000.0
    emergency_jump_ms: float = 300.0


@dataclass
class AggregatorConfig:
    """Tuning for the Pattern Aggregator."""

    min_samples: int = 5
    recency_weight: float = 0.7
    history_days: int = 30
    cycle_interval_minutes: float = 15.0
    batch_size: int = 20
    batch_pause_seconds: float = 0.2
    default_compensation_ms: float = 100.0
    max_contexts: int = 5


@dataclass
class StoreConfig:
    """Caching, retry and retention for the Metric Store Client."""

    metrics_cache_ttl: float = 30.0
    similar_cache_ttl: float = 60.0
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 5.0
    default_compensation_ms: float = 100.0
    recency_weight: float = 0.7
    retention_days: int = 30
    prune_interval_seconds: float = 24 * 60 * 60
    history_limit: int = 1000
    recent_limit: int = 500


@dataclass
class QueueConfig:
    """Concurrency bounds for the remote task queue."""

    max_concurrency: int = 3
    spacing_seconds: float = 0.1
    timeout_seconds: float = 10.0
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 5.0


@dataclass
class IngestionConfig:
    """Buffering for the Ingestion Pipeline."""

    buffer_size: int = 10
    flush_interval_seconds: float = 5.0


@dataclass
class Settings:
    """Connection settings and component tuning for one engine instance."""

    supabase_url: str = ""
    supabase_key: str = ""
    huggingface_api_key: str = ""
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    embedding_provider: str = "huggingface"
    log_level: str = "INFO"
    estimator: EstimatorConfig = field(default_factory=EstimatorConfig)
    aggregator: AggregatorConfig = field(default_factory=AggregatorConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Settings:
        """Build Settings from environment variables.

        Reads SUPABASE_URL, SUPABASE_ANON_KEY, HUGGINGFACE_API_KEY,
        GEMINI_API_KEY, GEMINI_MODEL, EMBEDDING_PROVIDER, LOG_LEVEL,
        HISTORY_DAYS and LEARNING_INTERVAL_MINUTES.

        Raises:
            ConfigError: If a numeric variable cannot be parsed.
        """
        env = os.environ if environ is None else environ
        settings = cls(
            supabase_url=env.get("SUPABASE_URL", ""),
            supabase_key=env.get("SUPABASE_ANON_KEY", ""),
            huggingface_api_key=env.get("HUGGINGFACE_API_KEY", ""),
            gemini_api_key=env.get("GEMINI_API_KEY", ""),
            gemini_model=env.get("GEMINI_MODEL", "gemini-2.5-flash"),
            embedding_provider=env.get("EMBEDDING_PROVIDER", "huggingface"),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
        history_days = env.get("HISTORY_DAYS")
        if history_days is not None:
            settings.aggregator.history_days = _parse_int(
                "HISTORY_DAYS", history_days
            )
        interval = env.get("LEARNING_INTERVAL_MINUTES")
        if interval is not None:
            settings.aggregator.cycle_interval_minutes = _parse_float(
                "LEARNING_INTERVAL_MINUTES", interval
            )
        return settings

    @property
    def store_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got '{raw}'", setting=name) from exc


def _parse_float(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got '{raw}'", setting=name) from exc
