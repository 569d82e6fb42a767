"""Composition root for the synchronization engine.

SyncEngine wires the estimator, aggregator, blender, metric store,
ingestion pipeline and providers together and exposes the operations a
player needs during playback.
"""

import logging

from playback_sync.config import Settings
from playback_sync.estimator import SyncEstimator
from playback_sync.learning import PatternAggregator
from playback_sync.models import (
    SummaryResult,
    SyncObservation,
    SyncSnapshot,
    WordContext,
    WordTimestamp,
)
from playback_sync.prediction.blender import PredictionBlender
from playback_sync.prediction.punctuation import PunctuationOffsets
from playback_sync.providers import (
    SummarizationProvider,
    TranscriptionProvider,
    get_summarization_provider,
    get_transcription_provider,
)
from playback_sync.queue.ingestion import IngestionPipeline
from playback_sync.queue.task_queue import TaskQueue
from playback_sync.storage import MetricStoreClient, PatternStoreClient
from playback_sync.storage.embeddings import (
    EmbeddingProvider,
    NullEmbeddingProvider,
    get_embedding_provider,
)
from playback_sync.utils.errors import ProviderError

logger = logging.getLogger(__name__)


def _build_embeddings(settings: Settings) -> EmbeddingProvider:
    if settings.embedding_provider == "null":
        return NullEmbeddingProvider()
    return get_embedding_provider(
        settings.embedding_provider, api_key=settings.huggingface_api_key
    )


class SyncEngine:
    """Playback synchronization façade.

    Without Pattern Store credentials the engine learns from the current
    session only and predictions fall back to punctuation defaults.
    """

    def __init__(
        self,
        settings: Settings,
        store: MetricStoreClient | None = None,
        transcriber: TranscriptionProvider | None = None,
        summarizer: SummarizationProvider | None = None,
        queue: TaskQueue | None = None,
    ) -> None:
        self.settings = settings
        self.queue = queue or (store.queue if store is not None else TaskQueue(settings.queue))
        self.store = store
        self.transcriber = transcriber
        self.summarizer = summarizer
        self.punctuation = PunctuationOffsets()
        self.aggregator = PatternAggregator(store, settings.aggregator)
        self.blender = PredictionBlender(
            aggregator=self.aggregator,
            store=store,
            punctuation=self.punctuation,
            cache_ttl=settings.store.metrics_cache_ttl,
        )
        self.estimator = SyncEstimator(
            settings.estimator, blender=self.blender, punctuation=self.punctuation
        )
        self.ingestion = IngestionPipeline(self._write_observation, settings.ingestion)
        self.ingestion.enabled = store is not None
        self.started = False

    async def _write_observation(self, observation: SyncObservation) -> bool:
        if self.store is None:
            return False
        return await self.store.record_observation(observation)

    async def register_interaction(
        self,
        expected_time: float,
        actual_time: float,
        word: str | None = None,
        context: WordContext | str | None = None,
        playback_rate: float = 1.0,
    ) -> None:
        """Record an observed alignment.

        Times are in seconds. When `word` is given, the observation also
        feeds the word's pattern and is buffered for write-back.
        """
        self.estimator.register_interaction(expected_time, actual_time)
        if not word:
            return
        context_key = context.to_key() if isinstance(context, WordContext) else (context or "")
        self.aggregator.analyze_record(
            word, (actual_time - expected_time) * 1000, context_key, playback_rate
        )
        self.blender.invalidate(word)
        await self.ingestion.add(
            SyncObservation(
                word=word,
                actual_time=actual_time,
                expected_time=expected_time,
                context=context_key,
                playback_rate=playback_rate,
            )
        )

    def correct_timestamps(
        self,
        transcript: list[WordTimestamp],
        current_playback_time: float | None = None,
    ) -> list[WordTimestamp]:
        return self.estimator.correct_timestamps(transcript, current_playback_time)

    async def compute_time_compensation(
        self, current_time: float, word: str | None = None
    ) -> float:
        return await self.estimator.compute_time_compensation(current_time, word)

    def get_metrics(self) -> SyncSnapshot:
        return self.estimator.get_metrics()

    def start_monitoring(self) -> None:
        self.estimator.start_monitoring()

    def reset_patterns(self) -> None:
        self.estimator.reset_patterns()

    async def transcribe(self, audio: bytes, mime_type: str) -> list[WordTimestamp]:
        """Transcribe audio with the configured provider.

        Raises:
            ProviderError: If no provider is configured or the call fails.
        """
        if self.transcriber is None:
            raise ProviderError("No transcription provider configured")
        return await self.transcriber.transcribe(audio, mime_type)

    async def summarize(self, text: str) -> SummaryResult:
        if self.summarizer is None:
            return SummaryResult(success=False, error="No summarization provider configured")
        return await self.summarizer.summarize(text)

    async def start(self) -> None:
        """Rehydrate patterns and start background tickers. Idempotent."""
        if self.started:
            return
        await self.aggregator.initialize()
        if self.store is not None:
            self.ingestion.start()
            self.store.start_pruning()
        self.estimator.start_monitoring()
        self.started = True
        logger.info(
            "Sync engine started",
            extra={"component": "engine", "operation": "start"},
        )

    async def stop(self) -> None:
        """Stop tickers, flush buffered observations and release clients."""
        self.estimator.stop()
        self.aggregator.stop()
        await self.ingestion.stop()
        await self.aggregator.drain()
        self.queue.stop()
        if self.store is not None:
            await self.store.close()
        providers = [self.transcriber]
        if self.summarizer is not self.transcriber:
            providers.append(self.summarizer)
        for provider in providers:
            close = getattr(provider, "close", None)
            if close is not None:
                await close()
        self.started = False
        logger.info(
            "Sync engine stopped",
            extra={"component": "engine", "operation": "stop"},
        )


def build_engine(settings: Settings) -> SyncEngine:
    """Create a SyncEngine from settings.

    The Pattern Store and providers are attached only when their
    credentials are configured.
    """
    engine_store: MetricStoreClient | None = None
    queue = TaskQueue(settings.queue)
    if settings.store_configured:
        engine_store = MetricStoreClient(
            PatternStoreClient(settings.supabase_url, settings.supabase_key),
            _build_embeddings(settings),
            queue,
            settings.store,
        )
    else:
        logger.warning(
            "Pattern Store not configured, learning is session-only",
            extra={"component": "engine", "operation": "build"},
        )

    transcriber: TranscriptionProvider | None = None
    summarizer: SummarizationProvider | None = None
    if settings.gemini_api_key:
        transcriber = get_transcription_provider(
            "gemini", api_key=settings.gemini_api_key, model=settings.gemini_model
        )
        # GeminiProvider implements both interfaces; share one client.
        if isinstance(transcriber, SummarizationProvider):
            summarizer = transcriber
        else:
            summarizer = get_summarization_provider(
                "gemini", api_key=settings.gemini_api_key, model=settings.gemini_model
            )

    return SyncEngine(settings, engine_store, transcriber, summarizer, queue)
