"""Transcription and summarization providers.

Public API:
    TranscriptionProvider      - ABC for audio to word timestamps.
    SummarizationProvider      - ABC for transcript summaries.
    GeminiProvider             - Gemini REST implementation of both.
    get_transcription_provider - Factory by provider name.
    get_summarization_provider - Factory by provider name.
"""

from playback_sync.providers.gemini import GeminiProvider
from playback_sync.providers.interface import (
    SummarizationProvider,
    TranscriptionProvider,
)
from playback_sync.providers.registry import (
    get_summarization_provider,
    get_transcription_provider,
)

__all__ = [
    "TranscriptionProvider",
    "SummarizationProvider",
    "GeminiProvider",
    "get_transcription_provider",
    "get_summarization_provider",
]
