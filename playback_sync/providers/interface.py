"""Abstract provider interfaces for transcription and summarization.

Concrete implementations (e.g., Gemini) subclass these ABCs.
"""

from abc import ABC, abstractmethod

from playback_sync.models import SummaryResult, WordTimestamp


class TranscriptionProvider(ABC):
    """Turns audio into word-level timestamps."""

    @abstractmethod
    async def transcribe(self, audio: bytes, mime_type: str) -> list[WordTimestamp]:
        """Transcribe audio.

        Args:
            audio: Raw audio bytes.
            mime_type: Audio MIME type, e.g. "audio/mpeg".

        Returns:
            Words with start and end times in seconds.

        Raises:
            ProviderError: On any provider failure.
        """


class SummarizationProvider(ABC):
    """Produces a short summary of a transcript."""

    @abstractmethod
    async def summarize(self, text: str) -> SummaryResult:
        """Summarize `text`.

        Returns:
            SummaryResult carrying the summary or the failure reason.

        Raises:
            ProviderAuthError: If the API key is rejected.
        """
