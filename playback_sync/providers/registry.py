"""Provider registry with configuration-driven selection.

Use get_transcription_provider() / get_summarization_provider() to
instantiate a provider by name.
"""

from playback_sync.providers.gemini import GeminiProvider
from playback_sync.providers.interface import (
    SummarizationProvider,
    TranscriptionProvider,
)
from playback_sync.utils.errors import ProviderError

TRANSCRIPTION_PROVIDERS: dict[str, type[TranscriptionProvider]] = {
    "gemini": GeminiProvider,
}

SUMMARIZATION_PROVIDERS: dict[str, type[SummarizationProvider]] = {
    "gemini": GeminiProvider,
}


def _lookup(registry: dict, provider: str, kind: str) -> type:
    provider_cls = registry.get(provider)
    if not provider_cls:
        available = ", ".join(sorted(registry.keys()))
        raise ProviderError(
            f"Unknown {kind} provider: '{provider}'. Available: {available}",
            provider=provider,
        )
    return provider_cls


def get_transcription_provider(provider: str, **kwargs: object) -> TranscriptionProvider:
    """Create a transcription provider by name.

    Raises:
        ProviderError: If the provider name is not registered.
    """
    return _lookup(TRANSCRIPTION_PROVIDERS, provider, "transcription")(**kwargs)


def get_summarization_provider(provider: str, **kwargs: object) -> SummarizationProvider:
    """Create a summarization provider by name.

    Raises:
        ProviderError: If the provider name is not registered.
    """
    return _lookup(SUMMARIZATION_PROVIDERS, provider, "summarization")(**kwargs)
