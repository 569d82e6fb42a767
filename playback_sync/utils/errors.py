"""Custom exception hierarchy for the playback synchronization engine.

All exceptions inherit from SyncError, enabling targeted handling at the
engine boundary while preserving the failing operation's context.
"""


class SyncError(Exception):
    """Base exception for all synchronization engine errors."""

    def __init__(self, message: str, word: str | None = None) -> None:
        self.word = word
        super().__init__(message)

    def __str__(self) -> str:
        if self.word:
            return f"[word={self.word}] {super().__str__()}"
        return super().__str__()


class ConfigError(SyncError):
    """Raised when required configuration is missing or invalid."""

    def __init__(self, message: str, setting: str | None = None) -> None:
        self.setting = setting
        super().__init__(message)


class StoreError(SyncError):
    """Raised when a Pattern Store operation fails."""

    def __init__(
        self,
        message: str,
        word: str | None = None,
        operation: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.operation = operation
        self.status_code = status_code
        super().__init__(message, word)


class EmbeddingError(SyncError):
    """Raised when an embedding provider cannot produce a vector."""

    def __init__(
        self,
        message: str,
        word: str | None = None,
        model: str | None = None,
    ) -> None:
        self.model = model
        super().__init__(message, word)


class TaskTimeoutError(SyncError):
    """Raised when a queued task exceeds its per-task timeout."""

    def __init__(self, message: str, task_id: str | None = None) -> None:
        self.task_id = task_id
        super().__init__(message)


class ProviderError(SyncError):
    """Raised when a transcription or summarization provider fails."""

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class ProviderAuthError(ProviderError):
    """Raised when a provider rejects the API key. Never retried."""


class ProviderQuotaError(ProviderError):
    """Raised when a provider reports an exhausted quota or rate limit."""


class ProviderResponseError(ProviderError):
    """Raised when a provider returns a response that cannot be parsed."""


class EmbeddingAuthError(EmbeddingError):
    """Raised when the embedding provider rejects the API key."""
