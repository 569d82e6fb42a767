"""Text embedding providers.

Embeddings are 384-dimensional sentence vectors used by the Pattern Store's
similarity functions. The Hugging Face provider calls the hosted
feature-extraction pipeline over httpx; the null provider returns zero
vectors, which the Metric Store Client treats as "no embedding".
"""

import logging
from abc import ABC, abstractmethod

import httpx

from playback_sync.utils.errors import EmbeddingAuthError, EmbeddingError

logger = logging.getLogger(__name__)

EMBEDDING_DIMENSIONS = 384
DEFAULT_BASE_URL = "https://router.huggingface.co/hf-inference/models"
DEFAULT_MODELS = (
    "sentence-transformers/all-MiniLM-L6-v2",
    "sentence-transformers/paraphrase-MiniLM-L6-v2",
)


def zero_vector(dimensions: int = EMBEDDING_DIMENSIONS) -> list[float]:
    return [0.0] * dimensions


def is_zero_vector(vector: list[float] | None) -> bool:
    return not vector or all(v == 0 for v in vector)


class EmbeddingProvider(ABC):
    """Abstract base class for text embedding providers."""

    dimensions: int = EMBEDDING_DIMENSIONS

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed `text` into a fixed-size vector.

        Raises:
            EmbeddingError: If no vector can be produced.
        """

    async def close(self) -> None:
        """Release any held resources."""


class NullEmbeddingProvider(EmbeddingProvider):
    """Provider that always returns a zero vector."""

    async def embed(self, text: str) -> list[float]:
        return zero_vector(self.dimensions)


class HuggingFaceEmbeddingProvider(EmbeddingProvider):
    """Hugging Face Inference API feature-extraction client.

    Tries each model in turn, starting from the last one that worked.
    Without an API key every call returns a zero vector.

    Args:
        api_key: Hugging Face access token.
        models: Model ids to try, in order.
        base_url: Inference endpoint prefix.
        client: Optional shared httpx.AsyncClient.
    """

    def __init__(
        self,
        api_key: str = "",
        models: tuple[str, ...] = DEFAULT_MODELS,
        base_url: str = DEFAULT_BASE_URL,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not models:
            raise ValueError("at least one model is required")
        self._api_key = api_key
        self._models = models
        self._base_url = base_url.rstrip("/")
        self._current = 0
        self._client = client or httpx.AsyncClient(timeout=30.0)
        if not api_key:
            logger.warning(
                "HUGGINGFACE_API_KEY not set, embeddings will be zero vectors",
                extra={"component": "embeddings"},
            )

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def close(self) -> None:
        await self._client.aclose()

    async def embed(self, text: str) -> list[float]:
        """Embed `text` with the first model that answers.

        Raises:
            EmbeddingError: If the text is empty, the key is rejected, or
                every model fails.
        """
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")
        if not self._api_key:
            return zero_vector(self.dimensions)

        last_error: Exception | None = None
        for attempt in range(len(self._models)):
            index = (self._current + attempt) % len(self._models)
            model = self._models[index]
            try:
                vector = await self._request(model, text)
            except EmbeddingAuthError:
                raise
            except EmbeddingError as exc:
                last_error = exc
                logger.warning(
                    "Embedding model %s failed: %s",
                    model,
                    exc,
                    extra={"component": "embeddings", "error": str(exc)},
                )
                continue
            self._current = index
            return vector

        raise EmbeddingError(
            f"All embedding models failed: {last_error}", model=self._models[-1]
        )

    async def _request(self, model: str, text: str) -> list[float]:
        url = f"{self._base_url}/{model}/pipeline/feature-extraction"
        try:
            response = await self._client.post(
                url, headers=self._headers(), json={"inputs": text}
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status in (401, 403):
                raise EmbeddingAuthError(
                    f"Hugging Face rejected the API key: HTTP {status}", model=model
                ) from exc
            raise EmbeddingError(f"HTTP {status}", model=model) from exc
        except httpx.RequestError as exc:
            raise EmbeddingError(f"Request failed: {exc}", model=model) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise EmbeddingError("Response is not JSON", model=model) from exc
        return self._parse(body, model)

    @staticmethod
    def _parse(body: object, model: str) -> list[float]:
        if isinstance(body, list) and body and isinstance(body[0], list):
            body = body[0]
        if not isinstance(body, list) or not body:
            raise EmbeddingError("Empty embedding in response", model=model)
        try:
            return [float(v) for v in body]
        except (TypeError, ValueError) as exc:
            raise EmbeddingError("Malformed embedding in response", model=model) from exc


EMBEDDING_PROVIDERS: dict[str, type[EmbeddingProvider]] = {
    "huggingface": HuggingFaceEmbeddingProvider,
    "null": NullEmbeddingProvider,
}


def get_embedding_provider(provider: str, **kwargs: object) -> EmbeddingProvider:
    """Create an embedding provider by name.

    Raises:
        EmbeddingError: If the provider name is not registered.
    """
    provider_cls = EMBEDDING_PROVIDERS.get(provider)
    if not provider_cls:
        available = ", ".join(sorted(EMBEDDING_PROVIDERS.keys()))
        raise EmbeddingError(
            f"Unknown embedding provider: '{provider}'. Available: {available}",
            model=provider,
        )
    return provider_cls(**kwargs)
