"""Tests for the embedding providers."""

import json

import httpx
import pytest

from playback_sync.storage.embeddings import (
    DEFAULT_BASE_URL,
    DEFAULT_MODELS,
    EMBEDDING_DIMENSIONS,
    HuggingFaceEmbeddingProvider,
    NullEmbeddingProvider,
    get_embedding_provider,
    is_zero_vector,
)
from playback_sync.utils.errors import EmbeddingAuthError, EmbeddingError

PRIMARY_URL = f"{DEFAULT_BASE_URL}/{DEFAULT_MODELS[0]}/pipeline/feature-extraction"
FALLBACK_URL = f"{DEFAULT_BASE_URL}/{DEFAULT_MODELS[1]}/pipeline/feature-extraction"


@pytest.fixture
async def provider():
    hf = HuggingFaceEmbeddingProvider(api_key="hf-token")
    yield hf
    await hf.close()


class TestHuggingFace:
    async def test_embeds_with_primary_model(self, provider, httpx_mock) -> None:
        httpx_mock.add_response(url=PRIMARY_URL, method="POST", json=[0.1, 0.2, 0.3])

        vector = await provider.embed("casa")

        assert vector == [0.1, 0.2, 0.3]
        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer hf-token"
        assert json.loads(request.content) == {"inputs": "casa"}

    async def test_nested_response_is_flattened(self, provider, httpx_mock) -> None:
        httpx_mock.add_response(url=PRIMARY_URL, method="POST", json=[[1, 2]])
        assert await provider.embed("casa") == [1.0, 2.0]

    async def test_falls_back_and_remembers_model(self, provider, httpx_mock) -> None:
        """A failing model is skipped and the working one is tried first next time."""
        httpx_mock.add_response(url=PRIMARY_URL, method="POST", status_code=503)
        httpx_mock.add_response(url=FALLBACK_URL, method="POST", json=[0.5])
        httpx_mock.add_response(url=FALLBACK_URL, method="POST", json=[0.6])

        assert await provider.embed("casa") == [0.5]
        assert await provider.embed("rua") == [0.6]
        assert len(httpx_mock.get_requests(url=PRIMARY_URL)) == 1

    async def test_all_models_fail(self, provider, httpx_mock) -> None:
        httpx_mock.add_response(url=PRIMARY_URL, method="POST", status_code=500)
        httpx_mock.add_exception(httpx.ConnectTimeout("slow"), url=FALLBACK_URL)
        with pytest.raises(EmbeddingError, match="All embedding models failed"):
            await provider.embed("casa")

    async def test_html_body_rotates_to_next_model(self, provider, httpx_mock) -> None:
        """A 200 with a non-JSON body counts as a model failure."""
        httpx_mock.add_response(
            url=PRIMARY_URL, method="POST", text="<html>loading</html>"
        )
        httpx_mock.add_response(url=FALLBACK_URL, method="POST", json=[0.5])
        assert await provider.embed("casa") == [0.5]

    async def test_html_body_from_every_model(self, provider, httpx_mock) -> None:
        httpx_mock.add_response(url=PRIMARY_URL, method="POST", text="<html>")
        httpx_mock.add_response(url=FALLBACK_URL, method="POST", text="<html>")
        with pytest.raises(EmbeddingError, match="All embedding models failed"):
            await provider.embed("casa")

    async def test_auth_error_is_not_rotated(self, provider, httpx_mock) -> None:
        httpx_mock.add_response(url=PRIMARY_URL, method="POST", status_code=401)
        with pytest.raises(EmbeddingAuthError):
            await provider.embed("casa")
        assert len(httpx_mock.get_requests()) == 1

    async def test_empty_vector_is_an_error(self, provider, httpx_mock) -> None:
        httpx_mock.add_response(url=PRIMARY_URL, method="POST", json=[])
        httpx_mock.add_response(url=FALLBACK_URL, method="POST", json={"error": "x"})
        with pytest.raises(EmbeddingError):
            await provider.embed("casa")

    async def test_empty_text_rejected(self, provider) -> None:
        with pytest.raises(EmbeddingError, match="empty"):
            await provider.embed("   ")

    async def test_without_key_returns_zero_vector(self) -> None:
        provider = HuggingFaceEmbeddingProvider()
        vector = await provider.embed("casa")
        assert len(vector) == EMBEDDING_DIMENSIONS
        assert is_zero_vector(vector)
        await provider.close()

    def test_requires_a_model(self) -> None:
        with pytest.raises(ValueError):
            HuggingFaceEmbeddingProvider(api_key="k", models=())


class TestRegistry:
    def test_null_provider(self) -> None:
        assert isinstance(get_embedding_provider("null"), NullEmbeddingProvider)

    async def test_huggingface_provider(self) -> None:
        provider = get_embedding_provider("huggingface", api_key="k")
        assert isinstance(provider, HuggingFaceEmbeddingProvider)
        await provider.close()

    def test_unknown_provider(self) -> None:
        with pytest.raises(EmbeddingError, match="Available: huggingface, null"):
            get_embedding_provider("word2vec")


def test_is_zero_vector() -> None:
    assert is_zero_vector(None)
    assert is_zero_vector([])
    assert is_zero_vector([0.0, 0.0])
    assert not is_zero_vector([0.0, 0.1])
