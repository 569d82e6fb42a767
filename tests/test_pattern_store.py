"""Tests for the Pattern Store HTTP client."""

import json
import re

import httpx
import pytest

from playback_sync.storage.pattern_store import PatternStoreClient
from playback_sync.utils.errors import StoreError

BASE = "https://project.supabase.co"


@pytest.fixture
async def client():
    store = PatternStoreClient(url=BASE + "/", api_key="anon-key")
    yield store
    await store.close()


class TestInit:
    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Connection settings fall back to SUPABASE_URL / SUPABASE_ANON_KEY."""
        monkeypatch.setenv("SUPABASE_URL", "https://env.supabase.co/")
        monkeypatch.setenv("SUPABASE_ANON_KEY", "env-key")
        store = PatternStoreClient()
        assert store.url == "https://env.supabase.co"
        assert store.api_key == "env-key"

    def test_missing_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        with pytest.raises(StoreError, match="SUPABASE_URL") as exc_info:
            PatternStoreClient(api_key="k")
        assert exc_info.value.operation == "init"

    def test_missing_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
        with pytest.raises(StoreError, match="SUPABASE_ANON_KEY"):
            PatternStoreClient(url=BASE)


class TestSelect:
    async def test_sends_filters_and_auth_headers(self, client, httpx_mock) -> None:
        """select() maps filters, order and limit onto query parameters."""
        httpx_mock.add_response(
            url=re.compile(rf"{BASE}/rest/v1/learning_data\?.*"),
            method="GET",
            json=[{"word": "casa"}],
        )

        rows = await client.select(
            "learning_data",
            filters={"word": "eq.casa"},
            order="user_accuracy.desc",
            limit=1,
        )

        assert rows == [{"word": "casa"}]
        request = httpx_mock.get_request()
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["Authorization"] == "Bearer anon-key"
        params = request.url.params
        assert params["select"] == "*"
        assert params["word"] == "eq.casa"
        assert params["order"] == "user_accuracy.desc"
        assert params["limit"] == "1"

    async def test_empty_body_is_empty_list(self, client, httpx_mock) -> None:
        httpx_mock.add_response(method="GET", content=b"")
        assert await client.select("learning_data") == []


class TestWrites:
    async def test_insert_requests_representation(self, client, httpx_mock) -> None:
        httpx_mock.add_response(
            url=f"{BASE}/rest/v1/word_timestamps",
            method="POST",
            status_code=201,
            json=[{"id": 1, "word": "ola"}],
        )

        stored = await client.insert("word_timestamps", {"word": "ola"})

        assert stored == [{"id": 1, "word": "ola"}]
        request = httpx_mock.get_request()
        assert request.headers["Prefer"] == "return=representation"
        assert json.loads(request.content) == {"word": "ola"}

    async def test_update_uses_patch_with_filters(self, client, httpx_mock) -> None:
        httpx_mock.add_response(method="PATCH", json=[])
        await client.update("learning_data", {"actual_time": 170}, {"word": "eq.ola"})
        request = httpx_mock.get_request()
        assert request.method == "PATCH"
        assert request.url.params["word"] == "eq.ola"
        assert json.loads(request.content) == {"actual_time": 170}

    async def test_delete_with_filters(self, client, httpx_mock) -> None:
        httpx_mock.add_response(method="DELETE", status_code=204)
        await client.delete("word_timestamps", {"created_at": "lt.2026-01-01"})
        request = httpx_mock.get_request()
        assert request.url.params["created_at"] == "lt.2026-01-01"

    async def test_update_and_delete_require_filters(self, client) -> None:
        with pytest.raises(StoreError, match="without filters"):
            await client.update("learning_data", {"actual_time": 1}, {})
        with pytest.raises(StoreError, match="without filters"):
            await client.delete("learning_data", {})

    async def test_rpc_posts_params(self, client, httpx_mock) -> None:
        httpx_mock.add_response(
            url=f"{BASE}/rest/v1/rpc/buscar_palavras_similares",
            method="POST",
            json=[{"word": "casas", "similarity": 0.9}],
        )
        result = await client.rpc("buscar_palavras_similares", {"match_count": 3})
        assert result[0]["word"] == "casas"
        assert json.loads(httpx_mock.get_request().content) == {"match_count": 3}


class TestErrors:
    async def test_http_error_carries_status(self, client, httpx_mock) -> None:
        """HTTP errors become StoreError with operation and status code."""
        httpx_mock.add_response(method="GET", status_code=503)
        with pytest.raises(StoreError) as exc_info:
            await client.select("learning_data")
        assert exc_info.value.status_code == 503
        assert exc_info.value.operation == "select"

    async def test_network_error(self, client, httpx_mock) -> None:
        httpx_mock.add_exception(httpx.ConnectError("refused"))
        with pytest.raises(StoreError, match="refused") as exc_info:
            await client.rpc("fn", {})
        assert exc_info.value.status_code is None

    async def test_non_json_body_is_a_store_error(self, client, httpx_mock) -> None:
        """A 200 with an HTML body surfaces as StoreError, not a decode error."""
        httpx_mock.add_response(method="GET", text="<html>maintenance</html>")
        with pytest.raises(StoreError, match="non-JSON") as exc_info:
            await client.select("learning_data")
        assert exc_info.value.operation == "select"
        assert exc_info.value.status_code == 200
