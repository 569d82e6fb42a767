"""Pattern Store HTTP client.

Thin async wrapper over the Supabase PostgREST API exposing table
select/insert/update/delete and RPC calls. Filters use PostgREST operator
syntax, e.g. {"word": "eq.hello", "created_at": "gte.2024-01-01"}.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from playback_sync.utils.errors import StoreError

logger = logging.getLogger(__name__)


class PatternStoreClient:
    """Client for the remote Pattern Store.

    Reads configuration from environment variables when not passed:
        SUPABASE_URL, SUPABASE_ANON_KEY
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = (url or os.environ.get("SUPABASE_URL", "")).rstrip("/")
        self.api_key = api_key or os.environ.get("SUPABASE_ANON_KEY", "")

        if not self.url:
            raise StoreError("SUPABASE_URL is required", operation="init")
        if not self.api_key:
            raise StoreError("SUPABASE_ANON_KEY is required", operation="init")

        self._client = client or httpx.AsyncClient(timeout=30.0)

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def close(self) -> None:
        """Close the shared HTTP client and release connection pool."""
        await self._client.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        operation: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        url = f"{self.url}/rest/v1/{path}"
        try:
            response = await self._client.request(
                method,
                url,
                headers=self._headers(prefer),
                params=params,
                json=json,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise StoreError(
                f"Pattern Store {operation} on '{path}' failed: "
                f"HTTP {exc.response.status_code}",
                operation=operation,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise StoreError(
                f"Pattern Store {operation} on '{path}' failed: {exc}",
                operation=operation,
            ) from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise StoreError(
                f"Pattern Store {operation} on '{path}' returned a non-JSON body",
                operation=operation,
                status_code=response.status_code,
            ) from exc

    async def select(
        self,
        table: str,
        filters: dict[str, str] | None = None,
        columns: str = "*",
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Select rows from `table`.

        Args:
            table: Table name.
            filters: Column to PostgREST filter expression.
            columns: Comma-separated column list.
            order: Ordering such as "created_at.desc".
            limit: Maximum number of rows.

        Raises:
            StoreError: If the request fails.
        """
        params: dict[str, Any] = {"select": columns, **(filters or {})}
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = limit
        rows = await self._send("GET", table, "select", params=params)
        return rows or []

    async def insert(
        self, table: str, rows: dict[str, Any] | list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Insert one or more rows and return them as stored.

        Raises:
            StoreError: If the request fails.
        """
        result = await self._send(
            "POST", table, "insert", json=rows, prefer="return=representation"
        )
        return result or []

    async def update(
        self, table: str, values: dict[str, Any], filters: dict[str, str]
    ) -> list[dict[str, Any]]:
        """Update the rows matching `filters`.

        Raises:
            StoreError: If the request fails or no filter is given.
        """
        if not filters:
            raise StoreError("Refusing to update without filters", operation="update")
        result = await self._send(
            "PATCH",
            table,
            "update",
            params=filters,
            json=values,
            prefer="return=representation",
        )
        return result or []

    async def delete(self, table: str, filters: dict[str, str]) -> None:
        """Delete the rows matching `filters`.

        Raises:
            StoreError: If the request fails or no filter is given.
        """
        if not filters:
            raise StoreError("Refusing to delete without filters", operation="delete")
        await self._send("DELETE", table, "delete", params=filters)

    async def rpc(self, function: str, params: dict[str, Any]) -> Any:
        """Call a stored function.

        Raises:
            StoreError: If the request fails.
        """
        return await self._send("POST", f"rpc/{function}", "rpc", json=params)
