"""Shared fixtures: a controllable clock and an in-memory Pattern Store."""

from __future__ import annotations

import copy
import itertools
from collections.abc import AsyncIterator
from typing import Any

import pytest

from playback_sync.config import QueueConfig
from playback_sync.queue.task_queue import TaskQueue
from playback_sync.storage.embeddings import EmbeddingProvider, NullEmbeddingProvider
from playback_sync.utils.errors import StoreError


class FakeClock:
    """Manually advanced clock usable as a seconds or milliseconds source."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, amount: float) -> None:
        self.now += amount


def _matches(row: dict[str, Any], filters: dict[str, str]) -> bool:
    for column, expression in filters.items():
        op, _, operand = expression.partition(".")
        value = row.get(column)
        if op == "eq" and str(value) != operand:
            return False
        if op == "ilike":
            prefix = operand.rstrip("*").lower()
            if not str(value or "").lower().startswith(prefix):
                return False
        if op == "gte" and (value is None or str(value) < operand):
            return False
        if op == "lt" and (value is None or str(value) >= operand):
            return False
    return True


class FakePatternStore:
    """In-memory stand-in for PatternStoreClient.

    Supports the eq/ilike/gte/lt filters and "column.desc" ordering used
    by the Metric Store Client. Set `fail` to make every call raise
    StoreError, and `rpc_results` to script RPC responses.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.rpc_results: dict[str, Any] = {}
        self.rpc_calls: list[tuple[str, dict[str, Any]]] = []
        self.calls: list[tuple[str, str]] = []
        self.fail = False
        self.closed = False
        self._ids = itertools.count(1)

    def _check(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        if self.fail:
            raise StoreError(f"{operation} failed", operation=operation, status_code=503)

    async def select(
        self,
        table: str,
        filters: dict[str, str] | None = None,
        columns: str = "*",
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        self._check("select", table)
        rows = [r for r in self.tables.get(table, []) if _matches(r, filters or {})]
        if order:
            column, _, direction = order.partition(".")
            rows.sort(key=lambda r: r.get(column) or 0, reverse=direction == "desc")
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def insert(self, table: str, rows: dict | list[dict]) -> list[dict[str, Any]]:
        self._check("insert", table)
        items = rows if isinstance(rows, list) else [rows]
        stored = []
        for item in items:
            row = {"id": next(self._ids), **copy.deepcopy(item)}
            self.tables.setdefault(table, []).append(row)
            stored.append(copy.deepcopy(row))
        return stored

    async def update(
        self, table: str, values: dict[str, Any], filters: dict[str, str]
    ) -> list[dict[str, Any]]:
        self._check("update", table)
        updated = []
        for row in self.tables.get(table, []):
            if _matches(row, filters):
                row.update(copy.deepcopy(values))
                updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, table: str, filters: dict[str, str]) -> None:
        self._check("delete", table)
        self.tables[table] = [
            r for r in self.tables.get(table, []) if not _matches(r, filters)
        ]

    async def rpc(self, function: str, params: dict[str, Any]) -> Any:
        self._check("rpc", function)
        self.rpc_calls.append((function, params))
        result = self.rpc_results.get(function, [])
        if isinstance(result, Exception):
            raise result
        return result

    async def close(self) -> None:
        self.closed = True


class FixedEmbeddingProvider(EmbeddingProvider):
    """Returns the same non-zero vector for any text."""

    def __init__(self, value: float = 0.5) -> None:
        self.value = value
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        return [self.value] * self.dimensions


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_store() -> FakePatternStore:
    return FakePatternStore()


@pytest.fixture
async def fast_queue() -> AsyncIterator[TaskQueue]:
    """Task queue with no dispatch spacing and near-zero retry delays."""
    queue = TaskQueue(
        QueueConfig(
            spacing_seconds=0.0,
            timeout_seconds=1.0,
            base_delay=0.001,
            max_delay=0.005,
        )
    )
    yield queue
    queue.stop()


@pytest.fixture
def null_embeddings() -> NullEmbeddingProvider:
    return NullEmbeddingProvider()
