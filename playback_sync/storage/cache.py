"""Time-bounded in-memory cache used by the store client and blender."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Generic, TypeVar

V = TypeVar("V")


class ExpiringCache(Generic[V]):
    """Mapping whose entries expire `ttl` seconds after being stored.

    Stored values may be None, so lookups distinguish "cached None" from
    "not cached" through `contains()` / the `default` of `get()`.

    Args:
        ttl: Entry lifetime in seconds.
        clock: Monotonic clock in seconds, injectable for tests.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] | None = None) -> None:
        self.ttl = ttl
        self._clock = clock or time.monotonic
        self._entries: dict[str, tuple[float, V]] = {}

    def _fresh(self, key: str) -> tuple[float, V] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry[0] > self.ttl:
            del self._entries[key]
            return None
        return entry

    def contains(self, key: str) -> bool:
        return self._fresh(key) is not None

    def get(self, key: str, default: V | None = None) -> V | None:
        entry = self._fresh(key)
        if entry is None:
            return default
        return entry[1]

    def set(self, key: str, value: V) -> None:
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
