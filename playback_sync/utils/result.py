"""Explicit success/failure values for remote-facing calls.

Remote lookups return a Result instead of burying defaults in except
blocks, so the caller decides which fallback value applies.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from playback_sync.utils.errors import SyncError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a remote operation: a value or a recoverable error."""

    value: T | None = None
    error: SyncError | None = None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: SyncError) -> Result[T]:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        """Return the value on success, `default` on failure."""
        if self.error is not None:
            return default
        return self.value  # type: ignore[return-value]
