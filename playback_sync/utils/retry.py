"""Async retry with capped exponential backoff.

Remote reads wrap themselves with retry_with_backoff(); only exceptions
listed in `retryable_exceptions` are treated as transient. Whatever
escapes carries a `_retry_count` attribute so callers can log how many
retries were spent.
"""

import asyncio
import logging
from collections.abc import Callable
from functools import wraps
from typing import Any

logger = logging.getLogger(__name__)


def backoff_delay(
    attempt: int, base_delay: float = 1.0, max_delay: float | None = None
) -> float:
    """Delay before the retry following failed attempt number `attempt`.

    Follows base_delay * 2^attempt, optionally capped at max_delay.
    """
    delay = base_delay * (2**attempt)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


def _is_transient(
    exc: Exception, retryable_exceptions: tuple[type[Exception], ...] | None
) -> bool:
    return retryable_exceptions is None or isinstance(exc, retryable_exceptions)


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float | None = None,
    retryable_exceptions: tuple[type[Exception], ...] | None = None,
) -> Callable:
    """Decorate an async callable so transient failures are retried.

    The callable runs at most `max_retries + 1` times, sleeping
    backoff_delay(attempt) between runs.

    Args:
        max_retries: Retries after the first attempt (default 3).
        base_delay: Seconds before the first retry (default 1.0).
        max_delay: Upper bound for a single delay in seconds (default none).
        retryable_exceptions: Exception types eligible for retry. None
            retries everything; anything else is re-raised at once.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    if not _is_transient(exc, retryable_exceptions) or (
                        attempt >= max_retries
                    ):
                        exc._retry_count = attempt  # type: ignore[attr-defined]
                        raise
                    delay = backoff_delay(attempt, base_delay, max_delay)
                    logger.warning(
                        "Retry %d/%d for %s in %.1fs: %s",
                        attempt + 1,
                        max_retries,
                        func.__name__,
                        delay,
                        exc,
                        extra={"operation": func.__name__, "error": str(exc)},
                    )
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
