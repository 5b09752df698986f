"""Caller-side retry for backend operations.

The circuit breaker never retries on its own. Callers that want a retry wrap
the breaker-protected call with retry_with_backoff() or @with_retry; the
default policy asks the error classifier and gives up immediately on
non-retryable kinds (policy, schema, permission) and on an open circuit.
"""

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Optional, ParamSpec, TypeVar

from valorwell.core.circuit_breaker import CircuitOpenError
from valorwell.core.error_classification import classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")
P = ParamSpec("P")

ShouldRetry = Callable[[BaseException, int], bool]


def default_should_retry(error: BaseException, attempt: int) -> bool:
    """Retry only what the classifier marks retryable."""
    if isinstance(error, CircuitOpenError):
        return False
    return classify_error(error).retryable


def backoff_delay(attempt: int, initial_delay: float, max_delay: float) -> float:
    """Delay before the retry that follows attempt (1-based)."""
    return min(initial_delay * (2 ** (attempt - 1)), max_delay)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 4.0,
    should_retry: Optional[ShouldRetry] = None,
    operation_name: str = "operation",
) -> T:
    """
    Call operation up to max_attempts times with exponential backoff.

    The last error is re-raised unchanged once attempts are exhausted or
    should_retry() declines.
    """
    should_retry = should_retry or default_should_retry

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_attempts or not should_retry(e, attempt):
                raise

            delay = backoff_delay(attempt, initial_delay, max_delay)
            logger.warning(
                f"[Retry] {operation_name} failed (attempt {attempt}/{max_attempts}): {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Unexpected state in retry_with_backoff")


def with_retry(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 4.0,
    should_retry: Optional[ShouldRetry] = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator form of retry_with_backoff for async functions."""

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        func_name = getattr(func, "__name__", "unknown")

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry_with_backoff(
                lambda: func(*args, **kwargs),
                max_attempts=max_attempts,
                initial_delay=initial_delay,
                max_delay=max_delay,
                should_retry=should_retry,
                operation_name=func_name,
            )

        return wrapper  # type: ignore[return-value]

    return decorator
