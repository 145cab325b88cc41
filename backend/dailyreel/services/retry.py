"""Bounded retry for async operations"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


def linear_backoff(base: float) -> Callable[[int], float]:
    """Delay of base x attempt seconds (attempt starts at 1)"""
    def backoff(attempt: int) -> float:
        return base * attempt
    return backoff


async def retry_async(
    operation: Callable[[int], Awaitable[T]],
    max_attempts: int,
    backoff: Callable[[int], float],
    is_non_retryable: Callable[[BaseException], bool] = lambda exc: False,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_failure: Optional[Callable[[int, BaseException], None]] = None,
) -> T:
    """Run operation up to max_attempts times

    Args:
        operation: Coroutine function receiving the 1-based attempt number
        max_attempts: Attempts before giving up
        backoff: Delay in seconds after a failed attempt, given its number
        is_non_retryable: Errors for which retrying cannot help; they are raised at once
        sleep: Awaitable sleep, injectable for tests
        on_failure: Called with (attempt, error) for every failed attempt

    Raises:
        The non-retryable error, or the last error once attempts run out
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation(attempt)
        except Exception as exc:
            if on_failure is not None:
                on_failure(attempt, exc)
            if is_non_retryable(exc) or attempt >= max_attempts:
                raise
            delay = backoff(attempt)
            logger.warning(f"Attempt {attempt}/{max_attempts} failed ({type(exc).__name__}: {exc}), retrying in {delay:.2f}s")
            await sleep(delay)
