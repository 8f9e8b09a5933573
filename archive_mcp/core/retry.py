"""Retry mechanism with exponential backoff for transient failures."""

import logging
import time
from collections.abc import Callable
from typing import TypeVar

T = TypeVar("T")

logger = logging.getLogger("archive_mcp.retry")


def backoff_delay(
    attempt: int,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    max_delay: float = 60.0,
) -> float:
    """Delay before retry number ``attempt`` (0-based): 1s, 2s, 4s, ... by default."""
    return min(initial_delay * (backoff_factor**attempt), max_delay)


def retry_with_backoff(
    func: Callable[[], T],
    max_attempts: int = 4,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    backoff_factor: float = 2.0,
    retryable_exceptions: tuple[type[Exception], ...] = (
        ConnectionError,
        TimeoutError,
        OSError,
    ),
    on_retry: Callable[[int, float, Exception], None] | None = None,
) -> T:
    """
    Retry a function with exponential backoff.

    Args:
        func: Function to retry (no arguments)
        max_attempts: Total attempts, including the first one
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        backoff_factor: Multiplier for delay after each retry
        retryable_exceptions: Tuple of exception types to retry on
        on_retry: Called as ``on_retry(attempt, delay, error)`` before each sleep

    Returns:
        Result from function call

    Raises:
        Last exception if all retries fail
    """
    for attempt in range(max_attempts):
        try:
            return func()
        except retryable_exceptions as e:
            if attempt >= max_attempts - 1:
                raise
            delay = backoff_delay(attempt, initial_delay, backoff_factor, max_delay)
            if on_retry is not None:
                on_retry(attempt + 1, delay, e)
            else:
                logger.warning("Retrying after %ss: %s", delay, e)
            time.sleep(delay)

    raise RuntimeError("Retry failed without exception")
