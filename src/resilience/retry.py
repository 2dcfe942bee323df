"""Retry logic with exponential backoff and jitter

Implements the optimistic-concurrency retry loop that:
1. Only retries version conflicts (the full read-modify-write is re-run)
2. Uses exponential backoff with jitter so competing writers spread out
3. Gives up after max retries and surfaces ConflictError

Transient store failures are not retried here; they propagate to the caller.
"""

import asyncio
import random
import logging
from typing import Awaitable, Callable, Any, TypeVar
from functools import wraps

from src.exceptions import ConflictError, VersionConflictError
from src.observability.metrics import record_conflict

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Retry configuration
MAX_RETRIES = 5
BASE_DELAY = 0.05  # seconds
MAX_DELAY = 1.0  # seconds
JITTER = 0.1  # 10% random jitter


def is_retryable_error(exc: Exception) -> bool:
    """
    Determine if a failed attempt should be re-run from scratch.

    Retryable errors:
    - VersionConflictError (another writer committed first)

    Non-retryable errors:
    - Validation failures
    - Missing records
    - Transient store failures (the caller owns that retry policy)

    Args:
        exc: The exception to check

    Returns:
        True if the attempt should be retried, False otherwise
    """
    return isinstance(exc, VersionConflictError)


def calculate_backoff(
    attempt: int,
    base_delay: float = BASE_DELAY,
    max_delay: float = MAX_DELAY,
) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Formula: delay = min(base_delay * (2 ** attempt), max_delay) + jitter
    Jitter is random value between -10% and +10% of delay

    Args:
        attempt: The retry attempt number (0-indexed)

    Returns:
        Delay in seconds

    Example:
        Attempt 0: ~0.05s
        Attempt 1: ~0.1s
        Attempt 2: ~0.2s
    """
    # Exponential backoff
    delay = min(base_delay * (2 ** attempt), max_delay)

    # Add jitter to prevent thundering herd
    jitter_amount = random.uniform(-JITTER * delay, JITTER * delay)
    final_delay = delay + jitter_amount

    return max(final_delay, 0.0)  # Ensure non-negative


async def retry_on_conflict(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
    max_delay: float = MAX_DELAY,
    **kwargs: Any
) -> T:
    """
    Re-run an async read-modify-write until it commits without a conflict.

    func must be safe to re-run: everything it derives is recomputed from a
    fresh read on each attempt.

    Args:
        func: Async function performing one full read-modify-write
        max_retries: Maximum number of retry attempts (default: 5)
        *args, **kwargs: Arguments to pass to func

    Returns:
        Result from func

    Raises:
        ConflictError: conflicts persisted after max_retries retries
        Any non-retryable error from func, unchanged

    Example:
        result = await retry_on_conflict(self._apply_once, user_id, event, max_retries=5)
    """
    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)

        except Exception as e:
            if not is_retryable_error(e):
                raise

            # Record retry attempt
            record_conflict(func.__name__)

            # If this was the last attempt, give up
            if attempt == max_retries:
                logger.error(
                    f"[RETRY] All {max_retries} retries exhausted for {func.__name__}"
                )
                raise ConflictError(
                    message=f"{func.__name__} kept conflicting after {attempt + 1} attempts",
                    attempts=attempt + 1,
                    operation=func.__name__,
                    cause=e,
                ) from e

            # Calculate backoff delay
            backoff = calculate_backoff(attempt, base_delay, max_delay)

            logger.info(
                f"[RETRY] Attempt {attempt + 1}/{max_retries} for {func.__name__} "
                f"after {backoff:.3f}s (error: {type(e).__name__})"
            )

            # Wait before retrying
            await asyncio.sleep(backoff)

    # Unreachable: the loop either returns or raises
    raise ConflictError(message=f"{func.__name__} did not run", attempts=0)


def with_conflict_retry(max_retries: int = MAX_RETRIES) -> Callable:
    """
    Decorator to add conflict retry logic to async functions.

    Args:
        max_retries: Maximum number of retry attempts (default: 5)

    Returns:
        Decorator function

    Example:
        @with_conflict_retry(max_retries=3)
        async def bump_counter():
            # read, modify, compare-and-swap
            pass
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry_on_conflict(func, *args, max_retries=max_retries, **kwargs)
        return wrapper
    return decorator
