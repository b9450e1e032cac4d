"""Retry logic for storage lock conflicts

Lock conflicts on a contended row are transient:
1. Only lock errors are retried (lock timeout, serialization failure, deadlock)
2. Backoff is short with jitter so colliding writers spread out
3. After the configured attempts the conflict surfaces to the caller
"""

import asyncio
import random
import logging
from typing import Callable, Any, Optional, TypeVar
from functools import wraps
from psycopg import errors as pg_errors

from progress_engine import config
from progress_engine.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Retry configuration
BASE_DELAY = 0.05  # seconds
MAX_DELAY = 1.0  # seconds
JITTER = 0.1  # 10% random jitter


def is_retryable_error(exc: Exception) -> bool:
    """
    Determine if error is a lock conflict that should be retried.

    Retryable errors:
    - ConcurrencyConflictError (already wrapped)
    - psycopg LockNotAvailable, SerializationFailure, DeadlockDetected

    Everything else (validation, not-found, query errors) is raised at once.

    Args:
        exc: The exception to check

    Returns:
        True if error should be retried, False otherwise
    """
    if isinstance(exc, ConcurrencyConflictError):
        return True

    if isinstance(exc, (pg_errors.LockNotAvailable, pg_errors.SerializationFailure, pg_errors.DeadlockDetected)):
        return True

    return False


def calculate_backoff(attempt: int) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Formula: delay = min(BASE_DELAY * (2 ** attempt), MAX_DELAY) + jitter

    Args:
        attempt: The retry attempt number (0-indexed)

    Returns:
        Delay in seconds
    """
    delay = min(BASE_DELAY * (2 ** attempt), MAX_DELAY)

    jitter_amount = random.uniform(-JITTER * delay, JITTER * delay)
    final_delay = delay + jitter_amount

    return max(final_delay, 0.0)


async def retry_with_backoff(
    func: Callable[..., T],
    *args: Any,
    max_retries: int = 1,
    **kwargs: Any
) -> T:
    """
    Retry async function after lock conflicts.

    Args:
        func: Async function to retry
        max_retries: Maximum number of retry attempts
        *args, **kwargs: Arguments to pass to func

    Returns:
        Result from func

    Raises:
        Last exception if all retries exhausted or non-retryable error

    Example:
        result = await retry_with_backoff(queries.apply_challenge_checkin, participant_id, ...)
    """
    from progress_engine.observability.metrics import storage_retries_total

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)

        except Exception as e:
            if not is_retryable_error(e):
                raise

            if attempt == max_retries:
                logger.error(
                    f"[RETRY] All {max_retries} retries exhausted for {func.__name__}"
                )
                raise

            backoff = calculate_backoff(attempt)
            storage_retries_total.labels(operation=func.__name__).inc()

            logger.info(
                f"[RETRY] Attempt {attempt + 1}/{max_retries} for {func.__name__} "
                f"after {backoff:.2f}s (error: {type(e).__name__})"
            )

            await asyncio.sleep(backoff)

    raise RuntimeError("Retry logic failed unexpectedly")


def with_retry(max_retries: Optional[int] = None) -> Callable:
    """
    Decorator to retry async storage operations after lock conflicts.

    Args:
        max_retries: Maximum number of retry attempts (default: LOCK_RETRY_ATTEMPTS)

    Returns:
        Decorator function

    Example:
        @with_retry()
        async def checkin(...):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            retries = config.LOCK_RETRY_ATTEMPTS if max_retries is None else max_retries
            return await retry_with_backoff(func, *args, max_retries=retries, **kwargs)
        return wrapper
    return decorator
