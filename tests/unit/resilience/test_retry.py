"""Unit tests for retry logic"""
import pytest
from psycopg import errors as pg_errors

from progress_engine.exceptions import ConcurrencyConflictError, QueryError
from progress_engine.resilience import retry
from progress_engine.resilience.retry import (
    retry_with_backoff,
    with_retry,
    is_retryable_error,
    calculate_backoff,
    MAX_DELAY,
)


@pytest.fixture
def no_sleep(monkeypatch):
    """Collapse backoff delays to zero"""
    monkeypatch.setattr(retry, "BASE_DELAY", 0.0)


def test_is_retryable_error_lock_conflicts():
    """Test that lock errors are retryable"""
    assert is_retryable_error(ConcurrencyConflictError("Lock conflict", entity="challenge_participants")) == True
    assert is_retryable_error(pg_errors.LockNotAvailable("lock timeout")) == True
    assert is_retryable_error(pg_errors.SerializationFailure("could not serialize")) == True
    assert is_retryable_error(pg_errors.DeadlockDetected("deadlock")) == True


def test_is_retryable_error_non_retryable():
    """Test that non-retryable errors are identified correctly"""
    assert is_retryable_error(ValueError("Bad value")) == False
    assert is_retryable_error(QueryError("Insert failed")) == False
    assert is_retryable_error(pg_errors.UniqueViolation("duplicate key")) == False


def test_calculate_backoff():
    """Test exponential backoff calculation"""
    delay_0 = calculate_backoff(0)
    assert 0.045 <= delay_0 <= 0.055  # 50ms ± 10% jitter

    delay_1 = calculate_backoff(1)
    assert 0.09 <= delay_1 <= 0.11

    delay_2 = calculate_backoff(2)
    assert 0.18 <= delay_2 <= 0.22

    assert delay_1 > delay_0
    assert delay_2 > delay_1


def test_calculate_backoff_max_delay():
    """Test that backoff respects max delay"""
    delay = calculate_backoff(20)
    assert delay <= MAX_DELAY * 1.1


@pytest.mark.asyncio
async def test_retry_with_backoff_success_first_try():
    call_count = 0

    async def successful_function():
        nonlocal call_count
        call_count += 1
        return "success"

    result = await retry_with_backoff(successful_function, max_retries=3)

    assert result == "success"
    assert call_count == 1


@pytest.mark.asyncio
async def test_retry_with_backoff_success_after_retries(no_sleep):
    attempt = 0

    async def flaky_function():
        nonlocal attempt
        attempt += 1
        if attempt < 3:
            raise pg_errors.LockNotAvailable("canceling statement due to lock timeout")
        return "success"

    result = await retry_with_backoff(flaky_function, max_retries=3)

    assert result == "success"
    assert attempt == 3


@pytest.mark.asyncio
async def test_retry_with_backoff_exhausted(no_sleep):
    """Test that retries are exhausted for persistent conflicts"""
    attempt = 0

    async def always_conflicts():
        nonlocal attempt
        attempt += 1
        raise ConcurrencyConflictError("Always locked", entity="challenge_participants")

    with pytest.raises(ConcurrencyConflictError, match="Always locked"):
        await retry_with_backoff(always_conflicts, max_retries=2)

    # initial + 2 retries
    assert attempt == 3


@pytest.mark.asyncio
async def test_retry_with_backoff_non_retryable_error():
    attempt = 0

    async def non_retryable_function():
        nonlocal attempt
        attempt += 1
        raise ValueError("Non-retryable error")

    with pytest.raises(ValueError, match="Non-retryable error"):
        await retry_with_backoff(non_retryable_function, max_retries=3)

    assert attempt == 1


@pytest.mark.asyncio
async def test_with_retry_decorator(no_sleep):
    attempt = 0

    @with_retry(max_retries=2)
    async def flaky_function():
        nonlocal attempt
        attempt += 1
        if attempt < 2:
            raise pg_errors.DeadlockDetected("deadlock detected")
        return "success"

    result = await flaky_function()

    assert result == "success"
    assert attempt == 2


@pytest.mark.asyncio
async def test_with_retry_uses_configured_attempts(no_sleep, monkeypatch):
    """Without max_retries the decorator reads LOCK_RETRY_ATTEMPTS at call time"""
    monkeypatch.setattr("progress_engine.config.LOCK_RETRY_ATTEMPTS", 0)
    attempt = 0

    @with_retry()
    async def always_conflicts():
        nonlocal attempt
        attempt += 1
        raise ConcurrencyConflictError("Locked", entity="challenge_participants")

    with pytest.raises(ConcurrencyConflictError):
        await always_conflicts()

    assert attempt == 1


@pytest.mark.asyncio
async def test_with_retry_preserves_name():
    @with_retry()
    async def apply_checkin():
        return None

    assert apply_checkin.__name__ == "apply_checkin"
