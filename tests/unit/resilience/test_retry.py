"""Unit tests for retry logic"""
import pytest
from src.exceptions import ConflictError, RecordNotFoundError, StoreUnavailableError, VersionConflictError
from src.resilience.retry import (
    retry_on_conflict,
    with_conflict_retry,
    is_retryable_error,
    calculate_backoff,
    MAX_RETRIES,
)


def test_is_retryable_error_version_conflict():
    """Test that version conflicts are retryable"""
    assert is_retryable_error(VersionConflictError("stale")) == True


def test_is_retryable_error_non_retryable():
    """Test that non-retryable errors are identified correctly"""
    assert is_retryable_error(RecordNotFoundError("missing")) == False
    assert is_retryable_error(StoreUnavailableError()) == False
    assert is_retryable_error(ValueError("Bad value")) == False


def test_calculate_backoff():
    """Test exponential backoff calculation"""
    # First attempt: ~0.05s
    delay_0 = calculate_backoff(0)
    assert 0.045 <= delay_0 <= 0.055  # ± 10% jitter

    # Second attempt: ~0.1s
    delay_1 = calculate_backoff(1)
    assert 0.09 <= delay_1 <= 0.11

    # Third attempt: ~0.2s
    delay_2 = calculate_backoff(2)
    assert 0.18 <= delay_2 <= 0.22


def test_calculate_backoff_max_delay():
    """Test that backoff respects max delay"""
    delay = calculate_backoff(20)
    assert delay <= 1.1  # Max 1s + 10% jitter


def test_calculate_backoff_zero_base():
    assert calculate_backoff(3, base_delay=0.0) == 0.0


@pytest.mark.asyncio
async def test_retry_success_first_attempt():
    """Test successful call on first attempt"""
    call_count = 0

    async def bump():
        nonlocal call_count
        call_count += 1
        return "success"

    result = await retry_on_conflict(bump, base_delay=0.0)

    assert result == "success"
    assert call_count == 1


@pytest.mark.asyncio
async def test_retry_success_after_conflicts():
    """Test the operation is re-run until it commits"""
    call_count = 0

    async def bump():
        nonlocal call_count
        call_count += 1
        if call_count < 3:
            raise VersionConflictError("stale")
        return "success"

    result = await retry_on_conflict(bump, base_delay=0.0)

    assert result == "success"
    assert call_count == 3


@pytest.mark.asyncio
async def test_retry_exhausted_raises_conflict():
    """Test ConflictError after max retries"""
    call_count = 0

    async def bump():
        nonlocal call_count
        call_count += 1
        raise VersionConflictError("stale")

    with pytest.raises(ConflictError) as exc_info:
        await retry_on_conflict(bump, max_retries=2, base_delay=0.0)

    assert call_count == 3
    assert exc_info.value.attempts == 3
    assert isinstance(exc_info.value.__cause__, VersionConflictError)


@pytest.mark.asyncio
async def test_retry_non_retryable_error():
    """Test that non-retryable errors fail immediately"""
    call_count = 0

    async def bump():
        nonlocal call_count
        call_count += 1
        raise RecordNotFoundError("missing")

    with pytest.raises(RecordNotFoundError):
        await retry_on_conflict(bump, base_delay=0.0)

    assert call_count == 1


@pytest.mark.asyncio
async def test_retry_passes_arguments():
    async def add(a, b, scale=1):
        return (a + b) * scale

    assert await retry_on_conflict(add, 1, 2, scale=3, base_delay=0.0) == 9


@pytest.mark.asyncio
async def test_with_conflict_retry_decorator():
    """Test decorator version of retry"""
    call_count = 0

    @with_conflict_retry(max_retries=MAX_RETRIES)
    async def bump():
        nonlocal call_count
        call_count += 1
        if call_count < 2:
            raise VersionConflictError("stale")
        return "success"

    result = await bump()

    assert result == "success"
    assert call_count == 2
    assert bump.__name__ == "bump"
