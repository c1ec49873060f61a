"""Tests for the circuit breaker and retry handler."""

import asyncio

import pytest

from startup_registry.embedding.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerError,
    CircuitBreakerState,
)
from startup_registry.embedding.retry_handler import RetryConfig, RetryHandler


class FlakyError(Exception):
    pass


async def fail():
    raise FlakyError("boom")


async def succeed():
    return "ok"


@pytest.mark.asyncio
async def test_breaker_opens_after_threshold():
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60.0, expected_exception=FlakyError, name="test")

    for _ in range(2):
        with pytest.raises(FlakyError):
            await breaker.call(fail)

    assert breaker.get_state() == CircuitBreakerState.OPEN
    with pytest.raises(CircuitBreakerError):
        await breaker.call(succeed)


@pytest.mark.asyncio
async def test_breaker_half_open_trial_closes_on_success():
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0.0, expected_exception=FlakyError, name="test")

    with pytest.raises(FlakyError):
        await breaker.call(fail)
    assert breaker.get_state() == CircuitBreakerState.OPEN

    assert await breaker.call(succeed) == "ok"
    assert breaker.get_state() == CircuitBreakerState.CLOSED
    assert breaker.get_stats()["failure_count"] == 0


@pytest.mark.asyncio
async def test_breaker_half_open_trial_reopens_on_failure():
    breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=0.0, expected_exception=FlakyError, name="test")
    breaker.state = CircuitBreakerState.OPEN

    with pytest.raises(FlakyError):
        await breaker.call(fail)
    assert breaker.get_state() == CircuitBreakerState.OPEN


@pytest.mark.asyncio
async def test_breaker_admits_one_half_open_trial_at_a_time():
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0.0, expected_exception=FlakyError, name="test")
    with pytest.raises(FlakyError):
        await breaker.call(fail)

    release = asyncio.Event()

    async def slow_trial():
        await release.wait()
        return "tried"

    trial = asyncio.create_task(breaker.call(slow_trial))
    await asyncio.sleep(0)
    assert breaker.get_state() == CircuitBreakerState.HALF_OPEN

    with pytest.raises(CircuitBreakerError):
        await breaker.call(succeed)

    release.set()
    assert await trial == "tried"
    assert breaker.get_state() == CircuitBreakerState.CLOSED
    assert await breaker.call(succeed) == "ok"


@pytest.mark.asyncio
async def test_cancelled_trial_frees_half_open_slot():
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0.0, expected_exception=FlakyError, name="test")
    with pytest.raises(FlakyError):
        await breaker.call(fail)

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(breaker.call(asyncio.sleep, 1.0), timeout=0.01)
    assert breaker.get_state() == CircuitBreakerState.HALF_OPEN

    assert await breaker.call(succeed) == "ok"
    assert breaker.get_state() == CircuitBreakerState.CLOSED


@pytest.mark.asyncio
async def test_breaker_ignores_unexpected_exceptions():
    breaker = CircuitBreaker(failure_threshold=1, expected_exception=FlakyError, name="test")

    async def crash():
        raise KeyError("not a provider failure")

    with pytest.raises(KeyError):
        await breaker.call(crash)
    assert breaker.get_state() == CircuitBreakerState.CLOSED


@pytest.mark.asyncio
async def test_force_close():
    breaker = CircuitBreaker(failure_threshold=1, expected_exception=FlakyError, name="test")
    with pytest.raises(FlakyError):
        await breaker.call(fail)

    await breaker.force_close()
    assert breaker.get_state() == CircuitBreakerState.CLOSED


@pytest.mark.asyncio
async def test_retry_handler_retries_retryable_errors():
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise FlakyError("try again")
        return "done"

    handler = RetryHandler(RetryConfig(max_attempts=3, base_delay=0.0, jitter=False, retryable_exceptions=(FlakyError,)))
    assert await handler.execute_with_retry(flaky, "flaky") == "done"
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_retry_handler_gives_up_and_reraises():
    handler = RetryHandler(RetryConfig(max_attempts=2, base_delay=0.0, jitter=False, retryable_exceptions=(FlakyError,)))
    with pytest.raises(FlakyError):
        await handler.execute_with_retry(fail, "fail")


@pytest.mark.asyncio
async def test_retry_handler_does_not_retry_other_errors():
    attempts = []

    async def broken():
        attempts.append(1)
        raise CircuitBreakerError("open")

    handler = RetryHandler(RetryConfig(max_attempts=3, base_delay=0.0, retryable_exceptions=(FlakyError,)))
    with pytest.raises(CircuitBreakerError):
        await handler.execute_with_retry(broken, "broken")
    assert attempts == [1]


def test_backoff_is_exponential_and_capped():
    handler = RetryHandler(RetryConfig(base_delay=0.5, max_delay=3.0, jitter=False))
    assert [handler._calculate_delay(attempt) for attempt in range(4)] == [0.5, 1.0, 2.0, 3.0]
