from unittest.mock import patch

import pytest

from ncore_stream.exceptions import AuthenticationError
from ncore_stream.utils.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerError,
    CircuitState,
)


async def fail(breaker, exc=ConnectionError):
    with pytest.raises(exc):
        async with breaker:
            raise exc("upstream down")


@pytest.mark.asyncio
async def test_opens_after_threshold():
    breaker = CircuitBreaker("tracker", failure_threshold=2, recovery_timeout=60)
    await fail(breaker)
    assert breaker.state is CircuitState.CLOSED
    await fail(breaker)
    assert breaker.state is CircuitState.OPEN

    with pytest.raises(CircuitBreakerError):
        async with breaker:
            pass


@pytest.mark.asyncio
async def test_ignored_exceptions_do_not_count():
    breaker = CircuitBreaker(
        "tracker", failure_threshold=1, ignored_exceptions=(AuthenticationError,)
    )
    await fail(breaker, AuthenticationError)
    assert breaker.state is CircuitState.CLOSED


@pytest.mark.asyncio
async def test_recovers_through_half_open():
    breaker = CircuitBreaker(
        "tracker", failure_threshold=1, recovery_timeout=10, success_threshold=2
    )
    with patch("ncore_stream.utils.circuit_breaker.time.monotonic", return_value=100):
        await fail(breaker)
    assert breaker.state is CircuitState.OPEN

    with patch("ncore_stream.utils.circuit_breaker.time.monotonic", return_value=111):
        async with breaker:
            pass
        assert breaker.state is CircuitState.HALF_OPEN
        async with breaker:
            pass
    assert breaker.state is CircuitState.CLOSED


@pytest.mark.asyncio
async def test_failed_trial_reopens():
    breaker = CircuitBreaker("tracker", failure_threshold=1, recovery_timeout=10)
    with patch("ncore_stream.utils.circuit_breaker.time.monotonic", return_value=100):
        await fail(breaker)
    with patch("ncore_stream.utils.circuit_breaker.time.monotonic", return_value=111):
        await fail(breaker)
    assert breaker.state is CircuitState.OPEN
