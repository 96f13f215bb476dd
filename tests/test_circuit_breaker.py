import asyncio

import pytest

from utils.circuit_breaker import CircuitBreaker, CircuitBreakerError, CircuitState


async def failing_func():
    raise asyncio.TimeoutError("Fail")


async def ok_func():
    return "ok"


@pytest.mark.asyncio
class TestCircuitBreaker:
    async def test_circuit_breaker_activates(self, clock):
        """Test that circuit breaker opens after failures"""
        breaker = CircuitBreaker("pokeapi", failure_threshold=2, recovery_timeout=1, clock=clock)

        with pytest.raises(asyncio.TimeoutError):
            await breaker.call(failing_func)
        with pytest.raises(asyncio.TimeoutError):
            await breaker.call(failing_func)

        # Third call should raise CircuitBreakerError instantly
        with pytest.raises(CircuitBreakerError):
            await breaker.call(failing_func)
        assert breaker.state == CircuitState.OPEN

    async def test_success_resets_failure_count(self, clock):
        breaker = CircuitBreaker("pokeapi", failure_threshold=2, clock=clock)

        with pytest.raises(asyncio.TimeoutError):
            await breaker.call(failing_func)
        assert await breaker.call(ok_func) == "ok"

        assert breaker.failure_count == 0
        assert breaker.state == CircuitState.CLOSED

    async def test_recovers_after_timeout(self, clock):
        breaker = CircuitBreaker(
            "sprites", failure_threshold=1, recovery_timeout=30, success_threshold=2, clock=clock
        )
        with pytest.raises(asyncio.TimeoutError):
            await breaker.call(failing_func)

        clock.advance(30)
        assert await breaker.call(ok_func) == "ok"
        assert breaker.state == CircuitState.HALF_OPEN

        assert await breaker.call(ok_func) == "ok"
        assert breaker.state == CircuitState.CLOSED

    async def test_half_open_failure_reopens(self, clock):
        breaker = CircuitBreaker("sprites", failure_threshold=1, recovery_timeout=30, clock=clock)
        with pytest.raises(asyncio.TimeoutError):
            await breaker.call(failing_func)

        clock.advance(30)
        with pytest.raises(asyncio.TimeoutError):
            await breaker.call(failing_func)

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitBreakerError):
            await breaker.call(ok_func)

    async def test_unexpected_exceptions_do_not_count(self, clock):
        breaker = CircuitBreaker(
            "pokeapi", failure_threshold=1, expected_exceptions=(asyncio.TimeoutError,), clock=clock
        )

        async def bug():
            raise KeyError("programming error")

        with pytest.raises(KeyError):
            await breaker.call(bug)
        assert breaker.state == CircuitState.CLOSED

    async def test_reset(self, clock):
        breaker = CircuitBreaker("pokeapi", failure_threshold=1, clock=clock)
        with pytest.raises(asyncio.TimeoutError):
            await breaker.call(failing_func)

        await breaker.reset()

        assert breaker.get_stats()["state"] == "closed"
        assert await breaker.call(ok_func) == "ok"
