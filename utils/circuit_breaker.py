"""
Circuit breaker guarding the upstream catalog API.

When the upstream keeps failing, further calls are refused immediately with
`CircuitBreakerError` instead of waiting on timeouts. Resolvers treat that
error like any other transient failure, so an open circuit never poisons the
negative cache.

States:
- CLOSED: Normal operation, calls pass through.
- OPEN: Upstream unhealthy, calls fail immediately.
- HALF_OPEN: Recovery probe, calls pass and decide the next state.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger("pokedex_cache.circuit_breaker")


class CircuitState(Enum):
    """Enumeration of circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerError(Exception):
    """Raised when the circuit is open and refusing calls."""

    pass


class CircuitBreaker:
    """Async circuit breaker counting consecutive failures of one upstream."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        success_threshold: int = 2,
        expected_exceptions: tuple = (Exception,),
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            name: Label used in logs and stats.
            failure_threshold: Consecutive failures that open the circuit.
            recovery_timeout: Seconds spent OPEN before a recovery probe.
            success_threshold: Probe successes needed to close again.
            expected_exceptions: Exception types that count as failures.
            clock: Monotonic time source.
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self.expected_exceptions = expected_exceptions
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Run an upstream coroutine under breaker protection.

        Args:
            func: The async function to execute.
            *args: Positional arguments for func.
            **kwargs: Keyword arguments for func.

        Returns:
            Whatever func returns.

        Raises:
            CircuitBreakerError: If the circuit is OPEN.
            Exception: The original exception raised by func.
        """
        async with self._lock:
            if self._state == CircuitState.OPEN:
                if self._clock() - self._opened_at < self.recovery_timeout:  # type: ignore
                    raise CircuitBreakerError(
                        f"Circuit breaker '{self.name}' is open, upstream unavailable"
                    )
                logger.info(
                    f"Circuit breaker '{self.name}' probing upstream",
                    extra={"breaker_name": self.name},
                )
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0

        try:
            result = await func(*args, **kwargs)
        except self.expected_exceptions:
            await self._record_failure()
            raise

        await self._record_success()
        return result

    async def _record_success(self) -> None:
        async with self._lock:
            self._failure_count = 0
            if self._state != CircuitState.HALF_OPEN:
                return

            self._success_count += 1
            if self._success_count >= self.success_threshold:
                logger.info(
                    f"Circuit breaker '{self.name}' closed after recovery",
                    extra={"breaker_name": self.name},
                )
                self._state = CircuitState.CLOSED
                self._success_count = 0

    async def _record_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1

            if (
                self._state == CircuitState.HALF_OPEN
                or self._failure_count >= self.failure_threshold
            ):
                if self._state != CircuitState.OPEN:
                    logger.error(
                        f"Circuit breaker '{self.name}' opened",
                        extra={
                            "breaker_name": self.name,
                            "failure_count": self._failure_count,
                            "previous_state": self._state.value,
                        },
                    )
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()
                self._success_count = 0

    def get_stats(self) -> dict:
        """Return state, counters and configuration for monitoring."""
        return {
            "breaker_name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
        }

    async def reset(self) -> None:
        """Force the breaker back to CLOSED."""
        async with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._success_count = 0
            self._opened_at = None
