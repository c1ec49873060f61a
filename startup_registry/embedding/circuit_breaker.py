"""Circuit breaker for embedding provider calls.

After ``failure_threshold`` consecutive failures the breaker opens and calls
are rejected immediately until ``recovery_timeout`` elapses. A single trial
call is then let through (HALF_OPEN) and its outcome decides whether to close
again; other calls are rejected while the trial is in flight.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Callable, Optional

import structlog

logger = structlog.get_logger("circuit_breaker")


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, reject calls
    HALF_OPEN = "half_open"  # Testing if service recovered


class CircuitBreakerError(Exception):
    """Circuit breaker is open."""
    pass


class CircuitBreaker:
    """Circuit breaker for external service calls."""

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        expected_exception: type = Exception,
        name: str = "circuit_breaker"
    ):
        """Configure a circuit breaker.

        Parameters
        - failure_threshold: Failures before opening the breaker
        - recovery_timeout: Seconds to wait before the HALF_OPEN trial call
        - expected_exception: Exception type(s) treated as failures
        - name: Identifier for logs/metrics
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self.name = name

        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = CircuitBreakerState.CLOSED
        self._trial_in_flight = False
        self._lock = asyncio.Lock()

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """Await ``func(*args, **kwargs)`` with circuit breaker protection."""
        async with self._lock:
            if self.state == CircuitBreakerState.OPEN:
                if self._should_attempt_reset():
                    self.state = CircuitBreakerState.HALF_OPEN
                    logger.info("Circuit breaker transitioning to HALF_OPEN", name=self.name)
                else:
                    logger.warning("Circuit breaker is OPEN, rejecting call", name=self.name)
                    raise CircuitBreakerError(f"Circuit breaker {self.name} is open")
            elif self.state == CircuitBreakerState.HALF_OPEN and self._trial_in_flight:
                logger.warning("Circuit breaker trial call in flight, rejecting call", name=self.name)
                raise CircuitBreakerError(f"Circuit breaker {self.name} is half-open")

            trial = self.state == CircuitBreakerState.HALF_OPEN
            if trial:
                self._trial_in_flight = True

        try:
            result = await func(*args, **kwargs)
        except self.expected_exception:
            await self._on_failure()
            raise
        except BaseException:
            # Unexpected errors and cancellation leave the state alone
            if trial:
                self._trial_in_flight = False
            raise

        await self._on_success()
        return result

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return True

        return (time.monotonic() - self.last_failure_time) >= self.recovery_timeout

    async def _on_success(self):
        async with self._lock:
            self._trial_in_flight = False
            if self.state == CircuitBreakerState.HALF_OPEN:
                self.state = CircuitBreakerState.CLOSED
                logger.info("Circuit breaker reset to CLOSED", name=self.name)

            self.failure_count = 0

    async def _on_failure(self):
        async with self._lock:
            self._trial_in_flight = False
            self.failure_count += 1
            self.last_failure_time = time.monotonic()

            if self.state == CircuitBreakerState.HALF_OPEN or self.failure_count >= self.failure_threshold:
                self.state = CircuitBreakerState.OPEN
                logger.warning(
                    "Circuit breaker opened due to failures",
                    name=self.name,
                    failure_count=self.failure_count,
                    threshold=self.failure_threshold
                )

    def get_state(self) -> CircuitBreakerState:
        return self.state

    def get_stats(self) -> dict:
        """Get circuit breaker statistics."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout
        }

    async def force_close(self):
        """Force circuit breaker to closed state."""
        async with self._lock:
            self.state = CircuitBreakerState.CLOSED
            self.failure_count = 0
            self.last_failure_time = None
            self._trial_in_flight = False
            logger.info("Circuit breaker forced to CLOSED", name=self.name)
