"""
Circuit Breaker pattern implementation for resilience.

Stops calling the generation service for a cooldown period once it has
failed too many times in a row, so a sustained outage fails a batch fast
instead of burning every retry against a dead dependency.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from review_batch.observability.logging import ContextualLogger
from review_batch.observability.metrics import (
    circuit_breaker_rejections_total,
    circuit_breaker_state,
)


logger = ContextualLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, requests blocked
    HALF_OPEN = "half_open"  # Testing if service recovered


_STATE_GAUGE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


class CircuitBreakerError(Exception):
    """Raised when circuit breaker is open."""
    pass


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""
    failure_threshold: int = 5
    reset_timeout: float = 30.0
    expected_exception: type = Exception

    def __post_init__(self):
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.reset_timeout < 0:
            raise ValueError("reset_timeout must be >= 0")


class CircuitBreaker:
    """
    Circuit breaker shared by every attempt of an executor.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: Service is failing, requests are blocked
    - HALF_OPEN: Cooldown elapsed, attempts pass until the next outcome

    A success in any state closes the breaker. A failure reopens a
    HALF_OPEN breaker immediately; a CLOSED breaker opens once
    ``failure_count`` reaches ``failure_threshold``.
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = CircuitState.CLOSED
        self._lock = asyncio.Lock()
        circuit_breaker_state.set(_STATE_GAUGE_VALUES[self.state])

    @property
    def failure_threshold(self) -> int:
        return self.config.failure_threshold

    @property
    def reset_timeout(self) -> float:
        return self.config.reset_timeout

    async def __aenter__(self):
        """Reject the guarded block when open; the rejection counts as a failure."""
        if await self.is_open():
            circuit_breaker_rejections_total.inc()
            await self.record_failure()
            raise CircuitBreakerError(
                "Circuit breaker is open - too many failures detected"
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Record the outcome of the guarded block."""
        if exc_type is None:
            await self.record_success()
        elif issubclass(exc_type, self.config.expected_exception):
            await self.record_failure()
        return False  # Don't suppress exceptions

    async def is_open(self) -> bool:
        """Report whether attempts must be rejected.

        An OPEN breaker whose cooldown has elapsed moves to HALF_OPEN and
        reports closed so the next attempt can probe the service.
        """
        async with self._lock:
            if self.state != CircuitState.OPEN:
                return False

            if self._clock() - self.last_failure_time > self.config.reset_timeout:
                self._transition(CircuitState.HALF_OPEN)
                logger.info("Circuit breaker half-open, probing service")
                return False

            return True

    async def record_success(self) -> None:
        """Handle successful operation."""
        async with self._lock:
            if self.state != CircuitState.CLOSED:
                logger.info("Circuit breaker closed, service recovered")
            self.failure_count = 0
            self._transition(CircuitState.CLOSED)

    async def record_failure(self) -> None:
        """Handle failed operation."""
        async with self._lock:
            previous = self.state
            self.failure_count += 1
            self.last_failure_time = self._clock()

            if previous == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
                logger.warning(
                    "Circuit breaker reopened after failed probe",
                    failure_count=self.failure_count,
                )
            elif (previous == CircuitState.CLOSED and
                  self.failure_count >= self.config.failure_threshold):
                self._transition(CircuitState.OPEN)
                logger.warning(
                    "Circuit breaker opened",
                    failure_count=self.failure_count,
                    reset_timeout=self.config.reset_timeout,
                )

    def _transition(self, state: CircuitState) -> None:
        self.state = state
        circuit_breaker_state.set(_STATE_GAUGE_VALUES[state])

    def reset(self) -> None:
        """Reset circuit breaker to closed state."""
        self.failure_count = 0
        self.last_failure_time = None
        self._transition(CircuitState.CLOSED)

    def get_stats(self) -> dict:
        """Get circuit breaker statistics."""
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.config.failure_threshold,
            "reset_timeout": self.config.reset_timeout,
            "last_failure_time": self.last_failure_time
        }

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """Execute function with circuit breaker protection."""
        async with self:
            if asyncio.iscoroutinefunction(func):
                return await func(*args, **kwargs)
            else:
                return func(*args, **kwargs)
