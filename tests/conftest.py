# ==== SHARED TEST FIXTURES AND CONFIGURATION ==== #

"""
Shared test fixtures and configuration.

Provides a deterministic clock/sleep pair for the time-based resilience
components and factories for executors wired to it.
"""

import asyncio
import os
from typing import List

import pytest


# ==== FORCE ENVIRONMENT SETUP BEFORE ANY IMPORTS ==== #

# Set environment variables BEFORE importing any package modules
os.environ.update({
    "APP_ENV": "test",
    "LOG_LEVEL": "WARNING",
    "AI_PROVIDER_BASE_URL": "http://mock-ai-service/v1",
    "AI_API_KEY": "test-key-12345",
    "AI_MODEL": "mock-model",
})

from review_batch.executor.config import BatchProcessingConfig  # noqa: E402
from review_batch.executor.dispatcher import BatchExecutor  # noqa: E402
from review_batch.resilience.circuit_breaker import (  # noqa: E402
    CircuitBreaker,
    CircuitBreakerConfig,
)


# ==== DETERMINISTIC TIME ==== #


class FakeClock:
    """Manually advanced monotonic clock with a matching async sleep."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(seconds, 0.0)
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    """Fresh fake clock per test."""
    return FakeClock()


@pytest.fixture
def make_breaker(clock):
    """Factory for circuit breakers driven by the fake clock."""
    def factory(failure_threshold: int = 5, reset_timeout: float = 30.0) -> CircuitBreaker:
        return CircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=failure_threshold,
                reset_timeout=reset_timeout,
            ),
            clock=clock,
        )
    return factory


@pytest.fixture
def make_executor(clock):
    """
    Factory for executors whose limiter, breaker and backoff use the fake clock.

    Task functions still run on the real event loop, so concurrency is real.
    """
    def factory(**options) -> BatchExecutor:
        options.setdefault("backoff_delay", 0.0)
        config = BatchProcessingConfig(**options)
        return BatchExecutor(config, sleep=clock.sleep, clock=clock)
    return factory
