"""
Resilience patterns for calls to the text-generation service.

This module provides implementations of the patterns the batch executor
composes:
- Circuit Breaker: Fails fast during sustained outages
- Rate Limiter: Sliding-window cap on admissions per second
- Retry: Bounded attempts with per-attempt timeout and exponential backoff
"""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerError,
    CircuitState,
)
from .rate_limiter import SlidingWindowRateLimiter
from .retry_policies import RetryConfig, RetryPolicy

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitState",
    "SlidingWindowRateLimiter",
    "RetryConfig",
    "RetryPolicy",
]
