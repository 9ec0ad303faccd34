# ==== PROMETHEUS METRICS ==== #

"""
Prometheus metrics for monitoring batch execution.

This module provides executor metrics with Prometheus integration including
per-item outcomes, attempt and retry counts, circuit breaker state, rate
limiter waits and generation provider usage.
"""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    REGISTRY
)


# ==== BATCH METRICS ==== #

batch_runs_total = Counter(
    "review_batch_runs_total",
    "Total batches executed"
)

batch_items_total = Counter(
    "review_batch_items_total",
    "Total work items finalized by outcome",
    ["outcome"]  # outcome: success, failed
)

batch_duration_seconds = Histogram(
    "review_batch_duration_seconds",
    "Wall-clock duration of a batch run in seconds",
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0]
)


# ==== RETRY METRICS ==== #

retry_attempts_total = Counter(
    "review_batch_attempts_total",
    "Total task attempts by outcome",
    ["outcome"]  # outcome: success, error, timeout, rejected
)

retry_sleeps_total = Counter(
    "review_batch_retry_sleeps_total",
    "Total backoff sleeps between attempts"
)


# ==== CIRCUIT BREAKER METRICS ==== #

circuit_breaker_state = Gauge(
    "review_batch_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)"
)

circuit_breaker_rejections_total = Counter(
    "review_batch_circuit_breaker_rejections_total",
    "Attempts rejected by an open circuit breaker"
)


# ==== RATE LIMITER METRICS ==== #

rate_limiter_wait_seconds = Histogram(
    "review_batch_rate_limiter_wait_seconds",
    "Time spent waiting for rate limiter admission",
    buckets=[0.0, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0]
)


# ==== GENERATION PROVIDER METRICS ==== #

ai_requests_total = Counter(
    "review_batch_ai_requests_total",
    "Total generation requests made",
    ["provider", "model"]
)

ai_tokens_total = Counter(
    "review_batch_ai_tokens_total",
    "Total generation tokens consumed",
    ["provider", "model", "type"]  # type: input, output
)

ai_failures_total = Counter(
    "review_batch_ai_failures_total",
    "Total generation request failures",
    ["provider", "error_type"]
)


def render_metrics() -> str:
    """Render all registered metrics in Prometheus text format.

    Returns:
        Prometheus exposition text
    """
    return generate_latest(REGISTRY).decode("utf-8")
