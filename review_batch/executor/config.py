"""Configuration for the batch executor."""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from review_batch.resilience.circuit_breaker import CircuitBreakerConfig
from review_batch.resilience.retry_policies import RetryConfig
from review_batch.settings import Settings


@dataclass(frozen=True)
class BatchProcessingConfig:
    """Options recognized by ``BatchExecutor``. Durations are in seconds."""
    concurrency: int = 3
    retry_attempts: int = 2
    backoff_delay: float = 1.0
    timeout: Optional[float] = 45.0
    rate_limit_per_second: int = 10
    failure_threshold: int = 5
    reset_timeout: float = 30.0

    def __post_init__(self):
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.rate_limit_per_second < 1:
            raise ValueError("rate_limit_per_second must be >= 1")
        # Component configs validate their own fields
        self.retry_config()
        self.circuit_breaker_config()

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            retry_attempts=self.retry_attempts,
            backoff_delay=self.backoff_delay,
            timeout=self.timeout,
        )

    def circuit_breaker_config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            reset_timeout=self.reset_timeout,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_settings(cls, settings: Settings) -> "BatchProcessingConfig":
        """Build the executor configuration from application settings."""
        return cls(
            concurrency=settings.BATCH_CONCURRENCY,
            retry_attempts=settings.BATCH_RETRY_ATTEMPTS,
            backoff_delay=settings.BATCH_BACKOFF_DELAY_SECONDS,
            timeout=settings.BATCH_TIMEOUT_SECONDS,
            rate_limit_per_second=settings.BATCH_RATE_LIMIT_PER_SECOND,
            failure_threshold=settings.CIRCUIT_FAILURE_THRESHOLD,
            reset_timeout=settings.CIRCUIT_RESET_TIMEOUT_SECONDS,
        )
