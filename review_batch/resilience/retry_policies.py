"""Retry policy for a single work item of a batch."""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from review_batch.executor.errors import AttemptTimeoutError
from review_batch.executor.models import ExecutionOutcome, Failure, Success, TaskFunction, WorkItem
from review_batch.observability.logging import ContextualLogger
from review_batch.observability.metrics import retry_attempts_total, retry_sleeps_total
from review_batch.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerError


logger = ContextualLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior."""
    retry_attempts: int = 2
    backoff_delay: float = 1.0
    timeout: Optional[float] = 45.0
    exponential_base: float = 2.0

    def __post_init__(self):
        if self.retry_attempts < 0:
            raise ValueError("retry_attempts must be >= 0")
        if self.backoff_delay < 0:
            raise ValueError("backoff_delay must be >= 0")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0 or None")

    @property
    def max_attempts(self) -> int:
        return 1 + self.retry_attempts


class RetryPolicy:
    """
    Run one work item through the task function with bounded attempts.

    Every attempt goes through the shared circuit breaker and is raced
    against ``timeout``. Between attempts the policy sleeps
    ``backoff_delay * 2 ** attempt`` (zero-indexed attempt). Task errors
    never escape ``execute``; they end up in the returned ``Failure``.
    """

    def __init__(
        self,
        config: RetryConfig,
        circuit_breaker: CircuitBreaker,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.circuit_breaker = circuit_breaker
        self._sleep = sleep

    def _retrying(self, item: WorkItem) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=wait_exponential(
                multiplier=self.config.backoff_delay,
                exp_base=self.config.exponential_base,
            ),
            retry=retry_if_exception_type(Exception),
            before_sleep=self._before_sleep_callback(item),
            sleep=self._sleep,
            reraise=True,
        )

    def _before_sleep_callback(self, item: WorkItem):
        """Callback before sleep between retries."""
        def callback(retry_state: RetryCallState):
            retry_sleeps_total.inc()
            logger.debug(
                "Retrying item after backoff",
                index=item.index,
                attempt=retry_state.attempt_number,
                sleep_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
            )

        return callback

    async def execute(self, task: TaskFunction, item: WorkItem) -> ExecutionOutcome:
        """Execute ``task`` for ``item`` and return exactly one outcome."""
        attempts = 0
        try:
            async for attempt in self._retrying(item):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    result = await self._attempt(task, item, attempts)
        except Exception as exc:
            return Failure(index=item.index, error=exc, input=item.payload, attempts=attempts)

        return Success(index=item.index, result=result, attempts=attempts)

    async def _attempt(self, task: TaskFunction, item: WorkItem, attempt_number: int) -> Any:
        try:
            async with self.circuit_breaker:
                result = await self._call_with_timeout(task, item)
        except CircuitBreakerError:
            retry_attempts_total.labels(outcome="rejected").inc()
            self._log_failure(item, attempt_number, "circuit breaker open")
            raise
        except AttemptTimeoutError as exc:
            retry_attempts_total.labels(outcome="timeout").inc()
            self._log_failure(item, attempt_number, str(exc))
            raise
        except Exception as exc:
            retry_attempts_total.labels(outcome="error").inc()
            self._log_failure(item, attempt_number, str(exc))
            raise

        retry_attempts_total.labels(outcome="success").inc()
        return result

    async def _call_with_timeout(self, task: TaskFunction, item: WorkItem) -> Any:
        # wait_for cancels the task coroutine when the timeout fires
        try:
            return await asyncio.wait_for(
                task(item.payload, item.index), timeout=self.config.timeout
            )
        except asyncio.TimeoutError as exc:
            raise AttemptTimeoutError(self.config.timeout) from exc

    def _log_failure(self, item: WorkItem, attempt_number: int, error: str) -> None:
        logger.warning(
            "Item attempt failed",
            index=item.index,
            attempt=attempt_number,
            max_attempts=self.config.max_attempts,
            error=error,
        )
