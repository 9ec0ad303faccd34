# ==== CHUNKED PARALLEL DISPATCHER ==== #

"""
Chunked parallel dispatcher for batches of slow, rate-limited calls.

Work items are split into chunks of at most ``concurrency`` items. Each chunk
runs concurrently through the retry policy and must fully settle before the
next one starts, so no more than ``concurrency`` task calls are ever pending.
The rate limiter is consulted between chunks. Admission control is therefore
coarse: a single chunk larger than ``rate_limit_per_second`` is not throttled.
"""

import asyncio
import dataclasses
import inspect
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from review_batch.executor.aggregator import ResultAggregator
from review_batch.executor.config import BatchProcessingConfig
from review_batch.executor.models import (
    BatchResult,
    ExecutionOutcome,
    ProgressCallback,
    Success,
    TaskFunction,
    WorkItem,
)
from review_batch.observability.logging import ContextualLogger, log_performance
from review_batch.observability.metrics import (
    batch_duration_seconds,
    batch_items_total,
    batch_runs_total,
)
from review_batch.observability.tracing import get_tracer
from review_batch.resilience.circuit_breaker import CircuitBreaker
from review_batch.resilience.rate_limiter import SlidingWindowRateLimiter
from review_batch.resilience.retry_policies import RetryPolicy


# ==== MODULE INITIALIZATION ==== #

tracer = get_tracer(__name__)
logger = ContextualLogger(__name__)


def chunk_items(items: Sequence[WorkItem], size: int) -> List[List[WorkItem]]:
    """Split items into ordered chunks of at most ``size`` items."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


# ==== BATCH EXECUTOR ==== #

class BatchExecutor:
    """
    Runs independent async jobs under a concurrency ceiling, a sliding-window
    rate limit, bounded retries and a circuit breaker.

    The breaker and limiter belong to the executor instance and persist
    across ``run`` calls. Pass shared instances to coordinate several
    executors against the same dependency.
    """

    def __init__(
        self,
        config: Optional[BatchProcessingConfig] = None,
        *,
        circuit_breaker: Optional[CircuitBreaker] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or BatchProcessingConfig()
        self._sleep = sleep
        self._clock = clock

        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            self.config.circuit_breaker_config(), clock=clock
        )
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            self.config.rate_limit_per_second, clock=clock, sleep=sleep
        )
        self.retry_policy = RetryPolicy(
            self.config.retry_config(), self.circuit_breaker, sleep=sleep
        )

        logger.info("Batch executor initialized", **self.config.to_dict())

    async def run(
        self,
        items: Iterable[Any],
        task: TaskFunction,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchResult:
        """
        Run ``task(payload, index)`` for every item.

        Args:
            items: Opaque payloads, dispatched in iteration order
            task: Async function performing one external call per item
            on_progress: Optional ``(completed, total)`` callback, plain or async

        Returns:
            BatchResult: One success or failure per item plus statistics
        """
        work_items = [WorkItem(index=i, payload=p) for i, p in enumerate(items)]
        total = len(work_items)
        chunks = chunk_items(work_items, self.config.concurrency)
        aggregator = ResultAggregator(total)

        with tracer.start_as_current_span("batch_execute") as span:
            span.set_attribute("batch.items", total)
            span.set_attribute("batch.chunks", len(chunks))
            span.set_attribute("batch.concurrency", self.config.concurrency)

            logger.info(
                "Batch started",
                items=total,
                chunks=len(chunks),
                concurrency=self.config.concurrency,
            )
            started = self._clock()

            for chunk_index, chunk in enumerate(chunks):
                logger.debug(
                    "Dispatching chunk",
                    chunk=chunk_index + 1,
                    chunks=len(chunks),
                    size=len(chunk),
                )
                outcomes = await self._run_chunk(task, chunk)

                for outcome in outcomes:
                    aggregator.record(outcome)
                    batch_items_total.labels(
                        outcome="success" if isinstance(outcome, Success) else "failed"
                    ).inc()
                    if on_progress is not None:
                        await self._notify(on_progress, aggregator.completed, total)

                if chunk_index < len(chunks) - 1:
                    await self.rate_limiter.wait()

            result = aggregator.finalize(started, self._clock())

            span.set_attribute("batch.succeeded", len(result.success))
            span.set_attribute("batch.failed", len(result.failed))

        batch_runs_total.inc()
        batch_duration_seconds.observe(result.statistics.total_processing_time)
        log_performance(
            "batch_execute",
            result.statistics.total_processing_time,
            items=total,
            succeeded=len(result.success),
            failed=len(result.failed),
            success_rate=round(result.statistics.success_rate, 3),
        )
        return result

    async def _run_chunk(
        self, task: TaskFunction, chunk: List[WorkItem]
    ) -> List[ExecutionOutcome]:
        # gather keeps chunk input order; RetryPolicy.execute does not raise for task errors
        return await asyncio.gather(
            *(self.retry_policy.execute(task, item) for item in chunk)
        )

    @staticmethod
    async def _notify(on_progress: ProgressCallback, completed: int, total: int) -> None:
        result = on_progress(completed, total)
        if inspect.isawaitable(result):
            await result

    def update_config(self, **changes: Any) -> BatchProcessingConfig:
        """
        Apply new options without discarding limiter or breaker state.

        Raises:
            TypeError: Unknown option name
            ValueError: Invalid option value
        """
        config = dataclasses.replace(self.config, **changes)

        self.config = config
        self.rate_limiter.max_requests = config.rate_limit_per_second
        self.circuit_breaker.config = config.circuit_breaker_config()
        self.retry_policy = RetryPolicy(
            config.retry_config(), self.circuit_breaker, sleep=self._sleep
        )

        logger.info("Batch executor configuration updated", **config.to_dict())
        return config

    async def get_statistics(self) -> Dict[str, Any]:
        """Get the active configuration with rate limiter and breaker status."""
        return {
            "config": self.config.to_dict(),
            "rate_limiter_status": await self.rate_limiter.get_status(),
            "circuit_breaker_status": self.circuit_breaker.get_stats(),
        }
