"""Collects per-item outcomes and derives batch statistics."""

from typing import Any, List

from review_batch.executor.errors import BatchInvariantError
from review_batch.executor.models import (
    BatchResult,
    BatchStatistics,
    ExecutionOutcome,
    FailedItem,
    Success,
)


class ResultAggregator:
    """Accumulates exactly one outcome per work item of a batch."""

    def __init__(self, total: int):
        self.total = total
        self.success: List[Any] = []
        self.failed: List[FailedItem] = []

    @property
    def completed(self) -> int:
        return len(self.success) + len(self.failed)

    def record(self, outcome: ExecutionOutcome) -> None:
        if isinstance(outcome, Success):
            self.success.append(outcome.result)
            return

        self.failed.append(
            FailedItem(
                index=outcome.index,
                error=str(outcome.error) or type(outcome.error).__name__,
                input=outcome.input,
                error_type=type(outcome.error).__name__,
                attempts=outcome.attempts,
            )
        )

    def finalize(self, started: float, finished: float) -> BatchResult:
        """Build the batch result once every item has settled.

        Args:
            started: Wall-clock start of the batch in seconds
            finished: Wall-clock end of the batch in seconds
        """
        if self.completed != self.total:
            raise BatchInvariantError(
                f"Batch recorded {self.completed} outcomes for {self.total} items"
            )

        total_time = finished - started
        statistics = BatchStatistics(
            total_processed=self.total,
            success_rate=len(self.success) / self.total if self.total else 0.0,
            average_processing_time=total_time / self.total if self.total else 0.0,
            total_processing_time=total_time,
        )
        return BatchResult(
            success=list(self.success),
            failed=list(self.failed),
            statistics=statistics,
        )
