"""
Batch executor for driving many independent calls to a slow, rate-limited
text-generation service.
"""

from review_batch.executor.config import BatchProcessingConfig
from review_batch.executor.dispatcher import BatchExecutor, chunk_items
from review_batch.executor.errors import (
    AttemptTimeoutError,
    BatchExecutionError,
    BatchInvariantError,
)
from review_batch.executor.models import (
    BatchResult,
    BatchStatistics,
    FailedItem,
    Failure,
    Success,
    WorkItem,
)

__version__ = "0.1.0"

__all__ = [
    "AttemptTimeoutError",
    "BatchExecutionError",
    "BatchExecutor",
    "BatchInvariantError",
    "BatchProcessingConfig",
    "BatchResult",
    "BatchStatistics",
    "FailedItem",
    "Failure",
    "Success",
    "WorkItem",
    "chunk_items",
]
