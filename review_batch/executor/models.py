"""
Data model of the batch executor.

Work items are opaque to the executor; it only tracks their original index
and forwards whatever the task function returns.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, TypeVar, Union


T = TypeVar("T")
R = TypeVar("R")

TaskFunction = Callable[[Any, int], Awaitable[Any]]
ProgressCallback = Callable[[int, int], Any]


@dataclass(frozen=True)
class WorkItem(Generic[T]):
    """One unit of input work with its 0-based position in the batch."""
    index: int
    payload: T


@dataclass(frozen=True)
class Success(Generic[R]):
    """Task result for one work item."""
    index: int
    result: R
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """Final error for one work item after its attempts were exhausted."""
    index: int
    error: BaseException
    input: Any
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return False


ExecutionOutcome = Union[Success, Failure]


@dataclass
class FailedItem:
    """Failed work item as reported in a batch result."""
    index: int
    error: str
    input: Any
    error_type: str = "Exception"
    attempts: int = 1


@dataclass
class BatchStatistics:
    """Summary of a finished batch. Times are in seconds."""
    total_processed: int = 0
    success_rate: float = 0.0
    average_processing_time: float = 0.0
    total_processing_time: float = 0.0


@dataclass
class BatchResult(Generic[R]):
    """Every work item of a batch partitioned into successes and failures."""
    success: List[R] = field(default_factory=list)
    failed: List[FailedItem] = field(default_factory=list)
    statistics: BatchStatistics = field(default_factory=BatchStatistics)
