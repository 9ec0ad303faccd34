"""Exceptions raised by the batch executor."""

from typing import Optional


class BatchExecutionError(Exception):
    """Base class for batch executor errors."""
    pass


class AttemptTimeoutError(BatchExecutionError, TimeoutError):
    """Raised when a single task attempt exceeds the configured timeout."""

    def __init__(self, timeout: Optional[float]):
        self.timeout = timeout
        super().__init__(f"Timeout after {timeout}s")


class BatchInvariantError(BatchExecutionError):
    """Raised when a batch finishes without exactly one outcome per item."""
    pass
