"""
Rate limiter implementation using sliding window algorithm.

Caps how many admissions fall inside any trailing window, suspending the
caller just long enough for the oldest admission to age out.
"""

import asyncio
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict

from review_batch.observability.logging import ContextualLogger
from review_batch.observability.metrics import rate_limiter_wait_seconds


logger = ContextualLogger(__name__)


class SlidingWindowRateLimiter:
    """
    Sliding window rate limiter.

    Holds one ordered list of admission timestamps. The prune, check, sleep
    and append steps of ``wait()`` run under a single lock, so concurrent
    callers can never both claim the last free slot of the window.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep

        self._requests: Deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        # Remove old requests outside the window
        while self._requests and now - self._requests[0] >= self.window_seconds:
            self._requests.popleft()

    async def wait(self) -> float:
        """
        Suspend until one more admission fits in the window, then record it.

        Returns:
            Seconds spent waiting
        """
        async with self._lock:
            started = self._clock()
            now = started
            self._prune(now)

            while len(self._requests) >= self.max_requests:
                wait_time = self.window_seconds - (now - self._requests[0])
                logger.debug(
                    "Rate limit reached, waiting",
                    wait_seconds=round(wait_time, 3),
                    limit=self.max_requests,
                )
                await self._sleep(wait_time)
                now = self._clock()
                self._prune(now)

            self._requests.append(now)

        waited = now - started
        rate_limiter_wait_seconds.observe(waited)
        return waited

    async def get_status(self) -> Dict[str, Any]:
        """Get rate limiter statistics."""
        async with self._lock:
            now = self._clock()
            self._prune(now)

            return {
                "current_requests": len(self._requests),
                "limit": self.max_requests,
                "window_seconds": self.window_seconds,
                "next_reset_time": (
                    self._requests[0] + self.window_seconds if self._requests else now
                ),
            }

    async def clear(self) -> None:
        """Forget every recorded admission."""
        async with self._lock:
            self._requests.clear()
