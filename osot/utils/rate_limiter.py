"""
Rate limiting utility for outbound Dataverse calls
"""
import asyncio
import time
from collections import deque
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Rate limiter that enforces requests per minute limit
    Uses sliding window algorithm
    """

    def __init__(self, requests_per_minute: int, window_seconds: float = 60.0):
        """
        Initialize rate limiter

        Args:
            requests_per_minute: Maximum number of requests allowed per window
            window_seconds: Length of the sliding window
        """
        self.requests_per_minute = requests_per_minute
        self.window_seconds = window_seconds
        self.request_times: deque = deque()
        self.last_request_time: Optional[float] = None
        self._lock = asyncio.Lock()

    def _cleanup_old_requests(self, current_time: float) -> None:
        """Remove requests older than the window"""
        while self.request_times and current_time - self.request_times[0] > self.window_seconds:
            self.request_times.popleft()

    async def wait_if_needed(self) -> None:
        """
        Wait if necessary to respect rate limit
        Should be awaited before each request
        """
        if not self.requests_per_minute:
            return

        async with self._lock:
            current_time = time.monotonic()
            self._cleanup_old_requests(current_time)

            if len(self.request_times) >= self.requests_per_minute:
                oldest_time = self.request_times[0]
                wait_time = self.window_seconds - (current_time - oldest_time) + 0.1
                if wait_time > 0:
                    logger.debug("Rate limit reached. Waiting %.2f seconds", wait_time)
                    await asyncio.sleep(wait_time)
                    self._cleanup_old_requests(time.monotonic())

            now = time.monotonic()
            self.request_times.append(now)
            self.last_request_time = now

    def get_stats(self) -> dict:
        """Get current rate limiter statistics"""
        self._cleanup_old_requests(time.monotonic())

        return {
            "requests_in_window": len(self.request_times),
            "limit": self.requests_per_minute,
            "last_request_time": self.last_request_time,
        }


class RateLimiterRegistry:
    """One limiter per key (e.g. per Dataverse app context)."""

    def __init__(self, requests_per_minute: int):
        self.requests_per_minute = requests_per_minute
        self._limiters: Dict[str, RateLimiter] = {}

    def get(self, key: str) -> RateLimiter:
        if key not in self._limiters:
            self._limiters[key] = RateLimiter(self.requests_per_minute)
        return self._limiters[key]
