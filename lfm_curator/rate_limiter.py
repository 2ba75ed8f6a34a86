"""
Rate Limiter - Keeps Last.FM calls under the allowed request frequency
"""
import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Enforces a minimum interval between API calls

    Usage:
        limiter = RateLimiter(calls_per_second=5)

        for artist in artists:
            limiter.wait()  # Sleeps if the previous call was too recent
            client.request('artist.getSimilar', artist=artist)
    """

    def __init__(
        self,
        calls_per_second: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize rate limiter

        Args:
            calls_per_second: Maximum number of calls allowed per second
            clock: Monotonic time source (injectable for tests)
            sleep: Sleep function (injectable for tests)
        """
        if calls_per_second <= 0:
            raise ValueError("calls_per_second must be positive")

        self.min_interval = 1.0 / calls_per_second
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self.last_call = None
        self.total_calls = 0
        self.total_waits = 0
        self.total_wait_time = 0.0

        logger.debug(f"Rate limiter initialized: max {calls_per_second} calls/sec (min {self.min_interval:.3f}s between calls)")

    def wait(self) -> float:
        """
        Wait if necessary to maintain the rate limit

        Returns:
            Seconds slept (0.0 when no wait was needed)
        """
        with self._lock:
            slept = 0.0
            if self.last_call is not None:
                elapsed = self._clock() - self.last_call
                if elapsed < self.min_interval:
                    slept = self.min_interval - elapsed
                    self._sleep(slept)
                    self.total_waits += 1
                    self.total_wait_time += slept

            self.last_call = self._clock()
            self.total_calls += 1
            return slept

    def get_stats(self) -> dict:
        """Get statistics about rate limiting"""
        return {
            'total_calls': self.total_calls,
            'total_waits': self.total_waits,
            'total_wait_time': self.total_wait_time,
            'avg_wait_time': self.total_wait_time / self.total_waits if self.total_waits > 0 else 0,
        }
