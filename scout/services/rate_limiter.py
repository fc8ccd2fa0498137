"""
Minimum-interval rate limiter (a leaky bucket with room for one request).

Every caller goes through slot(): it blocks until `min_interval` seconds have
passed since the END of the previous slot, runs the body while holding the
lock, then records the end time. One limiter is shared by every run in the
process, so the interval holds across threads, not just within one run.
"""
import logging
import threading
from contextlib import contextmanager

from scout.services.clock import SystemClock

logger = logging.getLogger('services.rate_limiter')


class MinIntervalLimiter:

    def __init__(self, min_interval: float, clock=None):
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = min_interval
        self.clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._last_end = None

    def wait_time(self) -> float:
        """Seconds a caller arriving now would have to wait."""
        if self._last_end is None:
            return 0.0
        return max(0.0, self._last_end + self.min_interval - self.clock.monotonic())

    @contextmanager
    def slot(self):
        with self._lock:
            wait = self.wait_time()
            if wait > 0:
                logger.debug("Rate limiting: waiting %.2fs", wait)
                self.clock.sleep(wait)
            try:
                yield
            finally:
                self._last_end = self.clock.monotonic()

    def pause(self, seconds: float):
        """Sleep on the limiter's clock (used for cooldowns and batch gaps)."""
        self.clock.sleep(seconds)
