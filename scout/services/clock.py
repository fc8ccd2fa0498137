"""
Clock abstraction - lets pacing code be tested without real sleeping.
"""
import time


class SystemClock:
    """Wall-clock implementation backed by time.monotonic()/time.sleep()."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float):
        if seconds > 0:
            time.sleep(seconds)
