"""
Circuit breaker with Redis-backed state, shared by every worker process.

States:
  - CLOSED    → normal operation, calls pass through
  - OPEN      → too many consecutive failures, calls short-circuit with CircuitOpenError
  - HALF_OPEN → after reset_timeout, the next call is let through as a probe

The scoring service and the extraction provider each sit behind one. An open
scoring breaker flips the gates to their fallback heuristics; an open
extraction breaker turns every fetch into a skipped URL.
"""
import logging
import time
from typing import Callable, Dict

logger = logging.getLogger('services.circuit_breaker')

CLOSED = 'closed'
OPEN = 'open'
HALF_OPEN = 'half_open'


class CircuitOpenError(Exception):
    """Raised when calling through an open circuit breaker."""
    def __init__(self, name, retry_after=None):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{name}' is OPEN, service unavailable")


class CircuitBreaker:
    """
    Usage:
        cb = CircuitBreaker('openai', redis_client, failure_threshold=5, reset_timeout=60)
        result = cb.call(client.chat.completions.create, **kwargs)
    """

    PREFIX = 'scout:cb'

    def __init__(self, name, redis_client, failure_threshold=5, reset_timeout=60,
                 now: Callable[[], float] = time.time):
        self.name = name
        self.redis = redis_client
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._now = now

    def _key(self, suffix):
        return f'{self.PREFIX}:{self.name}:{suffix}'

    # ── State ─────────────────────────────────────────────────────────

    @property
    def state(self):
        try:
            current = self.redis.get(self._key('state'))
            if current is None:
                return CLOSED
            if current == OPEN and self._seconds_since_failure() > self.reset_timeout:
                self.redis.set(self._key('state'), HALF_OPEN)
                return HALF_OPEN
            return current
        except Exception:
            logger.warning("Circuit '%s' state unreadable, treating as closed", self.name, exc_info=True)
            return CLOSED

    @property
    def failure_count(self):
        try:
            val = self.redis.get(self._key('failures'))
            return int(val) if val else 0
        except Exception:
            return 0

    def _seconds_since_failure(self):
        last = self.redis.get(self._key('last_failure'))
        if not last:
            return float('inf')
        return self._now() - float(last)

    # ── Call path ─────────────────────────────────────────────────────

    def call(self, func, *args, **kwargs):
        """Execute func through the breaker, recording the outcome."""
        if self.state == OPEN:
            retry_after = max(0.0, self.reset_timeout - self._seconds_since_failure())
            raise CircuitOpenError(self.name, retry_after=retry_after)

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._on_failure(e)
            raise
        self._on_success()
        return result

    def _on_success(self):
        try:
            pipe = self.redis.pipeline()
            pipe.set(self._key('state'), CLOSED)
            pipe.set(self._key('failures'), 0)
            pipe.hincrby(self._key('health'), 'success', 1)
            pipe.execute()
        except Exception:
            logger.warning("Circuit '%s' could not record success", self.name, exc_info=True)

    def _on_failure(self, error):
        try:
            count = self.redis.incr(self._key('failures'))
            self.redis.set(self._key('last_failure'), str(self._now()))
            self.redis.hincrby(self._key('health'), 'failure', 1)
            self.redis.hset(self._key('health'), 'last_error', str(error)[:200])
            if count >= self.failure_threshold:
                self.redis.set(self._key('state'), OPEN)
                logger.warning("Circuit '%s' OPENED after %d failures (threshold=%d): %s",
                               self.name, count, self.failure_threshold, error)
            else:
                logger.info("Circuit '%s' failure %d/%d: %s",
                            self.name, count, self.failure_threshold, error)
        except Exception:
            logger.warning("Circuit '%s' could not record failure", self.name, exc_info=True)

    def reset(self):
        """Manually reset the breaker to closed."""
        pipe = self.redis.pipeline()
        pipe.set(self._key('state'), CLOSED)
        pipe.set(self._key('failures'), 0)
        pipe.delete(self._key('last_failure'))
        pipe.execute()
        logger.info("Circuit '%s' manually reset to CLOSED", self.name)

    def get_health(self) -> Dict:
        data = self.redis.hgetall(self._key('health')) or {}
        return {
            'name': self.name,
            'state': self.state,
            'failure_count': self.failure_count,
            'total_success': int(data.get('success', 0)),
            'total_failure': int(data.get('failure', 0)),
            'last_error': data.get('last_error', ''),
        }


# Breakers for the funnel's external collaborators
BREAKER_SETTINGS = {
    'openai': {'failure_threshold': 5, 'reset_timeout': 60},
    'firecrawl': {'failure_threshold': 3, 'reset_timeout': 300},
}


def build_breakers(redis_client) -> Dict[str, CircuitBreaker]:
    """Create the standard breakers. Called once from the composition root."""
    return {
        name: CircuitBreaker(name, redis_client, **settings)
        for name, settings in BREAKER_SETTINGS.items()
    }
