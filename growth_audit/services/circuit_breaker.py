"""
Circuit breaker with Redis-backed state, shared by every worker process.

States per external service:
  - CLOSED    → calls pass through
  - OPEN      → too many consecutive failures; calls short-circuit with CircuitOpenError
  - HALF_OPEN → reset_timeout elapsed; the next call is a trial call

Any Redis error fails open (the breaker behaves as CLOSED) so a Redis outage
never takes the audit path down with it. Success/failure counters are kept in a
Redis hash for the /api/health endpoint.
"""
import logging
import time

logger = logging.getLogger('services.circuit_breaker')

CLOSED = 'closed'
OPEN = 'open'
HALF_OPEN = 'half_open'

# name → (failure_threshold, reset_timeout seconds)
BREAKER_SETTINGS = {
    'pagespeed': (3, 300),
}


class CircuitOpenError(Exception):
    """Raised when calling through an open circuit breaker."""
    def __init__(self, name, retry_after=None):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{name}' is open; service unavailable")


class CircuitBreaker:
    """
    Usage:
        breaker = CircuitBreaker('pagespeed', redis_client, failure_threshold=3, reset_timeout=300)
        payload = breaker.call(fetch_json, url)
    """

    PREFIX = 'cb'

    def __init__(self, name, redis_client, failure_threshold=3, reset_timeout=300):
        self.name = name
        self.redis = redis_client
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout

    def _key(self, suffix):
        return f'{self.PREFIX}:{self.name}:{suffix}'

    def _last_failure_at(self):
        try:
            value = self.redis.get(self._key('last_failure'))
            return float(value) if value else None
        except Exception:
            return None

    # ── State ─────────────────────────────────────────────────────────

    @property
    def state(self):
        try:
            current = self.redis.get(self._key('state'))
        except Exception:
            return CLOSED
        if current is None:
            return CLOSED
        if current == OPEN:
            last = self._last_failure_at()
            if last and (time.time() - last) > self.reset_timeout:
                self._set_state(HALF_OPEN)
                return HALF_OPEN
        return current

    def _set_state(self, new_state):
        try:
            self.redis.set(self._key('state'), new_state)
        except Exception:
            pass

    @property
    def failure_count(self):
        try:
            value = self.redis.get(self._key('failures'))
            return int(value) if value else 0
        except Exception:
            return 0

    def retry_after(self):
        last = self._last_failure_at()
        if last is None:
            return None
        return max(0.0, self.reset_timeout - (time.time() - last))

    # ── Health counters ───────────────────────────────────────────────

    def _record(self, outcome, error_msg=''):
        try:
            pipe = self.redis.pipeline()
            pipe.hincrby(self._key('health'), outcome, 1)
            pipe.hset(self._key('health'), f'last_{outcome}', str(time.time()))
            if error_msg:
                pipe.hset(self._key('health'), 'last_error', str(error_msg)[:200])
            pipe.execute()
        except Exception:
            pass

    def get_health(self):
        """Health metrics dict for this service."""
        health = {
            'name': self.name,
            'state': 'unknown',
            'failure_count': 0,
            'failure_threshold': self.failure_threshold,
            'reset_timeout': self.reset_timeout,
            'total_success': 0,
            'total_failure': 0,
            'last_success': None,
            'last_failure': None,
            'last_error': '',
        }
        try:
            data = self.redis.hgetall(self._key('health'))
        except Exception:
            return health
        health.update({
            'state': self.state,
            'failure_count': self.failure_count,
            'total_success': int(data.get('success', 0)),
            'total_failure': int(data.get('failure', 0)),
            'last_success': float(data['last_success']) if data.get('last_success') else None,
            'last_failure': float(data['last_failure']) if data.get('last_failure') else None,
            'last_error': data.get('last_error', ''),
        })
        return health

    # ── Calls ─────────────────────────────────────────────────────────

    def call(self, func, *args, **kwargs):
        """Execute func through the breaker; re-raises whatever func raises."""
        if self.state == OPEN:
            raise CircuitOpenError(self.name, retry_after=self.retry_after())

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
            pipe.execute()
        except Exception:
            pass
        self._record('success')

    def _on_failure(self, error):
        try:
            count = self.redis.incr(self._key('failures'))
            self.redis.set(self._key('last_failure'), str(time.time()))
        except Exception:
            count = None
        if count is not None and count >= self.failure_threshold:
            self._set_state(OPEN)
            logger.warning(
                "Circuit '%s' opened after %d failures (threshold=%d): %s",
                self.name, count, self.failure_threshold, error,
            )
        elif count is not None:
            logger.info("Circuit '%s' failure %d/%d: %s",
                        self.name, count, self.failure_threshold, error)
        self._record('failure', str(error))

    def reset(self):
        """Force the breaker back to CLOSED."""
        try:
            pipe = self.redis.pipeline()
            pipe.set(self._key('state'), CLOSED)
            pipe.set(self._key('failures'), 0)
            pipe.delete(self._key('last_failure'))
            pipe.execute()
            logger.info("Circuit '%s' manually reset to closed", self.name)
        except Exception as e:
            logger.error("Failed to reset circuit '%s': %s", self.name, e)


# ── Registry ──────────────────────────────────────────────────────────────

_registry = {}


def get_breaker(name, redis_client=None):
    """Get or create a named breaker (singleton per name)."""
    if name not in _registry:
        if redis_client is None:
            from growth_audit.extensions import redis_client as default_client
            redis_client = default_client
        threshold, reset_timeout = BREAKER_SETTINGS.get(name, (3, 300))
        _registry[name] = CircuitBreaker(
            name, redis_client, failure_threshold=threshold, reset_timeout=reset_timeout,
        )
    return _registry[name]


def get_all_breakers():
    return dict(_registry)


def init_breakers(redis_client):
    """Register a breaker for every external service in BREAKER_SETTINGS."""
    breakers = {
        name: CircuitBreaker(name, redis_client, failure_threshold=threshold,
                             reset_timeout=reset_timeout)
        for name, (threshold, reset_timeout) in BREAKER_SETTINGS.items()
    }
    _registry.update(breakers)
    return breakers
