"""
Scan job orchestrator — runs one audit from QUEUED to a terminal state.

  QUEUED → PROCESSING → COMPLETED | FAILED

Progress only moves forward and terminal states are final. A job tracker
guarantees at most one running job per scan id: the in-memory tracker covers a
single process, the Redis tracker covers every instance sharing that Redis.

enqueue() hands the job to a thread pool and returns the Future immediately;
status is read back from the repository.
"""
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from growth_audit.config import (
    QUEUED, PROCESSING, COMPLETED, FAILED, TERMINAL_STATUSES,
    JOB_TRACKER, SCAN_WORKERS, SCAN_LOCK_TTL_SECONDS,
)
from growth_audit.errors import InvalidTransitionError
from growth_audit.pipeline.audit import score_audit
from growth_audit.pipeline.metrics import fetch_metrics
from growth_audit.pipeline.policy import section
from growth_audit.pipeline.recommend import recommend, upgrade_cards
from growth_audit.pipeline.signals import fetch_page_signals
from growth_audit.services.events import log_event
from growth_audit.services.repository import Repository, utcnow

logger = logging.getLogger('pipeline.orchestrator')

# Allowed next states per current state; terminal states have none
TRANSITIONS = {
    QUEUED: (PROCESSING,),
    PROCESSING: (PROCESSING, COMPLETED, FAILED),
}

INTAKE_PROGRESS = 4

# Progress checkpoints while PROCESSING
STARTED = 18
METRICS_FETCHED = 40
SIGNALS_FETCHED = 60
SCORED = 80
RECOMMENDED = 92


# ── Job tracking ──────────────────────────────────────────────────────────────

class JobTracker(ABC):
    """Claims a scan id for exactly one running job."""

    @abstractmethod
    def acquire(self, scan_id: str) -> bool:
        """True if the caller now owns the scan; False if it is already running."""

    @abstractmethod
    def release(self, scan_id: str) -> None:
        pass

    @abstractmethod
    def is_running(self, scan_id: str) -> bool:
        pass


class InMemoryJobTracker(JobTracker):
    """Process-local set of running scan ids."""

    def __init__(self):
        self._running = set()
        self._lock = threading.Lock()

    def acquire(self, scan_id):
        with self._lock:
            if scan_id in self._running:
                return False
            self._running.add(scan_id)
            return True

    def release(self, scan_id):
        with self._lock:
            self._running.discard(scan_id)

    def is_running(self, scan_id):
        with self._lock:
            return scan_id in self._running


class RedisJobTracker(JobTracker):
    """
    One Redis key per running scan (SET NX with a TTL), shared by all instances.

    The key holds a token unique to the claim, and release only deletes the
    key while it still holds that token: a job that outlives the TTL cannot
    drop a claim another instance has taken since. If Redis itself is
    unreachable the tracker degrades to process-local tracking.
    """

    PREFIX = 'scan:running'

    # DEL KEYS[1] only while it still holds ARGV[1]
    RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""

    def __init__(self, redis_client, ttl_seconds: int = SCAN_LOCK_TTL_SECONDS):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self._local = InMemoryJobTracker()
        self._tokens = {}

    def _key(self, scan_id):
        return f'{self.PREFIX}:{scan_id}'

    def acquire(self, scan_id):
        if not self._local.acquire(scan_id):
            return False
        token = uuid.uuid4().hex
        try:
            claimed = bool(self.redis.set(self._key(scan_id), token, nx=True, ex=self.ttl_seconds))
        except Exception as e:
            logger.warning("Redis job tracker unavailable (%s), tracking %s locally", e, scan_id)
            return True
        if not claimed:
            self._local.release(scan_id)
            return False
        self._tokens[scan_id] = token
        return True

    def release(self, scan_id):
        token = self._tokens.pop(scan_id, None)
        self._local.release(scan_id)
        if token is None:
            return
        try:
            released = self.redis.eval(self.RELEASE_SCRIPT, 1, self._key(scan_id), token)
        except Exception as e:
            logger.warning("Could not release Redis lock for scan %s: %s", scan_id, e)
            return
        if not released:
            logger.warning("Redis lock for scan %s expired or was claimed elsewhere; left in place",
                           scan_id, extra={'scan_id': scan_id})

    def is_running(self, scan_id):
        try:
            return bool(self.redis.exists(self._key(scan_id)))
        except Exception:
            return self._local.is_running(scan_id)


def build_job_tracker(kind: Optional[str] = None) -> JobTracker:
    kind = (kind or JOB_TRACKER).lower()
    if kind == 'redis':
        from growth_audit.extensions import redis_client
        return RedisJobTracker(redis_client)
    return InMemoryJobTracker()


def describe_failure(error: Exception) -> str:
    """Short, human-readable cause stored on a failed scan."""
    detail = str(error).strip() or error.__class__.__name__
    if len(detail) > 200:
        detail = detail[:197] + '...'
    return f'The audit could not be completed ({detail}). Start a new scan to retry.'


# ── Orchestrator ──────────────────────────────────────────────────────────────

class ScanOrchestrator:
    """Owns the state machine for AuditRun records in one repository."""

    def __init__(self, repository: Repository, tracker: Optional[JobTracker] = None,
                 executor=None, metrics_fetcher: Callable = fetch_metrics,
                 signals_fetcher: Callable = fetch_page_signals):
        self.repository = repository
        self.tracker = tracker or InMemoryJobTracker()
        self.executor = executor or ThreadPoolExecutor(
            max_workers=SCAN_WORKERS, thread_name_prefix='scan',
        )
        self.metrics_fetcher = metrics_fetcher
        self.signals_fetcher = signals_fetcher

    def enqueue(self, scan_id: str) -> Optional[Future]:
        """
        Schedule the scan and return its Future, or None if the scan is
        already running (second request is a no-op).
        """
        if not self.tracker.acquire(scan_id):
            logger.info("Scan %s already running; ignoring duplicate request", scan_id,
                        extra={'scan_id': scan_id})
            return None
        try:
            return self.executor.submit(self._run, scan_id)
        except RuntimeError:
            self.tracker.release(scan_id)
            raise

    def shutdown(self, wait: bool = True):
        self.executor.shutdown(wait=wait)

    def _run(self, scan_id: str):
        try:
            self.execute(scan_id)
        except Exception as e:
            logger.error("Scan %s failed: %s", scan_id, e, exc_info=True,
                         extra={'scan_id': scan_id})
            self._fail(scan_id, e)
        finally:
            self.tracker.release(scan_id)

    # ── State machine ────────────────────────────────────────────────

    def advance(self, scan_id: str, status: str, progress: int, **fields) -> dict:
        """Write a status/progress step; progress never goes backwards."""
        current = self.repository.require('audit_run', scan_id)
        if status not in TRANSITIONS.get(current['status'], ()):
            raise InvalidTransitionError(scan_id, current['status'], status)
        progress = max(current.get('progress') or 0, min(100, progress))
        return self.repository.update('audit_run', scan_id, dict(fields, status=status, progress=progress))

    def _fail(self, scan_id: str, error: Exception):
        try:
            current = self.repository.get('audit_run', scan_id)
            if current is None or current['status'] in TERMINAL_STATUSES:
                return
            if current['status'] == QUEUED:
                self.advance(scan_id, PROCESSING, current.get('progress') or 0)
            self.advance(scan_id, FAILED, 100,
                         error_message=describe_failure(error), completed_at=utcnow())
            log_event(self.repository, 'audit_failed', lead_id=current.get('lead_id'),
                      audit_run_id=scan_id, payload={'error': str(error)[:500]})
        except Exception:
            logger.error("Could not record failure for scan %s", scan_id, exc_info=True,
                         extra={'scan_id': scan_id})

    # ── Job body ─────────────────────────────────────────────────────

    def execute(self, scan_id: str) -> dict:
        """Run the audit pipeline synchronously for one scan."""
        scan = self.advance(scan_id, PROCESSING, STARTED, started_at=utcnow())
        url = scan['url']
        context = {'industry': scan.get('industry') or '', 'goal': scan.get('goal') or ''}
        logger.info("Scan %s processing %s", scan_id, url, extra={'scan_id': scan_id})

        metrics = self.metrics_fetcher(url)
        self.advance(scan_id, PROCESSING, METRICS_FETCHED)

        signals = self.signals_fetcher(url)
        self.advance(scan_id, PROCESSING, SIGNALS_FETCHED)

        result = score_audit(url, context, metrics=metrics, signals=signals)
        self.advance(scan_id, PROCESSING, SCORED)

        cards = recommend(result.scores, result.leak_tags, context['industry'], context['goal'])
        self.advance(scan_id, PROCESSING, RECOMMENDED)

        lead = self.repository.get('lead', scan['lead_id']) if scan.get('lead_id') else None
        concern = (lead or {}).get('primary_concern') or ''
        cfg = section('audit')
        recommendations = (
            [dict(card.to_dict(), type='module') for card in cards]
            + [dict(card, type='upgrade') for card in upgrade_cards(concern)]
        )[:cfg['max_recommendations']]

        snapshot = result.to_dict()
        snapshot['recommended_modules'] = [card.to_dict() for card in cards]

        completed = self.advance(
            scan_id, COMPLETED, 100,
            scores=result.scores,
            confidence=result.confidence,
            insights=result.insights(cfg['insights']),
            recommendations=recommendations,
            snapshot=snapshot,
            error_message=None,
            completed_at=utcnow(),
        )
        log_event(self.repository, 'audit_completed', lead_id=scan.get('lead_id'),
                  audit_run_id=scan_id,
                  payload={'overall': result.scores['overall'], 'leak_tags': result.leak_tags})
        logger.info("Scan %s completed: overall=%d", scan_id, result.scores['overall'],
                    extra={'scan_id': scan_id})
        return completed
