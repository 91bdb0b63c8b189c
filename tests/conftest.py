"""Shared test fixtures."""
from concurrent.futures import Future, ThreadPoolExecutor

import pytest
from unittest.mock import patch
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from growth_audit.database import Base
from growth_audit.pipeline import policy
from growth_audit.pipeline.metrics import estimate_metrics
from growth_audit.pipeline.signals import parse_page_signals
from growth_audit.services import repository as repository_mod
from growth_audit.services.repository import SqlRepository, FileRepository


SAMPLE_HTML = """
<!DOCTYPE html>
<html lang="en">
<head>
  <title>Bright Smile Dental Clinic | Family Dentist in Leeds</title>
  <meta name="description" content="Family and cosmetic dentistry in central Leeds. Same-week appointments, transparent pricing and friendly clinicians. Book your check-up online today.">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <meta name="robots" content="index,follow">
  <meta property="og:title" content="Bright Smile Dental Clinic">
  <meta property="og:description" content="Family dentist in Leeds">
  <link rel="canonical" href="https://brightsmile.example/">
  <link rel="icon" href="/favicon.ico">
  <script type="application/ld+json">{"@type": "Dentist"}</script>
</head>
<body>
  <h1>Book now with Leeds' friendliest dentist</h1>
  <a href="tel:+441130000000">Call 0113 000 0000</a>
  <a href="mailto:hello@brightsmile.example">hello@brightsmile.example</a>
  <form action="/enquire"><input name="email"></form>
  <p>Read our 200+ reviews. Schedule an appointment today.</p>
  <address>12 Park Road, Leeds</address>
  <a href="/services">Services</a> <a href="/about">About</a> <a href="/privacy">Privacy</a>
  <a href="https://facebook.com/brightsmile">Facebook</a>
  <a href="https://instagram.com/brightsmile">Instagram</a>
  <a href="https://google.com/maps/place/brightsmile">Find us</a>
  <img src="/a.jpg" loading="lazy"><img src="/b.jpg">
</body>
</html>
"""


class FakeRedis:
    """Minimal in-memory Redis fake (strings, hashes, SET NX EX, pipelines, tracker release script)."""

    def __init__(self):
        self.get_store = {}
        self.hash_store = {}
        self.ttls = {}

    def get(self, key):
        return self.get_store.get(key)

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.get_store:
            return None
        self.get_store[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    def exists(self, key):
        return int(key in self.get_store or key in self.hash_store)

    def incr(self, key):
        val = int(self.get_store.get(key, 0)) + 1
        self.get_store[key] = str(val)
        return val

    def delete(self, *keys):
        for k in keys:
            self.get_store.pop(k, None)
            self.hash_store.pop(k, None)

    def eval(self, script, numkeys, *args):
        """Only the job tracker's compare-and-delete: DEL KEYS[1] if it holds ARGV[1]."""
        key, token = args[0], args[1]
        if self.get_store.get(key) != token:
            return 0
        self.delete(key)
        return 1

    def hset(self, key, field, value):
        self.hash_store.setdefault(key, {})[field] = value

    def hincrby(self, key, field, amount):
        h = self.hash_store.setdefault(key, {})
        h[field] = str(int(h.get(field, 0)) + amount)

    def hgetall(self, key):
        return dict(self.hash_store.get(key, {}))

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    """Fake Redis pipeline that replays queued calls on execute()."""

    def __init__(self, redis):
        self._redis = redis
        self._ops = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self._ops.append((name, args, kwargs))
            return self
        return queue

    def execute(self):
        results = [getattr(self._redis, name)(*args, **kwargs) for name, args, kwargs in self._ops]
        self._ops = []
        return results


class InlineExecutor:
    """Executor stand-in that runs submitted work on the calling thread."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        future.set_result(fn(*args, **kwargs))
        return future

    def shutdown(self, wait=True):
        pass


@pytest.fixture(autouse=True)
def reset_policy_cache():
    policy.reset_cache()
    yield
    policy.reset_cache()


@pytest.fixture(autouse=True)
def reset_singletons():
    """Process-wide repository/orchestrator never leak between tests."""
    from growth_audit.pipeline import manager
    yield
    repository_mod.set_repository(None)
    manager.set_orchestrator(None)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared across threads, schema created."""
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    import growth_audit.services.repository  # noqa: F401 (registers every model)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_repository(db_engine):
    return SqlRepository(sessionmaker(bind=db_engine))


@pytest.fixture
def file_repository(tmp_path):
    return FileRepository(str(tmp_path / 'store.json'))


@pytest.fixture
def repository(sql_repository):
    """Process-wide repository for manager/route tests."""
    repository_mod.set_repository(sql_repository)
    return sql_repository


@pytest.fixture
def orchestrator(repository):
    """Real thread pool, offline fetchers; shutdown() joins every queued scan."""
    from growth_audit.pipeline import manager
    from growth_audit.pipeline.orchestrator import ScanOrchestrator, InMemoryJobTracker

    orch = ScanOrchestrator(
        repository,
        tracker=InMemoryJobTracker(),
        executor=ThreadPoolExecutor(max_workers=1),
        metrics_fetcher=lambda url: estimate_metrics(),
        signals_fetcher=lambda url: parse_page_signals(url, SAMPLE_HTML),
    )
    manager.set_orchestrator(orch)
    yield orch
    orch.shutdown(wait=True)


@pytest.fixture
def inline_orchestrator(repository):
    """Scans run synchronously inside enqueue(); no threads involved."""
    from growth_audit.pipeline import manager
    from growth_audit.pipeline.orchestrator import ScanOrchestrator, InMemoryJobTracker

    orch = ScanOrchestrator(
        repository,
        tracker=InMemoryJobTracker(),
        executor=InlineExecutor(),
        metrics_fetcher=lambda url: estimate_metrics(),
        signals_fetcher=lambda url: parse_page_signals(url, SAMPLE_HTML),
    )
    manager.set_orchestrator(orch)
    return orch


@pytest.fixture
def make_lead(sql_repository):
    """Factory fixture — inserts a lead with sensible defaults."""
    def _make(repo=None, **overrides):
        fields = dict(
            full_name='Sam Carter',
            business_name='Bright Smile Dental',
            email='sam@brightsmile.example',
            mobile_number='+44 7700 900123',
            website_url='https://www.brightsmile.example/',
            industry='Dental clinic',
            goal='more leads',
            primary_concern='Slow replies',
        )
        fields.update(overrides)
        return (repo or sql_repository).create('lead', fields)
    return _make


@pytest.fixture
def lead_context():
    return {
        'full_name': 'Sam Carter',
        'business_name': 'Bright Smile Dental',
        'email': 'sam@brightsmile.example',
        'mobile_number': '+44 7700 900123',
        'industry': 'Dental clinic',
        'goal': 'more leads',
        'primary_concern': 'Slow replies',
    }


@pytest.fixture
def app(fake_redis):
    """Flask test app with breakers on the fake Redis."""
    from growth_audit import create_app
    from growth_audit.services import circuit_breaker
    with patch('growth_audit.extensions.redis_client', fake_redis):
        app = create_app()
    app.config['TESTING'] = True
    yield app
    circuit_breaker._registry.clear()


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


@pytest.fixture
def sample_html():
    return SAMPLE_HTML
