"""Shared test fixtures."""
import threading

import pytest
from unittest.mock import patch
from sqlalchemy.orm import sessionmaker

from skumatch.database import Base, make_engine
from skumatch.pipeline.base import Resolver, ResolutionResult


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created."""
    engine = make_engine('sqlite:///:memory:')
    import skumatch.models.job
    import skumatch.models.job_row
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(autouse=True)
def patch_store_session(db_engine):
    """
    Route the store's get_session() calls to the in-memory engine.

    The store does `from skumatch.database import get_session` at import time,
    so the local binding is patched. Each call returns a new session so that
    close() inside the store does not destroy the test DB connection.
    """
    TestSession = sessionmaker(bind=db_engine)
    with patch('skumatch.services.store.get_session', side_effect=lambda: TestSession()):
        yield TestSession


@pytest.fixture(autouse=True)
def no_retry_backoff():
    """Store write retries run without sleeping."""
    with patch('skumatch.services.store.STORE_RETRY_BACKOFF', 0):
        yield


@pytest.fixture(autouse=True)
def clear_breaker_registry():
    from skumatch.services.circuit_breaker import _registry
    _registry.clear()
    yield
    _registry.clear()


class FakeRedis:
    """Minimal in-memory Redis fake for circuit breaker state."""

    def __init__(self):
        self.get_store = {}
        self.hash_store = {}

    def get(self, key):
        return self.get_store.get(key)

    def set(self, key, value):
        self.get_store[key] = str(value)

    def incr(self, key):
        val = int(self.get_store.get(key, 0)) + 1
        self.get_store[key] = str(val)
        return val

    def delete(self, *keys):
        for k in keys:
            self.get_store.pop(k, None)
            self.hash_store.pop(k, None)

    def hset(self, key, field, value):
        self.hash_store.setdefault(key, {})[field] = str(value)

    def hincrby(self, key, field, amount):
        h = self.hash_store.setdefault(key, {})
        h[field] = str(int(h.get(field, 0)) + amount)

    def hgetall(self, key):
        return dict(self.hash_store.get(key, {}))

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    """Fake Redis pipeline that replays queued commands on execute()."""

    def __init__(self, redis):
        self._redis = redis
        self._ops = []

    def __getattr__(self, name):
        def queue(*args):
            self._ops.append((name, args))
            return self
        return queue

    def execute(self):
        results = [getattr(self._redis, name)(*args) for name, args in self._ops]
        self._ops = []
        return results


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def app(fake_redis):
    """Flask test app with breakers backed by the fake Redis."""
    from skumatch import create_app
    with patch('skumatch.extensions.redis_client', fake_redis):
        app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


class ScriptedResolver(Resolver):
    """
    Resolver that answers from a script keyed by SKU.

    Script values are ResolutionResult / dict answers, or exception instances
    to raise. Unscripted SKUs resolve confidently to https://shop.example/<sku>.
    """
    name = 'scripted'

    def __init__(self, script=None):
        self.script = script or {}
        self.calls = []
        self._lock = threading.Lock()

    def resolve(self, params):
        with self._lock:
            self.calls.append(params)
        answer = self.script.get(params.sku)
        if answer is None:
            return ResolutionResult(
                status='resolved_confident',
                resolved_url=f'https://shop.example/{params.sku}',
                confidence=0.9,
                matched_by='scripted',
            )
        if isinstance(answer, BaseException):
            raise answer
        return answer

    @property
    def skus(self):
        return [p.sku for p in self.calls]


@pytest.fixture
def scripted_resolver():
    """Factory fixture: scripted_resolver({'SKU-2': TimeoutError()})."""
    return ScriptedResolver


@pytest.fixture
def make_rows():
    """Factory fixture — n input rows with distinct SKUs."""
    def _make(n, supplier='Henry Schein', prefix='SKU'):
        return [
            {
                'row_id': f'r{i}',
                'supplier_name': supplier,
                'sku': f'{prefix}-{i}',
                'product_name': f'Product {i}',
                'brand_name': 'Acme',
            }
            for i in range(1, n + 1)
        ]
    return _make


@pytest.fixture
def make_job(make_rows):
    """Factory fixture — inserts a queued job with n rows, returns its id."""
    from skumatch.services import store

    def _make(n=3, tenant_id='tenant-1', rows=None, **kwargs):
        return store.create_job(tenant_id, rows if rows is not None else make_rows(n), **kwargs)
    return _make
