# backend/tests/conftest.py

import pytest

from prayer_engine import create_app
from prayer_engine.extensions import prayer_engine
from prayer_engine.services.prayer_time.cache_layer import MultiTierCache
from prayer_engine.services.prayer_time.storage import MemoryStore

from factories import FakeClock, FakeProvider, make_timings


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def calculated_provider():
    """Provider that returns default timings for whatever day is asked."""
    return FakeProvider(name="calculator", result=lambda d, c: make_timings(d, coordinates=c))


@pytest.fixture
def cache(store, calculated_provider, clock):
    cache = MultiTierCache(store, [calculated_provider], method="MWL", ttl=24 * 3600, clock=clock)
    yield cache
    cache.close()


@pytest.fixture(scope='session')
def app():
    """Session-wide application for testing."""
    app = create_app('testing')
    return app


@pytest.fixture(scope='function')
def engine(app):
    """A freshly built engine per test, on an empty in-memory store."""
    with app.app_context():
        prayer_engine.init_app(app)
    yield prayer_engine.engine
    prayer_engine.engine.shutdown()


@pytest.fixture(scope='function')
def test_client(app, engine):
    """A test client for the app, backed by a fresh engine."""
    return app.test_client()
