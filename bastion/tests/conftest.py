import pytest
from fastapi.testclient import TestClient

from bastion.config import Settings
from bastion.core.errors import StoreUnavailableError
from bastion.engine import SecurityEngine
from bastion.main import create_app
from bastion.store import MemoryTTLStore, TTLStore

ADMIN_TOKEN = "test-admin-token"
GUARD_TOKEN = "test-guard-token"


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class DownStore(TTLStore):
    """Store whose backend is unreachable."""

    def get(self, key):
        raise StoreUnavailableError()

    def set(self, key, value, ttl):
        raise StoreUnavailableError()

    def delete(self, key):
        raise StoreUnavailableError()

    def increment(self, key, ttl):
        raise StoreUnavailableError()


def make_settings(**overrides) -> Settings:
    values = {
        "environment": "development",
        "admin_api_token": ADMIN_TOKEN,
        "guard_api_token": GUARD_TOKEN,
        "ip_key_secret": "test-secret",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def store(clock):
    return MemoryTTLStore(maxsize=10_000, clock=clock)


@pytest.fixture
def engine(settings, store, clock):
    return SecurityEngine(settings, store=store, clock=clock)


@pytest.fixture
def make_engine(store, clock):
    """Build an engine with settings overrides on the shared store and clock."""

    def _make(**overrides) -> SecurityEngine:
        return SecurityEngine(make_settings(**overrides), store=store, clock=clock)

    return _make


@pytest.fixture
def down_engine(settings, clock):
    return SecurityEngine(settings, store=DownStore(), clock=clock)


@pytest.fixture
def client(settings, engine):
    app = create_app(settings, engine)
    return TestClient(app, headers={"X-Guard-Token": GUARD_TOKEN})


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}
