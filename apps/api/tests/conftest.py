import datetime as dt

import pytest
from fastapi.testclient import TestClient

from baytbrands_api.config import Settings
from baytbrands_api.database import init_db, make_session_factory
from baytbrands_api.main import create_app
from baytbrands_api.services.seed import seed_demo_data
from baytbrands_api.services.sql_store import SqlStore
from baytbrands_api.services.store import MemoryStore

# A Monday morning; meetings seeded for "today" start at 14:00 the same day.
NOW = dt.datetime(2026, 10, 19, 9, 0, tzinfo=dt.UTC)


def fixed_clock() -> dt.datetime:
    return NOW


@pytest.fixture()
def now() -> dt.datetime:
    return NOW


@pytest.fixture()
def settings() -> Settings:
    return Settings(operator_initials="ZB", ai_actor="AI", currency_symbol="$", fetch_timeout_seconds=2.0)


@pytest.fixture()
def memory_store() -> MemoryStore:
    return MemoryStore(clock=fixed_clock)


@pytest.fixture()
def sql_store(tmp_path):
    # File-backed so worker threads share one database.
    session_factory = make_session_factory(f"sqlite+pysqlite:///{tmp_path / 'dashboard.db'}")
    engine = session_factory.kw["bind"]
    init_db(engine)
    yield SqlStore(session_factory, clock=fixed_clock)
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture()
def seeded_store(memory_store):
    seed_demo_data(memory_store, now=NOW)
    return memory_store


@pytest.fixture()
def client():
    store = MemoryStore()
    seed_demo_data(store)
    with TestClient(create_app(store)) as test_client:
        yield test_client
