import pytest
from fastapi.testclient import TestClient

from swimlanes.config import Settings
from swimlanes.db import create_db_engine, init_db, make_session_factory
from swimlanes.main import create_app
from swimlanes.storage import Storage

TEST_DATABASE_URL = "sqlite://"


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, database_url=TEST_DATABASE_URL, rebalance_threshold=10)


@pytest.fixture
def client(settings: Settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def storage():
    engine = create_db_engine(TEST_DATABASE_URL)
    init_db(engine)
    session = make_session_factory(engine)()
    try:
        yield Storage(session, rebalance_threshold=10)
    finally:
        session.close()
        engine.dispose()
