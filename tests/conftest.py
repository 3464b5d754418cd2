"""
Shared pytest fixtures for the Dataset Validation API tests.

Every test gets its own SQLite file database so threads can share it.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from validation_api.config import Settings, get_settings
from validation_api.consensus_service import ConsensusEngine
from validation_api.database import Base, get_db, get_engine
from validation_api.record_store import RecordStore


@pytest.fixture
def engine(tmp_path):
    """Engine bound to a throwaway database file."""
    engine = get_engine(f"sqlite:///{tmp_path / 'validation_test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings():
    """Default consensus settings: finalize on the 3rd matching vote, 1 point each."""
    return Settings(consensus_threshold=2, reward_amount=1)


@pytest.fixture
def consensus(db, settings):
    return ConsensusEngine(db, settings)


@pytest.fixture
def make_record(db):
    """Factory for pending records."""
    store = RecordStore(db)

    def _make(data_1: str = "The cat sat on the mat", data_2: str = "Le chat s'est assis sur le tapis"):
        return store.create(data_1, data_2)

    return _make


@pytest.fixture
def client(session_factory, settings):
    """TestClient wired to the test database and settings."""
    from validation_api.app import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings

    yield TestClient(app)

    app.dependency_overrides.clear()
