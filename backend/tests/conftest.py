from __future__ import annotations

import os
import pathlib
import sys
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Keep the module-level engine off the filesystem while tests run.
os.environ.setdefault("CARLEDGER_DATABASE_URL", "sqlite://")

import backend.models  # noqa: F401,E402  # Ensure models are registered with metadata
from backend import database, server  # noqa: E402
from backend.database import Base  # noqa: E402
from backend.server import app  # noqa: E402

FIXED_NOW = datetime(2024, 3, 15, 10, 30)


@pytest.fixture(scope="session")
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture()
def db_session(engine):
    connection = engine.connect()
    transaction = connection.begin()
    TestingSessionLocal = sessionmaker(bind=connection, autoflush=False, autocommit=False, future=True)
    session: Session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture()
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture()
def client(db_session, now):
    def override_get_db():
        yield db_session

    app.dependency_overrides[database.get_db] = override_get_db
    app.dependency_overrides[server.get_now] = lambda: now
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()
