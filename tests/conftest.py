"""Shared test fixtures for the COD discrepancy reconciler tests.

Uses a SQLite database so tests run without any external services, and a
frozen clock so every timestamp is predictable.
"""

from __future__ import annotations

import os

# Override DATABASE_URL before importing anything from app — the Settings
# model reads .env eagerly via pydantic-settings, and the module-level
# ``engine`` in app.core.database connects on first use.
os.environ["DATABASE_URL"] = "sqlite:///./test.db"

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from app.api.dependencies import get_workflow
from app.core.database import Base, get_db
from app.main import app
from app.services.discrepancy.workflow import DiscrepancyWorkflow

TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 3, 15, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def workflow(clock) -> DiscrepancyWorkflow:
    """A fresh workflow with the default deduction policy."""
    return DiscrepancyWorkflow(clock=clock)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session, workflow):
    """FastAPI test client with overridden DB and workflow dependencies."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_workflow] = lambda: workflow
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
