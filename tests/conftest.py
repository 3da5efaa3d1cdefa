"""Pytest configuration and fixtures."""

import os

# Override config before importing the app
os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite://")
os.environ.setdefault("REMINDER_METRICS_ENABLED", "false")

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from npd_reminders.db.base import Base
from npd_reminders.db.session import get_db
from npd_reminders.reminders import models  # noqa: F401  (registers tables)
from npd_reminders.reminders.devices import DeviceRegistry
from npd_reminders.reminders.dispatcher import BroadcastResult, PushDispatcher
from npd_reminders.reminders.service import create_app


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def registry(db):
    return DeviceRegistry(db)


@pytest.fixture
def mock_dispatcher():
    """PushDispatcher double: every send succeeds unless a test overrides it."""
    dispatcher = Mock(spec=PushDispatcher)
    dispatcher.send_to_token.return_value = "projects/test/messages/1"
    dispatcher.send_broadcast.return_value = BroadcastResult(success_count=0, failure_count=0)
    return dispatcher


@pytest.fixture
def client(session_factory, mock_dispatcher):
    app = create_app(dispatcher=mock_dispatcher)

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as test_client:
        yield test_client
