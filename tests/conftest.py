"""
Pytest configuration and fixtures for testing.

This file provides reusable test fixtures for:
- Database setup/teardown
- FastAPI test client
- A recording notification dispatcher (no Redis / SES needed)
- Account factories
"""

import os

# Must be set before the app modules read their settings
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("JSON_LOGS", "false")

import uuid
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.core.security import get_password_hash
from app.models.user import User
from app.services.notification_dispatcher import get_notification_dispatcher
from main import app


# Use in-memory SQLite for testing (fast, isolated)
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RecordingDispatcher:
    """Stands in for NotificationDispatcher and remembers what it was asked to send."""

    def __init__(self):
        self.reset_codes = []
        self.password_changed = []
        self.succeed = True

    def send_reset_code(self, to_email, code, user_name=None):
        self.reset_codes.append({"to": to_email, "code": code})
        return self.succeed

    def send_password_changed(self, to_email, user_name=None):
        self.password_changed.append({"to": to_email})
        return self.succeed

    @property
    def last_code(self):
        return self.reset_codes[-1]["code"]


@pytest.fixture
def db_session():
    """
    Create a fresh database session for each test.
    Tables are dropped after the test completes.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def client(db_session, dispatcher):
    """
    FastAPI test client with overridden database and notification dependencies.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    """Factory creating a persisted account; extra kwargs set User columns."""
    def _make_user(email="user@example.com", password="OldPass123", **fields):
        user = User(
            id=uuid.uuid4(),
            email=email,
            hashed_password=get_password_hash(password),
            full_name=fields.pop("full_name", "Test User"),
            password_history=fields.pop("password_history", []),
            **fields
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def user(make_user):
    return make_user()
