"""
Pytest configuration and shared fixtures.
"""

import os

# Settings are read at import time, so they must be in place before the app loads
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["FRONTEND_URL"] = "http://frontend.test"
os.environ["STORAGE_BACKEND"] = "database"
os.environ["CALENDAR_BACKEND"] = "mock"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECURITY_HEADERS_ENABLED"] = "true"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ.pop("REDIS_URL", None)

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from slotbook.auth import get_current_user, get_optional_user  # noqa: E402
from slotbook.database import Base, get_db  # noqa: E402
from slotbook.domain.calendar.providers import (  # noqa: E402
    CalendarProviderError,
    MockCalendarProvider,
    TokenSet,
)
from slotbook.domain.calendar.router import get_calendar_provider  # noqa: E402
from slotbook.main import app  # noqa: E402
from slotbook.models import User  # noqa: E402


class FakeCalendarProvider(MockCalendarProvider):
    """Mock provider with switchable failures and call counters"""

    def __init__(self):
        self.fail_exchange = False
        self.fail_events = False
        self.fail_refresh = False
        self.refresh_calls = 0
        self.revoked = []
        self.last_access_token = None

    async def exchange_code(self, code: str) -> TokenSet:
        if self.fail_exchange:
            raise CalendarProviderError("invalid_grant")
        return await super().exchange_code(code)

    async def refresh(self, refresh_token: str) -> TokenSet:
        self.refresh_calls += 1
        if self.fail_refresh:
            raise CalendarProviderError("refresh rejected")
        return await super().refresh(refresh_token)

    async def list_events(self, access_token, calendar_id, time_min, time_max):
        self.last_access_token = access_token
        if self.fail_events:
            raise CalendarProviderError("upstream 503")
        return await super().list_events(access_token, calendar_id, time_min, time_max)

    async def revoke(self, token: str) -> None:
        self.revoked.append(token)


@pytest.fixture
def db_session():
    """Fresh in-memory database per test"""
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def _make_user(db, uid: str, email: str) -> User:
    user = User(firebase_uid=uid, email=email, full_name="Test Owner")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def user(db_session):
    return _make_user(db_session, "firebase-uid-1", "owner@example.com")


@pytest.fixture
def other_user(db_session):
    return _make_user(db_session, "firebase-uid-2", "someone@example.com")


@pytest.fixture
def provider():
    return FakeCalendarProvider()


@pytest.fixture
def make_client(db_session, provider):
    """Build a TestClient acting as the given user (None for anonymous)"""

    def _override_db():
        yield db_session

    def _factory(current_user=None):
        app.dependency_overrides[get_db] = _override_db
        app.dependency_overrides[get_calendar_provider] = lambda: provider
        app.dependency_overrides[get_optional_user] = lambda: current_user
        if current_user is not None:
            app.dependency_overrides[get_current_user] = lambda: current_user
        else:
            app.dependency_overrides.pop(get_current_user, None)
        return TestClient(app)

    yield _factory
    app.dependency_overrides.clear()


@pytest.fixture
def client(make_client, user):
    return make_client(user)


@pytest.fixture
def anonymous_client(make_client):
    return make_client(None)


@pytest.fixture
def booking_type_payload():
    return {
        "name": "30 Minute Meeting",
        "slug": "30-minute-meeting",
        "duration": 30,
        "description": "A quick call",
        "location": "Zoom",
        "availability": {
            "monday": {"enabled": True, "start": "09:00", "end": "17:00"},
            "saturday": {"enabled": False, "start": "09:00", "end": "17:00"},
        },
        "questions": [
            {"id": "q1", "label": "What should we discuss?", "type": "textarea", "required": True}
        ],
    }


@pytest.fixture
def connected(db_session, user):
    """Store a valid (not near-expiry) Google connection for the user"""
    from slotbook.domain.calendar.repository import CalendarTokenRepository

    def _connect(expires_in=timedelta(hours=1), refresh_token="stored-refresh"):
        tokens = TokenSet(
            access_token="stored-access",
            refresh_token=refresh_token,
            expires_at=datetime.utcnow() + expires_in,
        )
        return CalendarTokenRepository(db_session).upsert(user.id, tokens, "owner@example.com")

    return _connect
