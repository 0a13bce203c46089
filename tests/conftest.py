"""
Shared fixtures and configuration for all tests.
"""
import os
from collections import Counter
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Override environment settings for testing
os.environ["ENVIRONMENT"] = "testing"
os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
os.environ["AUTH_JWT_SECRET"] = "test-jwt-secret"
os.environ["TOKEN_ENCRYPTION_KEY"] = "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY="
os.environ["PROVIDER_BACKOFF_SECONDS"] = "0"
os.environ["BACKEND_CORS_ORIGINS"] = '["http://localhost:3000"]'
os.environ["FRONTEND_URL"] = "http://localhost:3000"
os.environ["SERVER_HOST"] = "http://localhost:8000"
os.environ["GOOGLE_CLIENT_ID"] = "test-google-client"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-google-secret"
os.environ["MICROSOFT_CLIENT_ID"] = "test-microsoft-client"
os.environ["MICROSOFT_CLIENT_SECRET"] = "test-microsoft-secret"

from technique_calendar.main import app
from technique_calendar.api import deps
from technique_calendar.core.config import settings
from technique_calendar.core.constants import CalendarProvider
from technique_calendar.core.crypto import TokenCipher
from technique_calendar.db.base import Base
from technique_calendar.db.session import get_db
from technique_calendar.integrations.calendar.google import GoogleCalendarClient
from technique_calendar.models.resource import Resource
from technique_calendar.repositories.calendar_connection_repository import (
    CalendarConnectionRepository,
)
from technique_calendar.schemas.calendar import ExternalEvent, ProviderCalendar, TokenSet
from technique_calendar.services.calendar_connection_service import CalendarConnectionService
from technique_calendar.services.calendar_event_service import CalendarEventService
from technique_calendar.services.token_refresh_service import TokenRefreshService

TEST_USER_ID = "8c1f2a4e-5b6d-4e7f-9a0b-1c2d3e4f5a6b"

# One in-memory database shared by the test thread and the TestClient threadpool
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FrozenClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeGoogleCalendarClient(GoogleCalendarClient):
    """
    Google adapter with the network methods replaced.

    Payload shaping and the authorization URL are the real implementation.
    ``failures`` maps a method name to an exception, or a list of exceptions
    raised one per call.
    """

    def __init__(self):
        super().__init__(
            "test-google-client",
            "test-google-secret",
            "http://localhost:8000/api/v1/calendar/google/callback",
            timeout=1,
        )
        self.calls = Counter()
        self.failures = {}
        self.exchange_tokens = TokenSet(
            access_token="AT1", refresh_token="RT1", expires_in=3600
        )
        self.refresh_tokens = TokenSet(access_token="AT2", expires_in=3600)
        self.calendars = [
            ProviderCalendar(id="work-calendar", name="Work", primary=False),
            ProviderCalendar(
                id="surgeon@example.com",
                name="surgeon@example.com",
                email="surgeon@example.com",
                primary=True,
            ),
        ]
        self.created = []
        self.deleted = []
        self.revoked = []
        self.refreshed_with = []

    def _record(self, name: str) -> None:
        self.calls[name] += 1
        failure = self.failures.get(name)
        if isinstance(failure, list):
            if failure:
                raise failure.pop(0)
        elif failure is not None:
            raise failure

    def exchange_code(self, code):
        self._record("exchange_code")
        return self.exchange_tokens

    def refresh_token(self, refresh_token):
        self._record("refresh_token")
        self.refreshed_with.append(refresh_token)
        return self.refresh_tokens

    def list_calendars(self, access_token):
        self._record("list_calendars")
        return self.calendars

    def create_event(self, access_token, calendar_id, payload):
        self._record("create_event")
        self.created.append(
            {"access_token": access_token, "calendar_id": calendar_id, "payload": payload}
        )
        event_id = f"evt-{len(self.created)}"
        return ExternalEvent(
            id=event_id, url=f"https://calendar.google.com/calendar/event?eid={event_id}"
        )

    def delete_event(self, access_token, calendar_id, event_id):
        self._record("delete_event")
        self.deleted.append(
            {"access_token": access_token, "calendar_id": calendar_id, "event_id": event_id}
        )

    def revoke_token(self, token):
        self._record("revoke_token")
        self.revoked.append(token)


@pytest.fixture
def db():
    """
    Create a fresh database for each test.
    """
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def user_id():
    return TEST_USER_ID


@pytest.fixture
def clock():
    return FrozenClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture
def cipher():
    return TokenCipher(settings.TOKEN_ENCRYPTION_KEY)


@pytest.fixture
def fake_google():
    return FakeGoogleCalendarClient()


@pytest.fixture
def providers(fake_google):
    return {CalendarProvider.GOOGLE: fake_google}


@pytest.fixture
def token_service(db, cipher, providers, clock):
    return TokenRefreshService(db, cipher=cipher, providers=providers, clock=clock)


@pytest.fixture
def connection_service(db, cipher, providers, clock):
    return CalendarConnectionService(db, cipher=cipher, providers=providers, clock=clock)


@pytest.fixture
def event_service(db, token_service, providers, clock):
    return CalendarEventService(
        db, token_service=token_service, providers=providers, clock=clock
    )


@pytest.fixture
def resource(db):
    """A published resource in the library."""
    resource = Resource(
        id="acl-reconstruction",
        title="ACL Reconstruction",
        url="https://example.org/resources/acl-reconstruction",
        description="Anatomic single-bundle ACL reconstruction",
        is_published=True,
    )
    db.add(resource)
    db.commit()
    return resource


@pytest.fixture
def connect_google(db, cipher, clock, user_id):
    """Store a Google connection directly, bypassing the OAuth flow."""

    def _connect(
        access_token="AT1",
        refresh_token="RT1",
        expires_in=timedelta(hours=1),
        calendar_id="surgeon@example.com",
    ):
        sealed_access = cipher.encrypt(access_token)
        sealed_refresh = cipher.encrypt(refresh_token) if refresh_token else None
        return CalendarConnectionRepository(db).upsert_connection(
            user_id,
            CalendarProvider.GOOGLE.value,
            {
                "access_token_encrypted": sealed_access.ciphertext,
                "access_token_iv": sealed_access.iv,
                "refresh_token_encrypted": sealed_refresh.ciphertext if sealed_refresh else None,
                "refresh_token_iv": sealed_refresh.iv if sealed_refresh else None,
                "token_expires_at": clock() + expires_in,
                "calendar_id": calendar_id,
                "calendar_email": calendar_id,
                "calendar_name": calendar_id,
            },
        )

    return _connect


@pytest.fixture
def client():
    """Return a TestClient for making requests to the app."""
    yield TestClient(app)
    app.dependency_overrides = {}


@pytest.fixture
def authorized_client(client, db, user_id, connection_service, event_service):
    """Return a TestClient that skips authentication and uses the test services."""

    def override_get_db():
        yield db

    app.dependency_overrides[deps.get_current_user_id] = lambda: user_id
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_connection_service] = lambda: connection_service
    app.dependency_overrides[deps.get_event_service] = lambda: event_service

    yield client

    app.dependency_overrides = {}
