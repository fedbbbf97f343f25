"""Shared fixtures: in-memory database, tenant rows and fake HTTP/SMTP collaborators."""

import os
from datetime import timedelta
from unittest.mock import MagicMock

from cryptography.fernet import Fernet

# Settings and the engine are built at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CALENDAR_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["EMAIL_HOST"] = ""
os.environ["EMAIL_FROM_ADDRESS"] = ""
os.environ["GOOGLE_CLIENT_ID"] = ""
os.environ["GOOGLE_CLIENT_SECRET"] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.config.database import get_db  # noqa: E402
from app.config.settings import settings  # noqa: E402
from app.core import tracing  # noqa: E402
from app.models import Base, Business, CalendarIntegration, Service, SystemIntegration  # noqa: E402
from app.services.booking.booking_service import BookingWorkflowCoordinator  # noqa: E402
from app.services.calendar.calendar_sync_service import CalendarSyncOrchestrator  # noqa: E402
from app.services.calendar.google_calendar_service import GoogleCalendarService  # noqa: E402
from app.services.calendar.token_service import TokenLifecycleManager  # noqa: E402
from app.services.notification.notification_service import NotificationDispatcher  # noqa: E402
from app.utils.encryption import encrypt_token  # noqa: E402
from app.utils.time_utils import utcnow  # noqa: E402


def make_response(status_code=200, json_body=None, text=None):
    """Stand-in for requests.Response"""
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    if json_body is not None:
        response.json.return_value = json_body
        response.text = text if text is not None else str(json_body)
    else:
        response.json.side_effect = ValueError("no json")
        response.text = text or ""
    response.content = response.text.encode()
    return response


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
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
def business(db):
    business = Business(
        name="Glow Studio",
        timezone="America/New_York",
        admin_email="owner@glow.test",
    )
    db.add(business)
    db.commit()
    db.refresh(business)
    return business


@pytest.fixture
def service(db, business):
    service = Service(business_id=business.id, name="Haircut", price=45, duration=30)
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


@pytest.fixture
def oauth_client(db):
    row = SystemIntegration(
        integration_type="google_oauth",
        config={"client_id": "client-123", "client_secret": "secret-456"},
    )
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def connect_calendar(db, business):
    """Factory: store an integration for the tenant, expiring after `expires_in`"""

    def _connect(expires_in=timedelta(minutes=30), access="access-old", refresh="refresh-1", calendar_id=None):
        integration = CalendarIntegration(
            business_id=business.id,
            provider="google",
            is_connected=True,
            access_token_encrypted=encrypt_token(access),
            refresh_token_encrypted=encrypt_token(refresh),
            token_expires_at=utcnow() + expires_in,
            calendar_id=calendar_id,
        )
        db.add(integration)
        db.commit()
        db.refresh(integration)
        return integration

    return _connect


@pytest.fixture
def http_response():
    return make_response


@pytest.fixture
def token_http():
    """requests.Session stand-in for the token endpoint"""
    return MagicMock()


@pytest.fixture
def calendar_http():
    """requests.Session stand-in for the Calendar API"""
    http = MagicMock()
    http.post.return_value = make_response(200, {"id": "evt_123", "status": "confirmed"})
    http.delete.return_value = make_response(204)
    return http


@pytest.fixture
def email_service():
    email = MagicMock()
    email.is_configured.return_value = True
    email.send_booking_confirmation_email.return_value = "<customer@mail.test>"
    email.send_booking_admin_notification_email.return_value = "<admin@mail.test>"
    return email


@pytest.fixture
def calendar_sync(db, token_http, calendar_http):
    return CalendarSyncOrchestrator(
        db,
        tokens=TokenLifecycleManager(db, http=token_http),
        calendar=GoogleCalendarService(http=calendar_http),
    )


@pytest.fixture
def coordinator(db, calendar_sync, email_service):
    return BookingWorkflowCoordinator(
        db,
        calendar_sync=calendar_sync,
        notifier=NotificationDispatcher(db, email_service=email_service),
    )


@pytest.fixture
def email_configured(monkeypatch):
    monkeypatch.setattr(settings, "EMAIL_HOST", "smtp.mail.test")
    monkeypatch.setattr(settings, "EMAIL_FROM_ADDRESS", "bookings@mail.test")


@pytest.fixture
def client(session_factory):
    from app.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    # No lifespan: setup_logging() would replace the caplog handler
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def no_active_trace():
    """Each test starts outside any trace"""
    token = tracing._trace_id.set("")
    yield
    tracing._trace_id.reset(token)
