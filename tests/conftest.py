"""
Pytest configuration and fixtures for TrainWatch API tests.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ALERT_SCHEDULER_ENABLED", "false")
os.environ.setdefault("BILLING_WEBHOOK_SECRET", "test-webhook-secret")

from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from trainwatch.config import get_settings
from trainwatch.database import Base, get_db
from trainwatch.limiter import limiter
from trainwatch.main import app
from trainwatch.models import Employee, User
from trainwatch.auth import get_password_hash, create_access_token
from trainwatch.services.mailer import MailTransport
from trainwatch.storage import Storage

# Disable rate limiting for tests
limiter.enabled = False

# Use in-memory SQLite for tests with shared connection
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Global session for sharing across requests
_test_session = None


def get_test_db():
    """Get the shared test database session."""
    yield _test_session


class RecordingTransport(MailTransport):
    """Mail transport that records messages and fails for chosen recipients or subjects."""

    def __init__(self, fail_for=None):
        self.sent = []
        self.attempts = []
        self.fail_for = set(fail_for or [])

    def send_message(self, message):
        self.attempts.append(message)
        if message.to in self.fail_for or any(token in message.subject for token in self.fail_for):
            return False
        self.sent.append(message)
        return True


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    global _test_session

    Base.metadata.create_all(bind=engine)
    _test_session = TestingSessionLocal()
    app.dependency_overrides[get_db] = get_test_db

    yield _test_session

    app.dependency_overrides.clear()
    _test_session.close()
    _test_session = None
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    """Create a test client."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def storage(db):
    return Storage(db)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def make_transport():
    """Factory for recording transports that fail for the given recipients or subject tokens."""
    def _make(*fail_for):
        return RecordingTransport(fail_for=fail_for)
    return _make


@pytest.fixture
def session_factory(db):
    """Open extra sessions on the shared test database."""
    return TestingSessionLocal


@pytest.fixture(scope="function")
def test_user(db):
    """Create a test user on an active subscription."""
    user = User(
        email="test@example.com",
        hashed_password=get_password_hash("testpassword123"),
        first_name="Test",
        last_name="User",
        company_name="Test Co",
        is_active=True,
        subscription_status="active",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(scope="function")
def trial_user(db):
    """A user whose trial is still running."""
    user = User(
        email="trial@example.com",
        hashed_password=get_password_hash("trialpassword123"),
        subscription_status="trial",
        trial_ends_at=datetime.now(timezone.utc) + timedelta(days=3),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(scope="function")
def employee(db, test_user):
    employee = Employee(
        user_id=test_user.id,
        name="Ana Souza",
        email="ana@example.com",
        position="Electrician",
    )
    db.add(employee)
    db.commit()
    db.refresh(employee)
    return employee


@pytest.fixture(scope="function")
def make_training(storage, test_user, employee):
    """Factory for trainings owned by the test user."""
    def _make(title="NR-10", completion_date=date(2024, 1, 1), validity_days=10, **extra):
        data = {
            "employee_id": employee.id,
            "title": title,
            "completion_date": completion_date,
            "validity_days": validity_days,
        }
        data.update(extra)
        return storage.create_training(test_user.id, data)
    return _make


@pytest.fixture
def make_headers():
    """Build bearer auth headers for any user."""
    def _headers(user):
        token = create_access_token({"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture(scope="function")
def auth_headers(test_user, make_headers):
    """Get auth headers for the test user."""
    return make_headers(test_user)
