"""
Student Network - Test Configuration and Fixtures
"""
import os
from typing import Generator

import pytest
from faker import Faker
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set testing environment before the app reads its settings
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['RATE_LIMIT_ENABLED'] = 'false'
os.environ['OTP_RESEND_COOLDOWN_SECONDS'] = '0'
os.environ['LOG_LEVEL'] = 'WARNING'

from studentnet.main import app
from studentnet import models
from studentnet.core.exceptions import ExternalServiceError
from studentnet.core.security import create_session_token, get_password_hash
from studentnet.database import Base, get_db
from studentnet.storage import get_storage
from studentnet.utils import get_mailer, utcnow

fake = Faker()

DEFAULT_PASSWORD = 'Password123'
# One argon2 hash shared by every fixture account
DEFAULT_PASSWORD_HASH = get_password_hash(DEFAULT_PASSWORD)

test_engine = create_engine(
    'sqlite://',
    connect_args={'check_same_thread': False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=test_engine, autoflush=False, expire_on_commit=False)


class FakeMailer:
    """Records outgoing mail instead of talking to SMTP"""

    def __init__(self):
        self.sent = []
        self.fail = False

    def _send(self, kind, to_email, name, otp=None):
        if self.fail:
            raise ExternalServiceError("mailer", "Failed to send email. Please try again.")
        self.sent.append({"kind": kind, "to": to_email, "name": name, "otp": otp})
        return f"<{len(self.sent)}@studentnet.test>"

    def send_otp_email(self, to_email, name, otp):
        return self._send("otp", to_email, name, otp)

    def send_password_reset_email(self, to_email, name, otp):
        return self._send("password_reset", to_email, name, otp)

    def send_welcome_email(self, to_email, name):
        return self._send("welcome", to_email, name)

    def last_code(self, email):
        for message in reversed(self.sent):
            if message["to"] == email and message["otp"]:
                return message["otp"]
        return None


class FakeStorage:
    base_url = "https://storage.test"

    def __init__(self):
        self.objects = {}
        self.deleted = []

    def store(self, data, extension, content_type, folder):
        url = f"{self.base_url}/{folder}/{len(self.objects) + len(self.deleted) + 1}.{extension}"
        self.objects[url] = data
        return url

    def delete(self, url):
        self.objects.pop(url, None)
        self.deleted.append(url)


@pytest.fixture(scope='function')
def db_session() -> Generator[Session, None, None]:
    """Fresh schema and session for each test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def client(db_session: Session, mailer: FakeMailer, storage: FakeStorage) -> Generator[TestClient, None, None]:
    """Test client with database, mailer and storage overrides"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_storage] = lambda: storage

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session: Session):
    """Factory for persisted accounts; verified and active unless told otherwise"""
    def _make_user(**overrides) -> models.User:
        fields = {
            "name": fake.name()[:50],
            "email": fake.unique.email().lower(),
            "roll_number": f"21CS{fake.unique.random_int(min=10000, max=99999)}",
            "hashed_password": DEFAULT_PASSWORD_HASH,
            "year": "3",
            "branch": "Computer Science",
            "skills": [],
            "interests": [],
            "is_verified": True,
            "is_admin": False,
            "account_status": models.AccountStatus.ACTIVE,
        }
        fields.update(overrides)
        user = models.User(**fields)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def auth_headers():
    def _auth_headers(user: models.User) -> dict:
        return {"Authorization": f"Bearer {create_session_token(user.id)}"}

    return _auth_headers


@pytest.fixture
def connect(db_session: Session):
    """Store an accepted edge between two accounts directly"""
    def _connect(a: models.User, b: models.User,
                 status: models.ConnectionStatus = models.ConnectionStatus.ACCEPTED) -> models.Connection:
        now = utcnow()
        connection = models.Connection(
            sender_id=a.id,
            receiver_id=b.id,
            user_low_id=min(a.id, b.id),
            user_high_id=max(a.id, b.id),
            status=status,
            message="",
            requested_at=now,
            responded_at=now if status != models.ConnectionStatus.PENDING else None,
        )
        db_session.add(connection)
        db_session.commit()
        db_session.refresh(connection)
        return connection

    return _connect
