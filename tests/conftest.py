"""Test configuration and fixtures.

Every test gets a fresh in-memory SQLite database (StaticPool keeps the single
connection alive across sessions), a recording email sender in place of the
real one and an empty rate limiter.
"""

import os
from datetime import timedelta
from typing import Generator

# Set env flags BEFORE importing application modules
os.environ.setdefault("DEBUG", "1")
os.environ.setdefault("TESTING", "1")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite://")
os.environ.setdefault("EMAIL_BACKEND", "console")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import database
from database import Base, get_db, utcnow
from main import app  # imports routers & models
from models.otp_code import OtpCode
from models.magic_link import MagicLink
from models.session import UserSession
import rate_limit
from services.email.factory import get_email_sender
from services.email.types import SendEmailResult
from services.sessions import create_session
from services.users import create_user

engine = create_engine(
    "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RecordingEmailSender:
    def __init__(self):
        self.sent = []

    async def send(self, to, subject, html, text=None):
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        return SendEmailResult(success=True, message_id=f"test-{len(self.sent)}")

    def to(self, address):
        return [m for m in self.sent if m["to"] == address]


@pytest.fixture()
def db_session() -> Generator:  # type: ignore
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    rate_limit.reset_rate_limits()
    yield
    rate_limit.reset_rate_limits()


@pytest.fixture(autouse=True)
def override_dependencies(db_session, email_sender):  # type: ignore
    """Point FastAPI at the test session and the recording sender."""
    def _get_db():
        try:
            yield db_session
        finally:
            pass
    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_email_sender] = lambda: email_sender

    # Also redirect direct imports of SessionLocal within tests/modules
    database.SessionLocal = TestingSessionLocal  # type: ignore
    yield
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_email_sender, None)


@pytest.fixture()
def client() -> TestClient:  # type: ignore
    # Function scoped so cookies never leak between tests
    return TestClient(app)


def make_user(db, email="user@example.com", name="Test User", is_realtor=False):
    return create_user(db, email, name=name, is_realtor=is_realtor)


def sign_in(db, user, fresh=False, user_agent=None):
    """Create a session directly; fresh=True stamps a step-up verification now."""
    token = create_session(db, user.id, user_agent=user_agent)
    if fresh:
        session = db.query(UserSession).filter(UserSession.token == token).one()
        session.last_otp_verified_at = utcnow()
        db.commit()
    return token


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def latest_code(db, user_id):
    db.expire_all()
    record = db.query(OtpCode).filter(
        OtpCode.user_id == user_id, OtpCode.used_at.is_(None)
    ).order_by(OtpCode.created_at.desc()).first()
    return record.code if record else None


def latest_magic_token(db, user_id):
    db.expire_all()
    link = db.query(MagicLink).filter(MagicLink.user_id == user_id).order_by(MagicLink.created_at.desc()).first()
    return link.token if link else None


def age_step_up(db, token, minutes):
    session = db.query(UserSession).filter(UserSession.token == token).one()
    session.last_otp_verified_at = utcnow() - timedelta(minutes=minutes)
    db.commit()
