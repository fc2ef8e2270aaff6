"""Long-lived sessions backing the bearer/cookie token."""
from __future__ import annotations
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional
from sqlalchemy.orm import Session
from user_agents import parse as parse_user_agent
from config import settings
from database import utcnow
from models.session import UserSession
from models.user import User

TOKEN_BYTES = 32  # 64 hex characters


@dataclass(frozen=True)
class ValidatedSession:
    user: User
    session: UserSession


def generate_session_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def create_session(db: Session, user_id: str, user_agent: str | None = None, ip_address: str | None = None) -> str:
    now = utcnow()
    token = generate_session_token()
    db.add(UserSession(
        user_id=user_id,
        token=token,
        user_agent=user_agent,
        ip_address=ip_address,
        created_at=now,
        last_active_at=now,
        expires_at=now + timedelta(days=settings.SESSION_EXPIRE_DAYS),
    ))
    db.commit()
    return token


def validate_session(db: Session, token: str) -> Optional[ValidatedSession]:
    """Resolve a live session and touch last_active_at.

    Never-existed, expired and revoked tokens all come back as None.
    """
    now = utcnow()
    row = db.query(UserSession, User).join(User, UserSession.user_id == User.id).filter(
        UserSession.token == token,
        UserSession.expires_at > now,
        UserSession.invalidated_at.is_(None),
    ).first()
    if row is None:
        return None
    session, user = row
    session.last_active_at = now
    db.commit()
    return ValidatedSession(user=user, session=session)


def invalidate_session(db: Session, token: str) -> None:
    db.query(UserSession).filter(
        UserSession.token == token,
        UserSession.invalidated_at.is_(None),
    ).update({UserSession.invalidated_at: utcnow()}, synchronize_session=False)
    db.commit()


def invalidate_all_for_user(db: Session, user_id: str) -> int:
    count = db.query(UserSession).filter(
        UserSession.user_id == user_id,
        UserSession.invalidated_at.is_(None),
    ).update({UserSession.invalidated_at: utcnow()}, synchronize_session=False)
    db.commit()
    return count


def update_otp_verified(db: Session, session_id: str) -> None:
    db.query(UserSession).filter(UserSession.id == session_id).update(
        {UserSession.last_otp_verified_at: utcnow()}, synchronize_session=False
    )
    db.commit()


def list_active_for_user(db: Session, user_id: str) -> List[UserSession]:
    """Live sessions, most recently active first."""
    return db.query(UserSession).filter(
        UserSession.user_id == user_id,
        UserSession.expires_at > utcnow(),
        UserSession.invalidated_at.is_(None),
    ).order_by(UserSession.last_active_at.desc()).all()


def get_active_by_id(db: Session, user_id: str, session_id: str) -> Optional[UserSession]:
    return db.query(UserSession).filter(
        UserSession.id == session_id,
        UserSession.user_id == user_id,
        UserSession.invalidated_at.is_(None),
    ).first()


def revoke_by_id(db: Session, session_id: str) -> bool:
    count = db.query(UserSession).filter(
        UserSession.id == session_id,
        UserSession.invalidated_at.is_(None),
    ).update({UserSession.invalidated_at: utcnow()}, synchronize_session=False)
    db.commit()
    return count == 1


def revoke_all_except(db: Session, user_id: str, current_token: str) -> int:
    count = db.query(UserSession).filter(
        UserSession.user_id == user_id,
        UserSession.token != current_token,
        UserSession.invalidated_at.is_(None),
    ).update({UserSession.invalidated_at: utcnow()}, synchronize_session=False)
    db.commit()
    return count


@dataclass(frozen=True)
class DeviceSummary:
    device: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None


def describe_user_agent(user_agent: str | None) -> DeviceSummary:
    """Human-readable device, browser (major version) and OS for the session list."""
    if not user_agent:
        return DeviceSummary()
    ua = parse_user_agent(user_agent)
    browser = None
    if ua.browser.family and ua.browser.family != "Other":
        major = ua.browser.version[0] if ua.browser.version else None
        browser = f"{ua.browser.family} {major}" if major is not None else ua.browser.family
    os_name = None
    if ua.os.family and ua.os.family != "Other":
        os_name = f"{ua.os.family} {ua.os.version_string}".strip()
    device = None
    if ua.device.brand:
        device = f"{ua.device.brand} {ua.device.model or ''}".strip()
    return DeviceSummary(device=device, browser=browser, os=os_name)
