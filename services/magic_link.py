"""Magic link tokens: single-use sign-in URLs.

Typical use::

    token = create_magic_link(db, CreateMagicLinkOptions(user_id=user.id, redirect_url="/forms"))
    result = redeem_magic_link(db, token)
    if result.success:
        ...issue a session for result.user

``redeem_magic_link`` is validate + conditional consume. Whichever request flips
``used_at`` from NULL wins; a request that validated but lost the race is told
``already_used``, so one link can never mint two sessions.
"""
from __future__ import annotations
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from urllib.parse import quote
from sqlalchemy.orm import Session
from config import settings
from database import utcnow
from models.magic_link import MagicLink
from models.user import User

TOKEN_BYTES = 32  # 64 hex characters


class MagicLinkError(str, Enum):
    NOT_FOUND = "not_found"
    ALREADY_USED = "already_used"
    EXPIRED = "expired"


@dataclass
class CreateMagicLinkOptions:
    user_id: str
    expires_at: Optional[datetime] = None
    created_by: Optional[str] = None
    redirect_url: Optional[str] = None
    ip_address: Optional[str] = None


@dataclass(frozen=True)
class ValidateMagicLinkResult:
    success: bool
    magic_link: Optional[MagicLink] = None
    user: Optional[User] = None
    error: Optional[MagicLinkError] = None


def generate_magic_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def default_expiry() -> datetime:
    return utcnow() + timedelta(hours=settings.MAGIC_LINK_EXPIRE_HOURS)


def create_magic_link(db: Session, options: CreateMagicLinkOptions) -> str:
    # The unique constraint on token is the backstop; 256 bits make a retry loop pointless
    token = generate_magic_token()
    db.add(MagicLink(
        user_id=options.user_id,
        token=token,
        expires_at=options.expires_at or default_expiry(),
        created_by=options.created_by,
        redirect_url=options.redirect_url,
        ip_address=options.ip_address,
    ))
    db.commit()
    return token


def validate_magic_link(db: Session, token: str, now: datetime | None = None) -> ValidateMagicLinkResult:
    """Check order matters: a used-and-expired link reports already_used."""
    now = now or utcnow()
    row = db.query(MagicLink, User).join(User, MagicLink.user_id == User.id).filter(
        MagicLink.token == token
    ).first()
    if row is None:
        return ValidateMagicLinkResult(success=False, error=MagicLinkError.NOT_FOUND)
    link, user = row
    if link.used_at is not None:
        return ValidateMagicLinkResult(success=False, error=MagicLinkError.ALREADY_USED)
    if link.expires_at < now:
        return ValidateMagicLinkResult(success=False, error=MagicLinkError.EXPIRED)
    return ValidateMagicLinkResult(success=True, magic_link=link, user=user)


def consume_magic_link(db: Session, token: str) -> bool:
    """Mark the link used. Returns False if it was already consumed (no double-marking)."""
    count = db.query(MagicLink).filter(
        MagicLink.token == token,
        MagicLink.used_at.is_(None),
    ).update({MagicLink.used_at: utcnow()}, synchronize_session=False)
    db.commit()
    return count == 1


def redeem_magic_link(db: Session, token: str) -> ValidateMagicLinkResult:
    result = validate_magic_link(db, token)
    if not result.success:
        return result
    if not consume_magic_link(db, token):
        return ValidateMagicLinkResult(success=False, error=MagicLinkError.ALREADY_USED)
    # Rows were expired by the commit and reload with used_at set on access
    return result


def build_magic_link_url(token: str, redirect_url: str | None = None) -> str:
    url = f"{settings.WEB_URL}/login/magic?token={token}"
    if redirect_url:
        url += f"&redirect={quote(redirect_url, safe='')}"
    return url
