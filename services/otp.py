"""One-time code service.

Functions:
- generate_otp() -> str
- create_otp_code(db, user_id) -> str (does not touch earlier codes)
- invalidate_user_otps(db, user_id) -> int
- issue_otp_code(db, user_id) -> str (invalidate + create; what every flow sends)
- verify_otp_code(db, user_id, code) -> VerifyOtpResult

Race safety comes from conditional updates: the attempt counter is bumped with
a compare-and-set on its previous value and a code is consumed with
``used_at IS NULL`` in the WHERE clause, so two concurrent verifications of the
same row can never both succeed.
"""
from __future__ import annotations
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from sqlalchemy.orm import Session
from config import settings
from database import utcnow
from models.otp_code import OtpCode

OTP_MIN = 100000
OTP_MAX = 999999


class OtpError(str, Enum):
    EXPIRED = "expired"
    INVALID = "invalid"
    MAX_ATTEMPTS = "max_attempts"


@dataclass(frozen=True)
class VerifyOtpResult:
    success: bool
    user_id: Optional[str] = None
    error: Optional[OtpError] = None

    @classmethod
    def ok(cls, user_id: str) -> "VerifyOtpResult":
        return cls(success=True, user_id=user_id)

    @classmethod
    def fail(cls, error: OtpError) -> "VerifyOtpResult":
        return cls(success=False, error=error)


def generate_otp() -> str:
    """Uniform over [100000, 999999] from a CSPRNG."""
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def create_otp_code(db: Session, user_id: str) -> str:
    code = generate_otp()
    db.add(OtpCode(
        user_id=user_id,
        code=code,
        expires_at=utcnow() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES),
    ))
    db.commit()
    return code


def invalidate_user_otps(db: Session, user_id: str) -> int:
    """Mark every unused code for the user as used, expired or not."""
    count = db.query(OtpCode).filter(
        OtpCode.user_id == user_id,
        OtpCode.used_at.is_(None),
    ).update({OtpCode.used_at: utcnow()}, synchronize_session=False)
    db.commit()
    return count


def issue_otp_code(db: Session, user_id: str) -> str:
    """Replace any outstanding code so only one is ever live per user."""
    invalidate_user_otps(db, user_id)
    return create_otp_code(db, user_id)


def get_active_otp(db: Session, user_id: str) -> Optional[OtpCode]:
    """Most recently created unused code for the user (expiry checked by the caller)."""
    return db.query(OtpCode).filter(
        OtpCode.user_id == user_id,
        OtpCode.used_at.is_(None),
    ).order_by(OtpCode.created_at.desc()).first()


def check_otp_attempt(db: Session, record: OtpCode, code: str, now: datetime | None = None) -> VerifyOtpResult:
    """Spend one attempt of ``record`` on ``code``.

    ``record`` may be stale; every write is conditioned on the state it was read in.
    """
    now = now or utcnow()
    max_attempts = settings.OTP_MAX_ATTEMPTS
    # A maxed-out code is dead before we look at anything else
    if record.attempts >= max_attempts:
        return VerifyOtpResult.fail(OtpError.MAX_ATTEMPTS)
    if record.expires_at < now:
        return VerifyOtpResult.fail(OtpError.EXPIRED)

    record_id, user_id, stored_code = record.id, record.user_id, record.code
    attempts = record.attempts + 1
    claimed = db.query(OtpCode).filter(
        OtpCode.id == record_id,
        OtpCode.used_at.is_(None),
        OtpCode.attempts == record.attempts,
    ).update({OtpCode.attempts: attempts}, synchronize_session=False)
    db.commit()
    if not claimed:
        # Another verification touched this code first
        return VerifyOtpResult.fail(OtpError.INVALID)

    if not hmac.compare_digest(stored_code.encode(), code.encode()):
        if attempts >= max_attempts:
            return VerifyOtpResult.fail(OtpError.MAX_ATTEMPTS)
        return VerifyOtpResult.fail(OtpError.INVALID)

    consumed = db.query(OtpCode).filter(
        OtpCode.id == record_id,
        OtpCode.used_at.is_(None),
    ).update({OtpCode.used_at: now}, synchronize_session=False)
    db.commit()
    if not consumed:
        return VerifyOtpResult.fail(OtpError.INVALID)
    return VerifyOtpResult.ok(user_id)


def verify_otp_code(db: Session, user_id: str, code: str) -> VerifyOtpResult:
    record = get_active_otp(db, user_id)
    if record is None:
        # Indistinguishable from a wrong code
        return VerifyOtpResult.fail(OtpError.INVALID)
    return check_otp_attempt(db, record, code)
