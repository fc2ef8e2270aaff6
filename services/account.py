"""Account management: pending email changes and deletion.

Email change runs in three steps. initiate records the lower-cased pending
address (30 minute window) and sends a code to it; confirm checks the pending
window before the code, so a stale request fails even while the code is still
live; cancel drops both.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from config import settings
from database import utcnow
from errors import AppError, AppErrorCode, otp_error
from logs import log_action
from models.user import User
from services.email.base import EmailSender
from services.email.deliver import send_template
from services.email.types import EmailChangeNotificationEmail, OtpEmail
from services.otp import invalidate_user_otps, issue_otp_code, verify_otp_code
from services.sessions import revoke_all_except
from services.users import canonical_email, get_user_by_email


@dataclass(frozen=True)
class EmailChangeResult:
    email: str
    revoked_session_count: Optional[int] = None


def active_pending_email(user: User, now: datetime | None = None) -> Optional[str]:
    now = now or utcnow()
    if user.pending_email and user.pending_email_expires_at and user.pending_email_expires_at > now:
        return user.pending_email
    return None


def clear_pending_email(db: Session, user: User) -> None:
    user.pending_email = None
    user.pending_email_expires_at = None
    db.commit()


async def initiate_email_change(db: Session, sender: EmailSender, user: User, new_email: str) -> None:
    new_email = canonical_email(new_email)
    if new_email == canonical_email(user.email):
        raise AppError(AppErrorCode.ALREADY_EXISTS, "New email cannot be the same as your current email")
    if get_user_by_email(db, new_email):
        raise AppError(AppErrorCode.EMAIL_ALREADY_EXISTS, "This email is already associated with another account")

    current_email = user.email
    code = issue_otp_code(db, user.id)
    user.pending_email = new_email
    user.pending_email_expires_at = utcnow() + timedelta(minutes=settings.PENDING_EMAIL_EXPIRE_MINUTES)
    db.commit()

    await send_template(sender, new_email, OtpEmail(code=code, expires_in_minutes=settings.OTP_EXPIRE_MINUTES))
    await send_template(sender, current_email, EmailChangeNotificationEmail(new_email=new_email))
    log_action("email_change_initiated", user=user, context={"new_email": new_email})


def confirm_email_change(db: Session, user: User, code: str, current_token: str,
                         invalidate_other_sessions: bool = False) -> EmailChangeResult:
    if not user.pending_email or not user.pending_email_expires_at:
        raise AppError(AppErrorCode.INVALID_CREDENTIALS, "No pending email change found")
    if user.pending_email_expires_at < utcnow():
        clear_pending_email(db, user)
        raise AppError(AppErrorCode.OTP_EXPIRED, "Email change request has expired. Please start again.")

    result = verify_otp_code(db, user.id, code)
    if not result.success:
        raise otp_error(result.error)

    new_email = user.pending_email
    user.email = new_email
    user.pending_email = None
    user.pending_email_expires_at = None
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AppError(AppErrorCode.EMAIL_ALREADY_EXISTS, "This email is already associated with another account")

    revoked = None
    if invalidate_other_sessions:
        revoked = revoke_all_except(db, user.id, current_token)
    log_action("email_changed", user=user, context={"revoked_sessions": revoked})
    return EmailChangeResult(email=new_email, revoked_session_count=revoked)


def cancel_email_change(db: Session, user: User) -> None:
    clear_pending_email(db, user)
    invalidate_user_otps(db, user.id)


def delete_account(db: Session, user: User, confirm_email: str) -> None:
    """Hard delete; sessions, codes, magic links and client relationships cascade."""
    if canonical_email(confirm_email) != canonical_email(user.email):
        raise AppError(AppErrorCode.INVALID_CREDENTIALS, "Email address does not match your account")
    user_id = user.id
    db.delete(user)
    db.commit()
    log_action("account_deleted", context={"user_id": user_id})
