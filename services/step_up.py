"""Freshness policy for sensitive mutations.

A session may perform a sensitive action (email change, account deletion,
session revocation) only within STEP_UP_WINDOW_MINUTES of its last step-up OTP.
"""
from __future__ import annotations
from datetime import datetime, timedelta
from config import settings
from database import utcnow
from models.session import UserSession


def step_up_window() -> timedelta:
    return timedelta(minutes=settings.STEP_UP_WINDOW_MINUTES)


def is_fresh(session: UserSession, now: datetime | None = None) -> bool:
    verified_at = session.last_otp_verified_at
    if verified_at is None:
        return False
    now = now or utcnow()
    return now - verified_at <= step_up_window()
