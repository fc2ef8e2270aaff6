"""Session authentication dependencies.

get_auth_context resolves the session token (bearer header first, then the
session cookie) into an immutable AuthContext. require_fresh_otp adds the
step-up check for sensitive actions.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from config import settings
from database import get_db
from errors import AppError, AppErrorCode
from models.session import UserSession
from models.user import User
from services.sessions import validate_session
from services.step_up import is_fresh

bearer_scheme = HTTPBearer(auto_error=False)

SESSION_MAX_AGE = settings.SESSION_EXPIRE_DAYS * 24 * 60 * 60


@dataclass(frozen=True)
class AuthContext:
    session: UserSession
    user: User
    token: str


def extract_session_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.SESSION_COOKIE_NAME) or None


def _cookie_options() -> dict:
    options = {
        "httponly": True,
        "secure": not settings.DEBUG,
        "samesite": "lax" if settings.DEBUG else "none",
        "path": "/",
    }
    if settings.COOKIE_DOMAIN:
        options["domain"] = settings.COOKIE_DOMAIN
    return options


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(settings.SESSION_COOKIE_NAME, token, max_age=SESSION_MAX_AGE, **_cookie_options())


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(settings.SESSION_COOKIE_NAME, **_cookie_options())


async def get_optional_auth_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[AuthContext]:
    token = extract_session_token(request, credentials)
    if not token:
        return None
    validated = validate_session(db, token)
    if validated is None:
        return None
    return AuthContext(session=validated.session, user=validated.user, token=token)


async def get_auth_context(
    context: Optional[AuthContext] = Depends(get_optional_auth_context),
) -> AuthContext:
    if context is None:
        raise AppError(
            AppErrorCode.UNAUTHORIZED,
            "Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return context


async def require_fresh_otp(context: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not is_fresh(context.session):
        raise AppError(AppErrorCode.REQUEST_NEW_OTP, "Please verify with a new code to continue")
    return context
