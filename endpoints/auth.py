from datetime import timedelta, timezone
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from config import settings
from database import get_db, utcnow
from errors import AppError, AppErrorCode, magic_link_error, not_found, otp_error
from logs import log_action, log_request
from models.user import User
from rate_limit import client_ip, rate_limit
from schemas.user import (
    CodeSentResponse,
    GenerateMagicLinkRequest,
    GenerateMagicLinkResponse,
    LoginRequest,
    MagicLinkSessionResponse,
    MessageResponse,
    RegisterRequest,
    RequestMagicLinkRequest,
    ResendOtpRequest,
    RevokedResponse,
    SessionResponse,
    SuccessResponse,
    UserOut,
    VerifyMagicLinkRequest,
    VerifyOtpRequest,
)
from security import (
    AuthContext,
    clear_session_cookie,
    get_auth_context,
    get_optional_auth_context,
    set_session_cookie,
)
from services.email.base import EmailSender
from services.email.deliver import send_template
from services.email.factory import get_email_sender
from services.email.types import MagicLinkEmail, OtpEmail
from services.invite import activate_client, get_relationship_for_client
from services.magic_link import (
    CreateMagicLinkOptions,
    build_magic_link_url,
    create_magic_link,
    redeem_magic_link,
)
from services.otp import issue_otp_code, verify_otp_code
from services.sessions import create_session, invalidate_all_for_user, invalidate_session
from services.users import create_user, get_user_by_email, get_user_by_id

router = APIRouter()

MAGIC_LINK_REQUESTED = "If an account exists, a magic link has been sent."


async def send_otp(db: Session, sender: EmailSender, user: User) -> None:
    code = issue_otp_code(db, user.id)
    await send_template(sender, user.email, OtpEmail(code=code, expires_in_minutes=settings.OTP_EXPIRE_MINUTES))


async def send_magic_link(db: Session, sender: EmailSender, user: User, request: Request,
                          redirect_url: str | None = None, expires_at=None) -> None:
    token = create_magic_link(db, CreateMagicLinkOptions(
        user_id=user.id,
        expires_at=expires_at,
        redirect_url=redirect_url,
        ip_address=client_ip(request),
    ))
    await send_template(
        sender,
        user.email,
        MagicLinkEmail(url=build_magic_link_url(token, redirect_url), expires_at=expires_at),
    )


def start_session(db: Session, request: Request, response: Response, user: User) -> str:
    token = create_session(db, user.id, user_agent=request.headers.get("user-agent"), ip_address=client_ip(request))
    set_session_cookie(response, token)
    return token


@router.post("/register", response_model=CodeSentResponse, dependencies=[Depends(rate_limit("auth"))])
async def register(
    data: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    """Create an account and send the first sign-in code or link"""
    if get_user_by_email(db, data.email):
        raise AppError(AppErrorCode.EMAIL_ALREADY_EXISTS, "An account with this email already exists.")
    try:
        user = create_user(db, data.email, name=data.name)
    except IntegrityError:
        db.rollback()
        raise AppError(AppErrorCode.EMAIL_ALREADY_EXISTS, "An account with this email already exists.")

    if data.type == "magic":
        await send_magic_link(db, sender, user, request, data.redirect_url)
        message = "Account created! Check your email for a sign-in link."
    else:
        await send_otp(db, sender, user)
        message = "Account created! Check your email for a verification code."
    await log_request(request, "user_registered", user=user, context={"type": data.type})
    return CodeSentResponse(message=message, email=user.email, user_id=user.id)


@router.post("/login", response_model=CodeSentResponse, dependencies=[Depends(rate_limit("auth"))])
async def login(
    data: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    """Identifier-first sign in: send a code (or a link) to a known email"""
    user = get_user_by_email(db, data.email)
    if not user:
        raise AppError(AppErrorCode.USER_NOT_FOUND, "No account found for this email.")
    if data.type == "magic":
        await send_magic_link(db, sender, user, request, data.redirect_url)
        message = "Check your email for a sign-in link."
    else:
        await send_otp(db, sender, user)
        message = "Check your email for a verification code."
    await log_request(request, "sign_in_requested", user=user, context={"type": data.type})
    return CodeSentResponse(message=message, email=user.email, user_id=user.id)


@router.post("/verify-otp", response_model=SessionResponse, dependencies=[Depends(rate_limit("otp_verify"))])
async def verify_otp(data: VerifyOtpRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    result = verify_otp_code(db, data.user_id, data.code)
    if not result.success:
        log_action(
            "otp_verify_failed",
            correlation_id=request.state.request_id,
            context={"user_id": data.user_id, "reason": result.error.value},
            level="WARNING",
        )
        raise otp_error(result.error)

    user = get_user_by_id(db, result.user_id)
    if not user:
        raise AppError(AppErrorCode.USER_NOT_FOUND, "User not found.")
    token = start_session(db, request, response, user)
    log_action("user_signed_in", user=user, correlation_id=request.state.request_id, context={"method": "otp"})
    return SessionResponse(user=UserOut.model_validate(user), token=token)


@router.post("/resend-otp", response_model=MessageResponse, dependencies=[Depends(rate_limit("otp_request"))])
async def resend_otp(
    data: ResendOtpRequest,
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    user = get_user_by_id(db, data.user_id)
    if not user:
        raise AppError(AppErrorCode.USER_NOT_FOUND, "User not found.")
    await send_otp(db, sender, user)
    return MessageResponse(message="A new code has been sent to your email.")


@router.post("/logout", response_model=SuccessResponse)
async def logout(response: Response, context: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    invalidate_session(db, context.token)
    clear_session_cookie(response)
    return SuccessResponse()


@router.post("/logout-all", response_model=RevokedResponse)
async def logout_all(response: Response, context: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    """Sign out everywhere, this device included"""
    revoked = invalidate_all_for_user(db, context.user.id)
    clear_session_cookie(response)
    log_action("user_signed_out_everywhere", user=context.user, context={"revoked": revoked})
    return RevokedResponse(revoked_count=revoked)


@router.get("/me", response_model=UserOut | None)
async def me(context: AuthContext | None = Depends(get_optional_auth_context)):
    if context is None:
        return None
    return UserOut.model_validate(context.user)


@router.post("/request-magic-link", response_model=MessageResponse, dependencies=[Depends(rate_limit("auth"))])
async def request_magic_link(
    data: RequestMagicLinkRequest,
    request: Request,
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    """Same response whether or not the email belongs to an account"""
    user = get_user_by_email(db, data.email)
    if user:
        expires_at = utcnow() + timedelta(hours=data.expires_in_hours) if data.expires_in_hours else None
        await send_magic_link(db, sender, user, request, data.redirect_url, expires_at)
    return MessageResponse(message=MAGIC_LINK_REQUESTED)


@router.post("/generate-magic-link", response_model=GenerateMagicLinkResponse)
async def generate_magic_link(
    data: GenerateMagicLinkRequest,
    request: Request,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    """Mint a link for yourself, or email a fresh one to one of your clients.

    The URL is only returned when it signs in the caller.
    """
    target = get_user_by_id(db, data.user_id)
    if not target:
        raise not_found("User", data.user_id)
    if target.id != context.user.id and not get_relationship_for_client(db, context.user.id, target.id):
        # Indistinguishable from a missing user
        raise not_found("User", data.user_id)

    now = utcnow()
    if data.expires_at:
        expires_at = data.expires_at
        if expires_at.tzinfo is not None:
            expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
        if expires_at <= now or expires_at > now + timedelta(hours=settings.MAGIC_LINK_MAX_EXPIRE_HOURS):
            raise AppError(
                AppErrorCode.BAD_REQUEST,
                f"expires_at must be within {settings.MAGIC_LINK_MAX_EXPIRE_HOURS} hours from now",
            )
    else:
        expires_at = now + timedelta(hours=settings.MAGIC_LINK_EXPIRE_HOURS)

    token = create_magic_link(db, CreateMagicLinkOptions(
        user_id=target.id,
        expires_at=expires_at,
        created_by=context.user.id,
        redirect_url=data.redirect_url,
        ip_address=client_ip(request),
    ))
    url = build_magic_link_url(token, data.redirect_url)
    log_action("magic_link_generated", user=context.user, context={"target_user_id": target.id})
    if target.id == context.user.id:
        return GenerateMagicLinkResponse(url=url, expires_at=expires_at)
    await send_template(sender, target.email, MagicLinkEmail(url=url, expires_at=expires_at))
    return GenerateMagicLinkResponse(sent_to=target.email, expires_at=expires_at)


@router.post("/verify-magic-link", response_model=MagicLinkSessionResponse, dependencies=[Depends(rate_limit("auth"))])
async def verify_magic_link(
    data: VerifyMagicLinkRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    result = redeem_magic_link(db, data.token)
    if not result.success:
        raise magic_link_error(result.error)

    user = result.user
    created_by = result.magic_link.created_by
    redirect_url = result.magic_link.redirect_url
    if created_by and created_by != user.id:
        activate_client(db, created_by, user.id)

    token = start_session(db, request, response, user)
    log_action("user_signed_in", user=user, correlation_id=request.state.request_id, context={"method": "magic_link"})
    return MagicLinkSessionResponse(user=UserOut.model_validate(user), token=token, redirect_url=redirect_url)
