from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session
from config import settings
from database import get_db
from errors import AppError, AppErrorCode, otp_error
from logs import log_action
from rate_limit import rate_limit
from schemas.user import (
    ConfirmEmailChange,
    ConfirmEmailChangeResponse,
    DeleteAccount,
    InitiateEmailChange,
    MessageResponse,
    Profile,
    RevokedResponse,
    SessionInfo,
    SessionList,
    StepUpVerify,
    SuccessResponse,
    UpdateName,
)
from security import AuthContext, clear_session_cookie, get_auth_context, require_fresh_otp
from services.account import (
    active_pending_email,
    cancel_email_change,
    confirm_email_change,
    delete_account,
    initiate_email_change,
)
from services.email.base import EmailSender
from services.email.deliver import send_template
from services.email.factory import get_email_sender
from services.email.types import OtpEmail
from services.otp import issue_otp_code, verify_otp_code
from services.sessions import (
    describe_user_agent,
    get_active_by_id,
    list_active_for_user,
    revoke_all_except,
    revoke_by_id,
    update_otp_verified,
)

router = APIRouter()


@router.get("/profile", response_model=Profile)
async def get_profile(context: AuthContext = Depends(get_auth_context)):
    user = context.user
    pending_email = active_pending_email(user)
    return Profile(
        id=user.id,
        email=user.email,
        name=user.name,
        pending_email=pending_email,
        pending_email_expires_at=user.pending_email_expires_at if pending_email else None,
        created_at=user.created_at,
    )


@router.put("/name")
async def update_name(data: UpdateName, context: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    name = data.name.strip()
    if not name:
        raise AppError(AppErrorCode.BAD_REQUEST, "Name is required")
    context.user.name = name
    db.commit()
    return {"success": True, "name": name}


@router.get("/sessions", response_model=SessionList)
async def get_sessions(context: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    sessions = []
    for session in list_active_for_user(db, context.user.id):
        summary = describe_user_agent(session.user_agent)
        sessions.append(SessionInfo(
            id=session.id,
            device=summary.device,
            browser=summary.browser,
            os=summary.os,
            ip_address=session.ip_address,
            is_current=session.token == context.token,
            created_at=session.created_at,
            last_active_at=session.last_active_at,
        ))
    return SessionList(sessions=sessions)


@router.delete("/sessions/{session_id}", response_model=SuccessResponse)
async def revoke_session(session_id: str, context: AuthContext = Depends(require_fresh_otp), db: Session = Depends(get_db)):
    session = get_active_by_id(db, context.user.id, session_id)
    if not session:
        raise AppError(AppErrorCode.NOT_FOUND, "Session not found")
    if session.token == context.token:
        raise AppError(AppErrorCode.BAD_REQUEST, "Cannot revoke current session. Use logout instead.")
    revoke_by_id(db, session_id)
    log_action("session_revoked", user=context.user, context={"session_id": session_id})
    return SuccessResponse()


@router.post("/sessions/revoke-others", response_model=RevokedResponse)
async def revoke_all_other_sessions(context: AuthContext = Depends(require_fresh_otp), db: Session = Depends(get_db)):
    revoked = revoke_all_except(db, context.user.id, context.token)
    log_action("sessions_revoked", user=context.user, context={"revoked": revoked})
    return RevokedResponse(revoked_count=revoked)


@router.post("/step-up/request", response_model=MessageResponse, dependencies=[Depends(rate_limit("otp_request"))])
async def request_step_up_otp(
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    """Send a code to the current email; verifying it unlocks sensitive actions for a while"""
    code = issue_otp_code(db, context.user.id)
    await send_template(sender, context.user.email, OtpEmail(code=code, expires_in_minutes=settings.OTP_EXPIRE_MINUTES))
    return MessageResponse(message="Verification code sent to your email")


@router.post("/step-up/verify", response_model=SuccessResponse, dependencies=[Depends(rate_limit("otp_verify"))])
async def verify_step_up_otp(data: StepUpVerify, context: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    result = verify_otp_code(db, context.user.id, data.code)
    if not result.success:
        raise otp_error(result.error)
    update_otp_verified(db, context.session.id)
    log_action("step_up_verified", user=context.user)
    return SuccessResponse()


@router.post("/email-change", response_model=MessageResponse, dependencies=[Depends(rate_limit("otp_request"))])
async def request_email_change(
    data: InitiateEmailChange,
    context: AuthContext = Depends(require_fresh_otp),
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    await initiate_email_change(db, sender, context.user, data.new_email)
    return MessageResponse(message="Verification code sent to your new email address")


@router.post("/email-change/confirm", response_model=ConfirmEmailChangeResponse, dependencies=[Depends(rate_limit("otp_verify"))])
async def confirm_email(data: ConfirmEmailChange, context: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    result = confirm_email_change(db, context.user, data.code, context.token, data.invalidate_other_sessions)
    return ConfirmEmailChangeResponse(email=result.email, revoked_session_count=result.revoked_session_count)


@router.delete("/email-change", response_model=SuccessResponse)
async def cancel_email(context: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    cancel_email_change(db, context.user)
    return SuccessResponse()


@router.post("/delete-account", response_model=SuccessResponse)
async def remove_account(
    data: DeleteAccount,
    response: Response,
    context: AuthContext = Depends(require_fresh_otp),
    db: Session = Depends(get_db),
):
    delete_account(db, context.user, data.confirm_email)
    clear_session_cookie(response)
    return SuccessResponse()
