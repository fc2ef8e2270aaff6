from pydantic import BaseModel, ConfigDict, EmailStr, Field
from datetime import datetime
from typing import Literal, Optional

SignInType = Literal["otp", "magic"]


class UserOut(BaseModel):
    id: str
    email: str
    name: str

    model_config = ConfigDict(from_attributes=True)


class RegisterRequest(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(default=None, max_length=100)
    type: SignInType = "otp"
    redirect_url: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    type: SignInType = "otp"
    redirect_url: Optional[str] = None


class CodeSentResponse(BaseModel):
    message: str
    email: str
    user_id: str


class VerifyOtpRequest(BaseModel):
    user_id: str
    code: str = Field(min_length=6, max_length=6)


class ResendOtpRequest(BaseModel):
    user_id: str


class SessionResponse(BaseModel):
    user: UserOut
    token: str


class MagicLinkSessionResponse(SessionResponse):
    redirect_url: Optional[str] = None


class RequestMagicLinkRequest(BaseModel):
    email: EmailStr
    expires_in_hours: Optional[int] = Field(default=None, ge=1, le=168)
    redirect_url: Optional[str] = None


class GenerateMagicLinkRequest(BaseModel):
    user_id: str
    expires_at: Optional[datetime] = None
    redirect_url: Optional[str] = None


class GenerateMagicLinkResponse(BaseModel):
    # url only for your own links; links for a client are emailed to them
    url: Optional[str] = None
    sent_to: Optional[str] = None
    expires_at: datetime


class VerifyMagicLinkRequest(BaseModel):
    token: str = Field(min_length=64, max_length=64)


class MessageResponse(BaseModel):
    message: str


class SuccessResponse(BaseModel):
    success: bool = True


class RevokedResponse(SuccessResponse):
    revoked_count: int


class Profile(BaseModel):
    id: str
    email: str
    name: str
    pending_email: Optional[str] = None
    pending_email_expires_at: Optional[datetime] = None
    created_at: datetime


class UpdateName(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class SessionInfo(BaseModel):
    id: str
    device: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    ip_address: Optional[str] = None
    is_current: bool
    created_at: datetime
    last_active_at: datetime


class SessionList(BaseModel):
    sessions: list[SessionInfo]


class StepUpVerify(BaseModel):
    code: str = Field(min_length=6, max_length=6)


class InitiateEmailChange(BaseModel):
    new_email: EmailStr


class ConfirmEmailChange(BaseModel):
    code: str = Field(min_length=6, max_length=6)
    invalidate_other_sessions: bool = False


class ConfirmEmailChangeResponse(SuccessResponse):
    email: str
    revoked_session_count: Optional[int] = None


class DeleteAccount(BaseModel):
    confirm_email: EmailStr
