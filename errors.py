"""Application error codes and their HTTP mapping.

Business outcomes (wrong OTP, used magic link, ...) come back from the services
as result objects; endpoints translate them into an ``AppError`` so the client
receives both an HTTP status and a machine-readable ``code``.
"""
from enum import Enum
from fastapi import HTTPException, status
from services.magic_link import MagicLinkError
from services.otp import OtpError


class AppErrorCode(str, Enum):
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    EMAIL_ALREADY_EXISTS = "EMAIL_ALREADY_EXISTS"
    UNAUTHORIZED = "UNAUTHORIZED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    OTP_EXPIRED = "OTP_EXPIRED"
    OTP_INVALID = "OTP_INVALID"
    OTP_MAX_ATTEMPTS = "OTP_MAX_ATTEMPTS"
    MAGIC_LINK_INVALID = "MAGIC_LINK_INVALID"
    MAGIC_LINK_EXPIRED = "MAGIC_LINK_EXPIRED"
    MAGIC_LINK_USED = "MAGIC_LINK_USED"
    REQUEST_NEW_OTP = "REQUEST_NEW_OTP"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    BAD_REQUEST = "BAD_REQUEST"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


APP_CODE_TO_STATUS = {
    AppErrorCode.INVALID_CREDENTIALS: status.HTTP_400_BAD_REQUEST,
    AppErrorCode.EMAIL_ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    AppErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    AppErrorCode.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AppErrorCode.OTP_EXPIRED: status.HTTP_400_BAD_REQUEST,
    AppErrorCode.OTP_INVALID: status.HTTP_400_BAD_REQUEST,
    AppErrorCode.OTP_MAX_ATTEMPTS: status.HTTP_429_TOO_MANY_REQUESTS,
    AppErrorCode.MAGIC_LINK_INVALID: status.HTTP_404_NOT_FOUND,
    AppErrorCode.MAGIC_LINK_EXPIRED: status.HTTP_400_BAD_REQUEST,
    AppErrorCode.MAGIC_LINK_USED: status.HTTP_400_BAD_REQUEST,
    AppErrorCode.REQUEST_NEW_OTP: status.HTTP_403_FORBIDDEN,
    AppErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AppErrorCode.ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    AppErrorCode.BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
    AppErrorCode.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    AppErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class AppError(HTTPException):
    """HTTPException carrying an application-specific error code."""

    def __init__(self, code: AppErrorCode, message: str, headers: dict | None = None):
        super().__init__(status_code=APP_CODE_TO_STATUS[code], detail=message, headers=headers)
        self.app_code = code


def not_found(resource: str, id: str | None = None) -> AppError:
    message = f"{resource} with id {id} not found" if id else f"{resource} not found"
    return AppError(AppErrorCode.NOT_FOUND, message)


def already_exists(resource: str, identifier: str | None = None) -> AppError:
    message = f'{resource} "{identifier}" already exists' if identifier else f"{resource} already exists"
    return AppError(AppErrorCode.ALREADY_EXISTS, message)


OTP_ERRORS = {
    OtpError.EXPIRED: (AppErrorCode.OTP_EXPIRED, "Verification code has expired"),
    OtpError.INVALID: (AppErrorCode.OTP_INVALID, "Invalid verification code"),
    OtpError.MAX_ATTEMPTS: (AppErrorCode.OTP_MAX_ATTEMPTS, "Too many attempts. Please request a new code."),
}

MAGIC_LINK_ERRORS = {
    MagicLinkError.NOT_FOUND: (AppErrorCode.MAGIC_LINK_INVALID, "Invalid magic link."),
    MagicLinkError.EXPIRED: (AppErrorCode.MAGIC_LINK_EXPIRED, "This magic link has expired."),
    MagicLinkError.ALREADY_USED: (AppErrorCode.MAGIC_LINK_USED, "This magic link has already been used."),
}


def otp_error(error: OtpError) -> AppError:
    code, message = OTP_ERRORS[error]
    return AppError(code, message)


def magic_link_error(error: MagicLinkError) -> AppError:
    code, message = MAGIC_LINK_ERRORS[error]
    return AppError(code, message)
