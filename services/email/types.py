from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union


@dataclass(frozen=True)
class OtpEmail:
    code: str
    expires_in_minutes: int


@dataclass(frozen=True)
class MagicLinkEmail:
    url: str
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class WaitlistConfirmationEmail:
    name: str


@dataclass(frozen=True)
class EmailChangeNotificationEmail:
    new_email: str


EmailTemplate = Union[OtpEmail, MagicLinkEmail, WaitlistConfirmationEmail, EmailChangeNotificationEmail]


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


@dataclass(frozen=True)
class SendEmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
