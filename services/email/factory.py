from __future__ import annotations
from functools import lru_cache
from config import settings
from .base import EmailSender
from .console import ConsoleEmailSender
from .smtp import SmtpEmailSender


@lru_cache
def get_email_sender() -> EmailSender:
    """FastAPI dependency; tests override it with a recording sender."""
    backend = settings.EMAIL_BACKEND.lower()
    if backend == "smtp":
        return SmtpEmailSender()
    if backend == "console":
        return ConsoleEmailSender()
    raise ValueError(f"Unsupported email backend {settings.EMAIL_BACKEND}")
