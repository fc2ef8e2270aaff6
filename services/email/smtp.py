from __future__ import annotations
from email.message import EmailMessage
from email.utils import make_msgid
import aiosmtplib
from config import settings
from logs import log_action, log_error
from .types import SendEmailResult


class SmtpEmailSender:
    def __init__(self, hostname: str | None = None, port: int | None = None,
                 username: str | None = None, password: str | None = None,
                 from_email: str | None = None):
        self.hostname = hostname or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.username = username if username is not None else settings.SMTP_USERNAME
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.from_email = from_email or settings.FROM_EMAIL

    def build_message(self, to: str, subject: str, html: str, text: str | None = None) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.from_email
        message["To"] = to
        message["Message-ID"] = make_msgid()
        message.set_content(text or "")
        message.add_alternative(html, subtype="html")
        return message

    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> SendEmailResult:
        message = self.build_message(to, subject, html, text)
        try:
            smtp_client = aiosmtplib.SMTP(
                hostname=self.hostname,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                use_tls=False,
                start_tls=True,
            )
            async with smtp_client:
                await smtp_client.send_message(message)
        except Exception as e:
            log_error("email_send_failed", e, context={"to": to, "subject": subject})
            return SendEmailResult(success=False, error=str(e))
        log_action("email_sent", context={"to": to, "subject": subject})
        return SendEmailResult(success=True, message_id=message["Message-ID"])
