from __future__ import annotations
from collections import deque
from typing import Deque
from logs import log_action
from .types import SendEmailResult

OUTBOX_SIZE = 50


class ConsoleEmailSender:
    """Development sender: logs the message instead of delivering it.

    Keeps the most recent messages in ``outbox`` for inspection.
    """

    def __init__(self, outbox_size: int = OUTBOX_SIZE):
        self.outbox: Deque[dict] = deque(maxlen=outbox_size)

    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> SendEmailResult:
        self.outbox.append({"to": to, "subject": subject, "html": html, "text": text})
        log_action("email_console", context={"to": to, "subject": subject, "text": text}, level="DEBUG")
        return SendEmailResult(success=True, message_id="console")
