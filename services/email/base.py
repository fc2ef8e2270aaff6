from __future__ import annotations
from typing import Protocol
from .types import SendEmailResult


class EmailSender(Protocol):
    """Best-effort delivery. Implementations report failure in the result and never raise."""

    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> SendEmailResult: ...
