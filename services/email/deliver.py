from __future__ import annotations
from .base import EmailSender
from .render import render_email
from .types import EmailTemplate, SendEmailResult


async def send_template(sender: EmailSender, to: str, template: EmailTemplate) -> SendEmailResult:
    rendered = render_email(template)
    return await sender.send(to, rendered.subject, rendered.html, rendered.text)
