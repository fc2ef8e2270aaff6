"""Render email templates to subject, HTML and plain text.

Each template dataclass has exactly one renderer in ``_RENDERERS``; adding a
variant to ``EmailTemplate`` without a renderer fails at import time.
"""
from __future__ import annotations
import html
from typing import Callable, Dict, Optional, Tuple, get_args
from config import settings
from .types import (
    EmailChangeNotificationEmail,
    EmailTemplate,
    MagicLinkEmail,
    OtpEmail,
    RenderedEmail,
    WaitlistConfirmationEmail,
)

BRAND = "Concord"

# (subject, heading, paragraphs, call to action (label, url) or None)
_Parts = Tuple[str, str, list, Optional[tuple]]


def _otp(t: OtpEmail) -> _Parts:
    return (
        f"Your {BRAND} verification code",
        "Your verification code",
        [
            f"Enter this code to sign in to your account. It expires in {t.expires_in_minutes} minutes.",
            t.code,
        ],
        None,
    )


def _magic_link(t: MagicLinkEmail) -> _Parts:
    if t.expires_at:
        expiry = f"This link expires on {t.expires_at.strftime('%Y-%m-%d %H:%M')} UTC."
    else:
        expiry = f"This link expires in {settings.MAGIC_LINK_EXPIRE_HOURS} hours."
    return (
        f"Sign in to {BRAND}",
        f"Sign in to {BRAND}",
        [f"Click the button below to sign in to your account. {expiry}"],
        (f"Sign in to {BRAND}", t.url),
    )


def _waitlist(t: WaitlistConfirmationEmail) -> _Parts:
    return (
        "You're on the waitlist!",
        "You're on the waitlist!",
        [
            f"Hi {t.name}, thanks for signing up! We're excited to have you on the waitlist.",
            "We'll notify you as soon as early access opens. In the meantime, keep an eye on your inbox.",
        ],
        None,
    )


def _email_change(t: EmailChangeNotificationEmail) -> _Parts:
    return (
        f"Your {BRAND} email address is changing",
        "Email change requested",
        [
            f"A request was made to change the email address on your account to {t.new_email}.",
            "If this wasn't you, sign in and cancel the change, then revoke your other sessions.",
        ],
        None,
    )


_RENDERERS: Dict[type, Callable[..., _Parts]] = {
    OtpEmail: _otp,
    MagicLinkEmail: _magic_link,
    WaitlistConfirmationEmail: _waitlist,
    EmailChangeNotificationEmail: _email_change,
}

assert set(_RENDERERS) == set(get_args(EmailTemplate)), "every email template needs a renderer"


def _to_html(heading: str, paragraphs: list, cta) -> str:
    body = [f"<h1>{html.escape(heading)}</h1>"]
    body.extend(f"<p>{html.escape(p)}</p>" for p in paragraphs)
    if cta:
        label, url = cta
        href = html.escape(url, quote=True)
        body.append(f'<p><a href="{href}">{html.escape(label)}</a></p>')
        body.append(f"<p>Or copy and paste this URL into your browser:<br>{html.escape(url)}</p>")
    return (
        "<!DOCTYPE html><html><body>"
        + "".join(body)
        + f"<p>{BRAND}</p></body></html>"
    )


def _to_text(heading: str, paragraphs: list, cta) -> str:
    lines = [heading, ""]
    for p in paragraphs:
        lines.extend([p, ""])
    if cta:
        lines.extend([cta[1], ""])
    lines.append(BRAND)
    return "\n".join(lines)


def render_email(template: EmailTemplate) -> RenderedEmail:
    renderer = _RENDERERS.get(type(template))
    if renderer is None:
        raise TypeError(f"Unknown email template {type(template).__name__}")
    subject, heading, paragraphs, cta = renderer(template)
    return RenderedEmail(
        subject=subject,
        html=_to_html(heading, paragraphs, cta),
        text=_to_text(heading, paragraphs, cta),
    )
