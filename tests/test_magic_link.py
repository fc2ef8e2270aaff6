"""Magic link service: single use, error precedence, redeem race."""

import re
from datetime import timedelta

from conftest import make_user
from database import utcnow
from models.magic_link import MagicLink
from services.magic_link import (
    CreateMagicLinkOptions,
    MagicLinkError,
    build_magic_link_url,
    consume_magic_link,
    create_magic_link,
    redeem_magic_link,
    validate_magic_link,
)
from config import settings


def link_for(db, token):
    db.expire_all()
    return db.query(MagicLink).filter_by(token=token).one()


def test_create_returns_64_hex_token_with_default_expiry(db_session):
    user = make_user(db_session)
    token = create_magic_link(db_session, CreateMagicLinkOptions(user_id=user.id))
    assert re.fullmatch(r"[0-9a-f]{64}", token)

    link = link_for(db_session, token)
    remaining = link.expires_at - utcnow()
    assert timedelta(hours=23, minutes=59) < remaining <= timedelta(hours=24)


def test_validate_success_returns_user_and_link(db_session):
    user = make_user(db_session)
    token = create_magic_link(db_session, CreateMagicLinkOptions(user_id=user.id, redirect_url="/forms"))

    result = validate_magic_link(db_session, token)
    assert result.success
    assert result.user.id == user.id
    assert result.magic_link.redirect_url == "/forms"


def test_unknown_token_not_found(db_session):
    assert validate_magic_link(db_session, "f" * 64).error == MagicLinkError.NOT_FOUND


def test_expired_link(db_session):
    user = make_user(db_session)
    token = create_magic_link(db_session, CreateMagicLinkOptions(
        user_id=user.id, expires_at=utcnow() - timedelta(minutes=1)
    ))
    assert validate_magic_link(db_session, token).error == MagicLinkError.EXPIRED


def test_used_and_expired_reports_already_used(db_session):
    user = make_user(db_session)
    token = create_magic_link(db_session, CreateMagicLinkOptions(user_id=user.id))
    assert consume_magic_link(db_session, token)
    link = link_for(db_session, token)
    link.expires_at = utcnow() - timedelta(hours=1)
    db_session.commit()

    assert validate_magic_link(db_session, token).error == MagicLinkError.ALREADY_USED


def test_consume_is_idempotent(db_session):
    user = make_user(db_session)
    token = create_magic_link(db_session, CreateMagicLinkOptions(user_id=user.id))

    assert consume_magic_link(db_session, token) is True
    first_used_at = link_for(db_session, token).used_at
    assert consume_magic_link(db_session, token) is False
    assert link_for(db_session, token).used_at == first_used_at


def test_redeem_only_once(db_session):
    user = make_user(db_session)
    token = create_magic_link(db_session, CreateMagicLinkOptions(user_id=user.id))

    first = redeem_magic_link(db_session, token)
    second = redeem_magic_link(db_session, token)
    assert first.success and first.user.id == user.id
    assert not second.success and second.error == MagicLinkError.ALREADY_USED


def test_redeem_loses_race_after_validation(db_session, monkeypatch):
    user = make_user(db_session)
    token = create_magic_link(db_session, CreateMagicLinkOptions(user_id=user.id))

    import services.magic_link as magic_link

    real_validate = magic_link.validate_magic_link

    def validate_then_lose(db, tok, now=None):
        result = real_validate(db, tok, now)
        # The competing request consumes between our validate and consume
        consume_magic_link(db, tok)
        return result

    monkeypatch.setattr(magic_link, "validate_magic_link", validate_then_lose)
    result = magic_link.redeem_magic_link(db_session, token)
    assert not result.success and result.error == MagicLinkError.ALREADY_USED


def test_build_url_encodes_redirect():
    url = build_magic_link_url("abc", "/forms?step=2&x=y")
    assert url == f"{settings.WEB_URL}/login/magic?token=abc&redirect=%2Fforms%3Fstep%3D2%26x%3Dy"
    assert build_magic_link_url("abc") == f"{settings.WEB_URL}/login/magic?token=abc"
