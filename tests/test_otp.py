"""OTP service: attempt limiting, expiry and single-winner consumption."""

from datetime import timedelta
from types import SimpleNamespace

from conftest import make_user
from database import utcnow
from models.otp_code import OtpCode
from services.otp import (
    OtpError,
    check_otp_attempt,
    create_otp_code,
    generate_otp,
    get_active_otp,
    invalidate_user_otps,
    issue_otp_code,
    verify_otp_code,
)


def wrong(code):
    return "000000" if code != "000000" else "111111"


def snapshot(record):
    """Detached copy of a row as another request would have read it."""
    return SimpleNamespace(
        id=record.id, user_id=record.user_id, code=record.code,
        attempts=record.attempts, expires_at=record.expires_at,
    )


def test_generate_otp_is_six_digits_in_range():
    for _ in range(200):
        code = generate_otp()
        assert len(code) == 6 and code.isdigit()
        assert 100000 <= int(code) <= 999999


def test_verify_success_consumes_code(db_session):
    user = make_user(db_session)
    code = create_otp_code(db_session, user.id)

    result = verify_otp_code(db_session, user.id, code)
    assert result.success and result.user_id == user.id

    # Same code again: no unused code left
    again = verify_otp_code(db_session, user.id, code)
    assert not again.success and again.error == OtpError.INVALID


def test_no_code_is_invalid(db_session):
    user = make_user(db_session)
    result = verify_otp_code(db_session, user.id, "123456")
    assert result.error == OtpError.INVALID


def test_attempt_exhaustion_blocks_correct_code(db_session):
    user = make_user(db_session)
    code = create_otp_code(db_session, user.id)

    errors = [verify_otp_code(db_session, user.id, wrong(code)).error for _ in range(5)]
    assert errors == [OtpError.INVALID] * 4 + [OtpError.MAX_ATTEMPTS]

    # The right code no longer works once the counter is exhausted
    result = verify_otp_code(db_session, user.id, code)
    assert not result.success and result.error == OtpError.MAX_ATTEMPTS

    db_session.expire_all()
    record = db_session.query(OtpCode).filter_by(user_id=user.id).one()
    assert record.attempts == 5
    assert record.used_at is None


def test_expired_code(db_session):
    user = make_user(db_session)
    code = create_otp_code(db_session, user.id)
    record = get_active_otp(db_session, user.id)
    record.expires_at = utcnow() - timedelta(seconds=1)
    db_session.commit()

    result = verify_otp_code(db_session, user.id, code)
    assert result.error == OtpError.EXPIRED


def test_max_attempts_checked_before_expiry(db_session):
    user = make_user(db_session)
    create_otp_code(db_session, user.id)
    record = get_active_otp(db_session, user.id)
    record.attempts = 5
    record.expires_at = utcnow() - timedelta(minutes=1)
    db_session.commit()

    assert verify_otp_code(db_session, user.id, "123456").error == OtpError.MAX_ATTEMPTS


def test_issue_replaces_outstanding_code(db_session):
    user = make_user(db_session)
    first = issue_otp_code(db_session, user.id)
    second = issue_otp_code(db_session, user.id)

    assert db_session.query(OtpCode).filter(OtpCode.user_id == user.id, OtpCode.used_at.is_(None)).count() == 1
    if first != second:
        assert verify_otp_code(db_session, user.id, first).error == OtpError.INVALID
    assert verify_otp_code(db_session, user.id, second).success


def test_invalidate_marks_expired_codes_too(db_session):
    user = make_user(db_session)
    create_otp_code(db_session, user.id)
    create_otp_code(db_session, user.id)
    stale = get_active_otp(db_session, user.id)
    stale.expires_at = utcnow() - timedelta(hours=1)
    db_session.commit()

    assert invalidate_user_otps(db_session, user.id) == 2
    assert get_active_otp(db_session, user.id) is None
    assert invalidate_user_otps(db_session, user.id) == 0


def test_other_users_codes_untouched(db_session):
    alice = make_user(db_session, "alice@example.com")
    bob = make_user(db_session, "bob@example.com")
    create_otp_code(db_session, alice.id)
    bob_code = create_otp_code(db_session, bob.id)

    invalidate_user_otps(db_session, alice.id)
    assert verify_otp_code(db_session, bob.id, bob_code).success


def test_concurrent_correct_submissions_single_winner(db_session):
    user = make_user(db_session)
    code = create_otp_code(db_session, user.id)
    record = get_active_otp(db_session, user.id)
    # Both requests read the row before either writes
    first, second = snapshot(record), snapshot(record)

    results = [check_otp_attempt(db_session, first, code), check_otp_attempt(db_session, second, code)]
    assert sum(r.success for r in results) == 1
    assert not results[1].success and results[1].error == OtpError.INVALID


def test_concurrent_wrong_submissions_count_once_each(db_session):
    user = make_user(db_session)
    code = create_otp_code(db_session, user.id)
    record = get_active_otp(db_session, user.id)
    first, second = snapshot(record), snapshot(record)

    check_otp_attempt(db_session, first, wrong(code))
    lost = check_otp_attempt(db_session, second, wrong(code))
    assert lost.error == OtpError.INVALID

    db_session.expire_all()
    assert get_active_otp(db_session, user.id).attempts == 1
