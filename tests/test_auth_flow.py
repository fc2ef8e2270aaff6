"""End-to-end auth flows through the HTTP API."""

from datetime import timedelta

from conftest import auth, latest_code, latest_magic_token, make_user, sign_in
from database import utcnow
from models.magic_link import MagicLink
from models.user import User
from services.magic_link import CreateMagicLinkOptions, create_magic_link

API = "/api/v1/auth"


def test_register_verify_me_logout(client, db_session, email_sender):
    resp = client.post(f"{API}/register", json={"email": "A@X.com", "name": "Alice"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["email"] == "a@x.com"
    user_id = body["user_id"]

    code = latest_code(db_session, user_id)
    assert code in email_sender.to("a@x.com")[0]["text"]

    verified = client.post(f"{API}/verify-otp", json={"user_id": user_id, "code": code})
    assert verified.status_code == 200
    token = verified.json()["token"]
    assert len(token) == 64
    assert verified.json()["user"] == {"id": user_id, "email": "a@x.com", "name": "Alice"}

    me = client.get(f"{API}/me", headers=auth(token))
    assert me.json()["id"] == user_id

    assert client.post(f"{API}/logout", headers=auth(token)).json() == {"success": True}
    assert client.get(f"{API}/me", headers=auth(token)).json() is None


def test_verify_sets_session_cookie_usable_without_header(client, db_session):
    user = make_user(db_session, "cookie@example.com")
    client.post(f"{API}/login", json={"email": "cookie@example.com"})
    resp = client.post(f"{API}/verify-otp", json={"user_id": user.id, "code": latest_code(db_session, user.id)})

    set_cookie = resp.headers["set-cookie"]
    assert "session=" in set_cookie and "HttpOnly" in set_cookie
    assert client.get(f"{API}/me").json()["email"] == "cookie@example.com"

    client.post(f"{API}/logout")
    assert client.get(f"{API}/me").json() is None


def test_register_duplicate_email_conflicts_case_insensitively(client, db_session):
    make_user(db_session, "taken@example.com")
    resp = client.post(f"{API}/register", json={"email": "Taken@Example.com", "name": "T"})
    assert resp.status_code == 409
    assert resp.json()["code"] == "EMAIL_ALREADY_EXISTS"


def test_register_with_magic_link(client, db_session, email_sender):
    resp = client.post(f"{API}/register", json={"email": "m@example.com", "type": "magic", "redirect_url": "/forms"})
    assert resp.status_code == 200
    user = db_session.query(User).filter_by(email="m@example.com").one()
    assert user.name == "M"

    token = latest_magic_token(db_session, user.id)
    html = email_sender.to("m@example.com")[0]["html"]
    assert f"token={token}" in html and "redirect=%2Fforms" in html


def test_login_unknown_email(client):
    resp = client.post(f"{API}/login", json={"email": "ghost@example.com"})
    assert resp.status_code == 404
    assert resp.json()["code"] == "USER_NOT_FOUND"


def test_wrong_code_error_shape(client, db_session):
    user = make_user(db_session)
    client.post(f"{API}/login", json={"email": user.email})
    code = latest_code(db_session, user.id)
    bad = "000000" if code != "000000" else "111111"

    resp = client.post(f"{API}/verify-otp", json={"user_id": user.id, "code": bad})
    assert resp.status_code == 400
    assert resp.json() == {"detail": "Invalid verification code", "code": "OTP_INVALID"}


def test_resend_otp_supersedes_previous_code(client, db_session, email_sender):
    user = make_user(db_session)
    client.post(f"{API}/login", json={"email": user.email})
    first = latest_code(db_session, user.id)

    assert client.post(f"{API}/resend-otp", json={"user_id": user.id}).status_code == 200
    second = latest_code(db_session, user.id)
    assert len(email_sender.sent) == 2

    if first != second:
        stale = client.post(f"{API}/verify-otp", json={"user_id": user.id, "code": first})
        assert stale.json()["code"] == "OTP_INVALID"
    assert client.post(f"{API}/verify-otp", json={"user_id": user.id, "code": second}).status_code == 200


def test_resend_otp_unknown_user(client):
    resp = client.post(f"{API}/resend-otp", json={"user_id": "does-not-exist"})
    assert resp.status_code == 404


def test_protected_endpoint_requires_session(client):
    resp = client.post(f"{API}/logout")
    assert resp.status_code == 401
    assert resp.json()["code"] == "UNAUTHORIZED"
    assert client.post(f"{API}/logout", headers=auth("f" * 64)).status_code == 401


def test_logout_all_revokes_every_session(client, db_session):
    user = make_user(db_session)
    tokens = [sign_in(db_session, user) for _ in range(3)]

    resp = client.post(f"{API}/logout-all", headers=auth(tokens[0]))
    assert resp.json()["revoked_count"] == 3
    for token in tokens:
        assert client.get(f"{API}/me", headers=auth(token)).json() is None


def test_request_magic_link_is_enumeration_safe(client, db_session, email_sender):
    make_user(db_session, "real@example.com")

    known = client.post(f"{API}/request-magic-link", json={"email": "real@example.com"})
    unknown = client.post(f"{API}/request-magic-link", json={"email": "nobody@example.com"})

    assert known.status_code == unknown.status_code == 200
    assert known.content == unknown.content
    assert [m["to"] for m in email_sender.sent] == ["real@example.com"]


def test_request_magic_link_custom_expiry_bounds(client, db_session):
    user = make_user(db_session, "real@example.com")
    assert client.post(f"{API}/request-magic-link", json={"email": user.email, "expires_in_hours": 169}).status_code == 422

    client.post(f"{API}/request-magic-link", json={"email": user.email, "expires_in_hours": 2})
    link = db_session.query(MagicLink).filter_by(user_id=user.id).one()
    assert link.expires_at - utcnow() <= timedelta(hours=2)


def test_magic_link_signs_in_once(client, db_session):
    user = make_user(db_session, "link@example.com")
    client.post(f"{API}/request-magic-link", json={"email": user.email, "redirect_url": "/forms"})
    token = latest_magic_token(db_session, user.id)

    first = client.post(f"{API}/verify-magic-link", json={"token": token})
    assert first.status_code == 200
    assert first.json()["redirect_url"] == "/forms"
    session_token = first.json()["token"]
    assert client.get(f"{API}/me", headers=auth(session_token)).json()["id"] == user.id

    second = client.post(f"{API}/verify-magic-link", json={"token": token})
    assert second.status_code == 400
    assert second.json()["code"] == "MAGIC_LINK_USED"


def test_magic_link_errors(client, db_session):
    user = make_user(db_session)
    expired = create_magic_link(db_session, CreateMagicLinkOptions(
        user_id=user.id, expires_at=utcnow() - timedelta(minutes=5)
    ))

    missing = client.post(f"{API}/verify-magic-link", json={"token": "a" * 64})
    assert (missing.status_code, missing.json()["code"]) == (404, "MAGIC_LINK_INVALID")

    stale = client.post(f"{API}/verify-magic-link", json={"token": expired})
    assert (stale.status_code, stale.json()["code"]) == (400, "MAGIC_LINK_EXPIRED")


def test_generate_magic_link_for_self(client, db_session):
    user = make_user(db_session)
    token = sign_in(db_session, user)
    resp = client.post(f"{API}/generate-magic-link", json={"user_id": user.id, "redirect_url": "/forms"}, headers=auth(token))
    assert resp.status_code == 200
    assert "/login/magic?token=" in resp.json()["url"]
    assert resp.json()["sent_to"] is None
    link = db_session.query(MagicLink).filter_by(user_id=user.id).one()
    assert link.created_by == user.id


def test_generate_magic_link_requires_relationship(client, db_session):
    realtor = make_user(db_session, "realtor@example.com", is_realtor=True)
    stranger = make_user(db_session, "stranger@example.com")
    token = sign_in(db_session, realtor)

    resp = client.post(f"{API}/generate-magic-link", json={"user_id": stranger.id}, headers=auth(token))
    assert resp.status_code == 404
    assert resp.json()["code"] == "NOT_FOUND"


def test_generate_magic_link_rejects_far_expiry(client, db_session):
    user = make_user(db_session)
    token = sign_in(db_session, user)
    too_far = (utcnow() + timedelta(hours=200)).isoformat()
    resp = client.post(f"{API}/generate-magic-link", json={"user_id": user.id, "expires_at": too_far}, headers=auth(token))
    assert resp.status_code == 400


def test_health(client):
    resp = client.get("/health")
    assert resp.json() == {"status": "ok"}
    assert resp.headers["X-Request-ID"]
