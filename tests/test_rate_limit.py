"""Rate limit classes and the request dependency."""

from starlette.requests import Request

from conftest import make_user
from models.user import User
from rate_limit import RULES, ClientBucketFactory, bucket_key, client_ip, rule_for_key

API = "/api/v1/auth"


def test_bucket_key_drops_route_suffix():
    assert bucket_key("auth:203.0.113.5:12:0") == "auth:203.0.113.5"
    assert bucket_key("otp-req:::1:4:1") == "otp-req:::1"


def test_factory_buckets_per_client_shared_across_routes():
    factory = ClientBucketFactory(RULES["auth"])
    login = factory.get(factory.wrap_item("auth:1.1.1.1:3:0"))
    register = factory.get(factory.wrap_item("auth:1.1.1.1:9:0"))
    other = factory.get(factory.wrap_item("auth:2.2.2.2:3:0"))

    assert login is register
    assert login is not other
    factory.reset()
    assert factory.buckets == {}


def test_rule_for_key():
    assert rule_for_key("otp-verify:1.2.3.4:5:0") is RULES["otp_verify"]
    assert rule_for_key("otp-req:1.2.3.4:5:0") is RULES["otp_request"]


def test_client_ip_ignores_forwarded_header():
    request = Request({
        "type": "http",
        "method": "POST",
        "path": "/",
        "headers": [(b"x-forwarded-for", b"6.6.6.6")],
        "client": ("10.0.0.2", 5123),
    })
    assert client_ip(request) == "10.0.0.2"


def test_sixth_login_is_rate_limited_before_handler(client, db_session, email_sender):
    make_user(db_session, "known@example.com")
    for _ in range(5):
        assert client.post(f"{API}/login", json={"email": "known@example.com"}).status_code == 200

    resp = client.post(f"{API}/login", json={"email": "known@example.com"})
    assert resp.status_code == 429
    assert resp.json()["code"] == "RATE_LIMITED"
    assert resp.headers["Retry-After"] == "60"
    # The handler never ran for the sixth request
    assert len(email_sender.sent) == 5


def test_rotating_forwarded_for_is_still_limited(client, db_session, email_sender):
    make_user(db_session, "known@example.com")
    statuses = [
        client.post(
            f"{API}/login",
            json={"email": "known@example.com"},
            headers={"X-Forwarded-For": f"10.9.{i}.1"},
        ).status_code
        for i in range(8)
    ]
    assert statuses == [200] * 5 + [429] * 3
    assert len(email_sender.sent) == 5


def test_class_is_shared_across_routes(client, db_session):
    make_user(db_session, "known@example.com")
    for _ in range(3):
        client.post(f"{API}/login", json={"email": "known@example.com"})
    for i in range(2):
        client.post(f"{API}/register", json={"email": f"new{i}@example.com"})

    resp = client.post(f"{API}/request-magic-link", json={"email": "known@example.com"})
    assert resp.status_code == 429


def test_denied_register_creates_nothing(client, db_session):
    for i in range(5):
        client.post(f"{API}/register", json={"email": f"new{i}@example.com", "name": "N"})
    resp = client.post(f"{API}/register", json={"email": "late@example.com", "name": "N"})
    assert resp.status_code == 429
    assert db_session.query(User).filter_by(email="late@example.com").first() is None


def test_otp_request_class_allows_three(client, db_session):
    user = make_user(db_session)
    statuses = [client.post(f"{API}/resend-otp", json={"user_id": user.id}).status_code for _ in range(4)]
    assert statuses == [200, 200, 200, 429]
