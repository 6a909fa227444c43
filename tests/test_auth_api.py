import re
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest
from starlette.requests import Request

from conftest import auth_headers
from sidebyside.api.routes.auth import refresh_token_from_cookie
from sidebyside.config import settings
from sidebyside.core.clock import utcnow
from sidebyside.core.security import create_refresh_token, decode_access_token, hash_token
from sidebyside.models import FigmaAuthCode, MagicToken, Session, User
from sidebyside.services import mail_service

FIGMA_HEADERS = {"X-Figma-Plugin": "SideBySide/1.0", "User-Agent": "Mozilla/5.0 Figma/116.0"}


@pytest.fixture
def outbox(monkeypatch):
    sent = []
    monkeypatch.setattr(mail_service, "send_magic_link", lambda email, url: sent.append((email, url)))
    return sent


def token_from_link(url):
    fragment = urlparse(url).fragment  # /auth/callback?token=...&returnTo=...
    return parse_qs(fragment.split("?", 1)[1])


def login(client, outbox, email="alice@example.com"):
    client.post("/api/auth/magic-link", json={"email": email})
    token = token_from_link(outbox[-1][1])["token"][0]
    return client.post("/api/auth/verify-token", json={"token": token})


def test_mode(client):
    assert client.get("/api/auth/mode").json() == {"auth_mode": "magic-links", "is_anonymous": False}


def test_mode_anonymous(client, anonymous_mode):
    assert client.get("/api/auth/mode").json()["is_anonymous"] is True


def test_magic_link_emails_a_one_time_link(client, db, outbox):
    response = client.post("/api/auth/magic-link", json={"email": "Alice@Example.com", "returnTo": "/v/abc"})

    assert response.status_code == 200
    assert response.json()["access_token"] is None

    email, url = outbox[0]
    assert email == "alice@example.com"
    assert url.startswith(f"{settings.client_url}/#/auth/callback?")
    params = token_from_link(url)
    assert params["returnTo"] == ["/v/abc"]

    stored = db.query(MagicToken).one()
    assert stored.token_hash == hash_token(params["token"][0])
    assert stored.used_at is None


def test_magic_link_creates_the_user_up_front(client, db, outbox):
    client.post("/api/auth/magic-link", json={"email": "New@Example.com"})
    client.post("/api/auth/magic-link", json={"email": "new@example.com"})

    assert db.query(User).filter(User.email == "new@example.com").count() == 1


def test_magic_link_rejects_bad_email(client, outbox):
    response = client.post("/api/auth/magic-link", json={"email": "not-an-email"})

    assert response.status_code == 400
    assert outbox == []


def test_verify_token_logs_in_once(client, db, outbox):
    response = login(client, outbox)

    assert response.status_code == 200
    body = response.json()
    assert body["user"]["email"] == "alice@example.com"
    assert decode_access_token(body["access_token"])["userId"] == body["user"]["id"]
    assert "refreshToken" in response.cookies
    assert "httponly" in response.headers["set-cookie"].lower()

    token = token_from_link(outbox[-1][1])["token"][0]
    again = client.post("/api/auth/verify-token", json={"token": token})
    assert again.status_code == 400
    assert again.json()["error"] == "Invalid or expired token"

    assert db.query(User).count() == 1
    assert db.query(Session).count() == 1


def test_verify_expired_token(client, db):
    db.add(MagicToken(
        token_hash=hash_token("old"),
        user_email="late@example.com",
        expires_at=utcnow() - timedelta(minutes=1),
    ))
    db.commit()

    response = client.post("/api/auth/verify-token", json={"token": "old"})

    assert response.status_code == 400


def test_auto_approve_logs_in_immediately(client, monkeypatch, outbox):
    monkeypatch.setattr(settings, "auto_approve_sessions", True)

    response = client.post("/api/auth/magic-link", json={"email": "bob@example.com", "returnTo": "/x"})

    body = response.json()
    assert response.status_code == 200
    assert body["access_token"]
    assert body["user"]["email"] == "bob@example.com"
    assert body["return_to"] == "/x"
    assert "refreshToken" in response.cookies
    assert outbox == []


def test_refresh_rotates_session(client, db, outbox):
    old_refresh = login(client, outbox).cookies["refreshToken"]

    response = client.post("/api/auth/refresh")
    assert response.status_code == 200
    assert response.json()["access_token"]
    new_refresh = response.cookies["refreshToken"]
    assert new_refresh != old_refresh

    client.cookies.clear()
    reused = client.post("/api/auth/refresh", json={"refreshToken": old_refresh})
    assert reused.status_code == 401

    assert client.post("/api/auth/refresh", json={"refreshToken": new_refresh}).status_code == 200


def test_refresh_uses_last_cookie(client, outbox):
    good = login(client, outbox).cookies["refreshToken"]
    client.cookies.clear()

    response = client.post(
        "/api/auth/refresh",
        headers={"Cookie": f"refreshToken=stale; refreshToken={good}"},
    )

    assert response.status_code == 200


def test_refresh_cookie_value_is_unquoted():
    request = Request({"type": "http", "headers": [(b"cookie", b'a=1; refreshToken="abc.def"')]})
    assert refresh_token_from_cookie(request) == "abc.def"


def test_refresh_rejects_access_tokens_and_unknown_sessions(client, make_user):
    user = make_user()
    access = auth_headers(user)["Authorization"].split()[1]

    assert client.post("/api/auth/refresh", json={"refreshToken": access}).status_code == 401
    assert client.post("/api/auth/refresh", json={"refreshToken": create_refresh_token("nope", user.id)}).status_code == 401
    assert client.post("/api/auth/refresh").status_code == 401


def test_logout_deletes_session(client, db, outbox):
    refresh = login(client, outbox).cookies["refreshToken"]

    response = client.post("/api/auth/logout")
    assert response.status_code == 200
    assert db.query(Session).count() == 0

    client.cookies.clear()
    assert client.post("/api/auth/refresh", json={"refreshToken": refresh}).status_code == 401


def test_me(client, make_user):
    user = make_user()

    assert client.get("/api/auth/me", headers=auth_headers(user)).json()["email"] == user.email
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_anonymous_mode_resolves_every_request(client, db, anonymous_mode):
    response = client.get("/api/auth/me")

    assert response.status_code == 200
    assert response.json()["id"] == "anonymous"
    assert db.get(User, "anonymous").email == "anonymous@side-by-side.com"


# ===== Figma plugin =====

def test_figma_code_flow(client, make_user):
    user = make_user()

    response = client.get("/api/auth/figma-code", headers=auth_headers(user))
    assert response.status_code == 200
    code = response.json()["code"]
    assert re.fullmatch(r"FGM-[A-Z0-9]{6}", code)

    verified = client.post("/api/auth/figma-verify", json={"code": code}, headers=FIGMA_HEADERS)
    assert verified.status_code == 200
    body = verified.json()
    assert body["user"]["id"] == user.id
    assert body["refresh_token"]

    reused = client.post("/api/auth/figma-verify", json={"code": code}, headers=FIGMA_HEADERS)
    assert reused.status_code == 400


def test_figma_verify_requires_plugin_headers(client, make_user):
    response = client.post("/api/auth/figma-verify", json={"code": "FGM-AAAAAA"})

    assert response.status_code == 401


def test_figma_verify_expired_code(client, db, make_user):
    user = make_user()
    db.add(FigmaAuthCode(
        code_hash=hash_token("FGM-OLD000"),
        user_id=user.id,
        expires_at=utcnow() - timedelta(seconds=1),
    ))
    db.commit()

    response = client.post("/api/auth/figma-verify", json={"code": "FGM-OLD000"}, headers=FIGMA_HEADERS)

    assert response.status_code == 400


def test_figma_verify_anonymous_mode(client, anonymous_mode):
    response = client.post("/api/auth/figma-verify", json={}, headers=FIGMA_HEADERS)

    assert response.status_code == 200
    assert response.json()["is_anonymous"] is True


def test_figma_code_requires_auth(client):
    assert client.get("/api/auth/figma-code").status_code == 401


# ===== Cleanup and rate limits =====

def test_cleanup_removes_expired_rows(client, db, make_user, make_voting):
    user = make_user()
    past = utcnow() - timedelta(days=1)
    future = utcnow() + timedelta(days=1)
    db.add_all([
        Session(id="s-old", user_id=user.id, refresh_token_hash="x", expires_at=past),
        Session(id="s-new", user_id=user.id, refresh_token_hash="y", expires_at=future),
        MagicToken(token_hash="m-old", user_email=user.email, expires_at=past),
        FigmaAuthCode(code_hash="f-old", user_id=user.id, expires_at=past),
    ])
    db.commit()
    make_voting(user, ended=True)

    response = client.post("/api/auth/cleanup", headers=auth_headers(user))

    assert response.status_code == 200
    body = response.json()
    assert body["deleted_sessions"] == 1
    assert body["deleted_magic_tokens"] == 1
    assert body["deleted_figma_codes"] == 1
    assert body["notified_votings"] == 1

    db.expire_all()
    assert [s.id for s in db.query(Session).all()] == ["s-new"]


def test_magic_link_rate_limit(client, outbox, monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_auth_magic_link_per_minute", 2)

    statuses = [
        client.post("/api/auth/magic-link", json={"email": "alice@example.com"}).status_code
        for _ in range(3)
    ]

    assert statuses == [200, 200, 429]
