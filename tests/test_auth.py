from __future__ import annotations
from datetime import datetime, timedelta

from sqlalchemy import update

from linkvault import models

from .conftest import auth_header


def register(client, email="user@linkvault.io", password="password8"):
    return client.post("/api/register", json={"email": email, "password": password})


def test_weak_password_rejected(client):
    response = register(client, password="12345")
    assert response.status_code == 400
    assert response.json() == {"detail": "WEAK_PASSWORD"}


def test_register_issues_usable_session(client):
    response = register(client, password="12345678")
    assert response.status_code == 200
    body = response.json()
    assert set(body) == {"token", "expiresAt", "user"}
    assert body["user"]["email"] == "user@linkvault.io"

    me = client.get("/api/me", headers=auth_header(body["token"]))
    assert me.status_code == 200
    assert me.json() == {"user": body["user"]}


def test_register_normalizes_email(client, session_factory):
    body = register(client, email="  Mixed.Case@LinkVault.IO ").json()
    assert body["user"]["email"] == "mixed.case@linkvault.io"

    duplicate = register(client, email="MIXED.CASE@linkvault.io")
    assert duplicate.status_code == 409
    assert duplicate.json() == {"detail": "EMAIL_EXISTS"}

    with session_factory() as session:
        user = session.query(models.User).one()
        assert user.password_hash != "password8"


def test_register_rejects_invalid_email(client):
    for email in ("", "not-an-email", "two@@signs.io", "spaces in@linkvault.io"):
        response = register(client, email=email)
        assert response.status_code == 400
        assert response.json() == {"detail": "INVALID_EMAIL"}


def test_login(client):
    register(client)

    bad = client.post("/api/login", json={"email": "user@linkvault.io", "password": "wrong-password"})
    assert bad.status_code == 401
    assert bad.json() == {"detail": "INVALID_CREDENTIALS"}

    unknown = client.post("/api/login", json={"email": "nobody@linkvault.io", "password": "password8"})
    assert unknown.status_code == 401

    missing = client.post("/api/login", json={"email": "user@linkvault.io"})
    assert missing.status_code == 400
    assert missing.json() == {"detail": "INVALID_CREDENTIALS"}

    ok = client.post("/api/login", json={"email": " USER@linkvault.io", "password": "password8"})
    assert ok.status_code == 200
    assert client.get("/api/me", headers=auth_header(ok.json()["token"])).status_code == 200


def test_sessions_are_independent(client):
    first = register(client).json()["token"]
    second = client.post("/api/login", json={"email": "user@linkvault.io", "password": "password8"}).json()["token"]
    assert first != second

    assert client.post("/api/logout", headers=auth_header(first)).json() == {"success": True}
    assert client.get("/api/me", headers=auth_header(first)).status_code == 401
    assert client.get("/api/me", headers=auth_header(second)).status_code == 200


def test_owner_only_routes_require_auth(client):
    for method, path in (("get", "/api/me"), ("post", "/api/logout"), ("get", "/api/my-contents")):
        response = getattr(client, method)(path)
        assert response.status_code == 401
        assert response.json() == {"detail": "UNAUTHORIZED"}
        assert response.headers["www-authenticate"] == "Bearer"

    assert client.get("/api/me", headers=auth_header("made-up")).status_code == 401
    assert client.get("/api/me", headers={"Authorization": "Basic abc"}).status_code == 401


def test_expired_session_is_dropped(client, session_factory):
    token = register(client).json()["token"]
    with session_factory() as session:
        session.execute(
            update(models.UserSession)
            .where(models.UserSession.token == token)
            .values(expires_at=datetime.utcnow() - timedelta(seconds=1))
        )
        session.commit()

    assert client.get("/api/me", headers=auth_header(token)).status_code == 401
    with session_factory() as session:
        assert session.get(models.UserSession, token) is None


def test_expired_session_uploads_anonymously(client, session_factory):
    token = register(client).json()["token"]
    with session_factory() as session:
        session.execute(update(models.UserSession).values(expires_at=datetime.utcnow() - timedelta(seconds=1)))
        session.commit()

    created = client.post("/api/upload", data={"text": "anon"}, headers=auth_header(token)).json()
    with session_factory() as session:
        assert session.get(models.Content, created["id"]).owner_id is None


def test_my_contents(client, expire):
    token = register(client).json()["token"]
    other = register(client, email="other@linkvault.io").json()["token"]

    mine_old = client.post("/api/upload", data={"text": "a"}, headers=auth_header(token)).json()
    mine_file = client.post(
        "/api/upload",
        data={"maxViews": "2"},
        files={"file": ("photo.png", b"\x89PNG", "image/png")},
        headers=auth_header(token),
    ).json()
    stale = client.post("/api/upload", data={"text": "b"}, headers=auth_header(token)).json()
    client.post("/api/upload", data={"text": "c"}, headers=auth_header(other))
    client.post("/api/upload", data={"text": "d"})
    expire(stale["id"])

    items = client.get("/api/my-contents", headers=auth_header(token)).json()["items"]
    assert [item["id"] for item in items] == [mine_file["id"], mine_old["id"]]
    assert items[0]["type"] == "file"
    assert items[0]["originalName"] == "photo.png"
    assert items[0]["maxViews"] == 2
    assert items[0]["viewCount"] == 0
    assert set(items[0]) == {"id", "type", "originalName", "createdAt", "expiresAt", "viewCount", "maxViews"}
