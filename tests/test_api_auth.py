from __future__ import annotations

from unittest.mock import MagicMock, patch

import psycopg
from fastapi.testclient import TestClient

import mytunes.api.server as srv
from mytunes.config import load_auth_config
from mytunes.auth.models import LocalUser, Principal, Role
from mytunes.auth.session import encode_session, session_cookie_name


def _client_as(principal: Principal) -> TestClient:
    cfg = load_auth_config()
    c = TestClient(srv.app)
    c.cookies.set(session_cookie_name(cfg), encode_session(cfg, principal))
    return c


def test_healthz_is_public() -> None:
    r = TestClient(srv.app).get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_me_requires_auth() -> None:
    assert TestClient(srv.app).get("/api/auth/me").status_code == 401


def test_me_returns_principal() -> None:
    r = _client_as(Principal(id=7, role=Role.GUEST, username="alice")).get("/api/auth/me")
    assert r.status_code == 200
    assert r.json()["user"] == {"id": 7, "username": "alice", "role": "guest"}


def test_garbage_cookie_is_unauthorized() -> None:
    c = TestClient(srv.app)
    c.cookies.set("mytunes_session", "garbage")
    assert c.get("/api/auth/me").status_code == 401


def test_register_missing_fields() -> None:
    c = TestClient(srv.app)
    assert c.post("/api/auth/register", json={"username": "x"}).status_code == 400
    assert c.post("/api/auth/register", json={"password": "x"}).status_code == 400


def test_register_creates_guest() -> None:
    with patch("mytunes.api.server._get_db_connection") as mock_db:
        mock_db.return_value = MagicMock()
        with patch("mytunes.auth.local.register_user") as mock_register:
            mock_register.return_value = LocalUser(id=5, username="carol", password_hash="h", role=Role.GUEST)
            r = TestClient(srv.app).post("/api/auth/register", json={"username": "carol", "password": "pw"})
    assert r.status_code == 200
    assert r.json()["user"] == {"id": 5, "username": "carol", "role": "guest"}


def test_register_duplicate_username_is_409() -> None:
    conn = MagicMock()
    with patch("mytunes.api.server._get_db_connection", return_value=conn):
        with patch("mytunes.auth.local.register_user", side_effect=psycopg.errors.UniqueViolation("dup")):
            r = TestClient(srv.app).post("/api/auth/register", json={"username": "carol", "password": "pw"})
    assert r.status_code == 409
    conn.close.assert_called_once()


def test_login_missing_credentials() -> None:
    c = TestClient(srv.app)
    assert c.post("/api/auth/login", json={"password": "test"}).status_code == 400
    assert c.post("/api/auth/login", json={"username": "test"}).status_code == 400


def test_login_invalid_credentials() -> None:
    with patch("mytunes.api.server._get_db_connection", return_value=MagicMock()):
        with patch("mytunes.auth.local.authenticate_local", return_value=None):
            r = TestClient(srv.app).post("/api/auth/login", json={"username": "alice", "password": "wrong"})
    assert r.status_code == 401


def test_login_success_sets_session_cookie() -> None:
    with patch("mytunes.api.server._get_db_connection", return_value=MagicMock()):
        with patch(
            "mytunes.auth.local.authenticate_local",
            return_value=Principal(id=1, role=Role.GUEST, username="alice"),
        ):
            c = TestClient(srv.app)
            r = c.post("/api/auth/login", json={"username": "alice", "password": "pw"})
            assert r.status_code == 200
            assert r.json()["user"] == {"id": 1, "username": "alice", "role": "guest"}
            assert "set-cookie" in {k.lower() for k in r.headers.keys()}

            # The cookie jar now carries the session.
            me = c.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["user"]["id"] == 1


def test_login_is_throttled(monkeypatch) -> None:
    monkeypatch.setenv("AUTH_LOGIN_MAX_ATTEMPTS", "2")
    with patch("mytunes.api.server._get_db_connection", return_value=MagicMock()):
        with patch("mytunes.auth.local.authenticate_local", return_value=None):
            c = TestClient(srv.app)
            codes = [c.post("/api/auth/login", json={"username": "alice", "password": "x"}).status_code for _ in range(3)]
    assert codes == [401, 401, 429]


def test_logout_clears_session() -> None:
    r = TestClient(srv.app).post("/api/auth/logout")
    assert r.status_code == 200
    assert r.json() == {"ok": True}
    cookies = r.headers.get("set-cookie", "")
    assert "max-age=0" in cookies.lower()


def test_admin_lists_users() -> None:
    users = [
        LocalUser(id=1, username="admin", password_hash="h", role=Role.ADMIN),
        LocalUser(id=2, username="alice", password_hash="h", role=Role.GUEST),
    ]
    with patch("mytunes.api.server._get_db_connection", return_value=MagicMock()):
        with patch("mytunes.auth.local.list_users", return_value=users):
            r = _client_as(Principal(id=1, role=Role.ADMIN, username="admin")).get("/admin/users")
    assert r.status_code == 200
    assert r.json() == [
        {"id": 1, "username": "admin", "role": "admin"},
        {"id": 2, "username": "alice", "role": "guest"},
    ]


def test_guest_cannot_list_users() -> None:
    r = _client_as(Principal(id=2, role=Role.GUEST, username="alice")).get("/admin/users")
    assert r.status_code == 403
    assert r.json()["detail"] == "admins only"


def test_register_rejects_password_over_72_bytes() -> None:
    with patch("mytunes.api.server._get_db_connection") as mock_db:
        r = TestClient(srv.app).post("/api/auth/register", json={"username": "carol", "password": "x" * 100})
    assert r.status_code == 400
    assert r.json()["detail"] == "Password too long"
    mock_db.assert_not_called()


def test_register_accepts_password_of_exactly_72_bytes() -> None:
    with patch("mytunes.api.server._get_db_connection", return_value=MagicMock()):
        with patch("mytunes.auth.local.register_user") as mock_register:
            mock_register.return_value = LocalUser(id=5, username="carol", password_hash="h", role=Role.GUEST)
            r = TestClient(srv.app).post("/api/auth/register", json={"username": "carol", "password": "x" * 72})
    assert r.status_code == 200


def test_login_without_session_secret_is_500(monkeypatch) -> None:
    monkeypatch.delenv("AUTH_SESSION_SECRET", raising=False)
    load_auth_config.cache_clear()
    with patch("mytunes.api.server._get_db_connection") as mock_db:
        r = TestClient(srv.app).post("/api/auth/login", json={"username": "alice", "password": "pw"})
    assert r.status_code == 500
    assert "AUTH_SESSION_SECRET" in r.json()["detail"]
    mock_db.assert_not_called()


def test_startup_survives_overlong_admin_password(monkeypatch, caplog) -> None:
    monkeypatch.setenv("ADMIN_INITIAL_PASSWORD", "y" * 100)
    load_auth_config.cache_clear()
    conn = MagicMock()
    with patch("mytunes.api.server._get_db_connection", return_value=conn):
        with caplog.at_level("WARNING", logger="mytunes.api.server"):
            with TestClient(srv.app) as c:
                assert c.get("/healthz").status_code == 200
    assert "Admin user initialization failed" in caplog.text
    conn.close.assert_called_once()
