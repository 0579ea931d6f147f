from __future__ import annotations

from unittest.mock import patch

from fastapi.testclient import TestClient

from tasktracker.auth.passwords import verify_password
from tasktracker.auth.session import SESSION_COOKIE_NAME


def _set_cookie(resp) -> str:
    return resp.headers.get("set-cookie", "")


def test_register_creates_account_and_sets_cookie(client: TestClient, store, signer) -> None:
    r = client.post("/auth/register", json={"email": "Alice@Example.com", "password": "secret123"})
    assert r.status_code == 201
    body = r.json()
    assert body == {"accountId": 1, "email": "alice@example.com"}

    cookie = _set_cookie(r).lower()
    assert f"{SESSION_COOKIE_NAME}=" in cookie
    assert "httponly" in cookie
    assert "path=/" in cookie
    assert "max-age=604800" in cookie
    assert r.headers.get("cache-control") == "no-store"

    account = store.accounts["alice@example.com"]
    assert account.password_hash != "secret123"
    assert verify_password("secret123", account.password_hash)

    token = client.cookies.get(SESSION_COOKIE_NAME)
    assert signer.verify_token(token).account_id == 1


def test_register_validation(client: TestClient, store) -> None:
    assert client.post("/auth/register", json={"password": "secret123"}).status_code == 400
    assert client.post("/auth/register", json={"email": "a@example.com"}).status_code == 400
    assert client.post("/auth/register", json={"email": "not-an-email", "password": "secret123"}).status_code == 400

    r = client.post("/auth/register", json={"email": "a@example.com", "password": "12345"})
    assert r.status_code == 400
    assert r.json() == {"error": "Password must be 6+ characters"}
    assert store.accounts == {}


def test_register_rejects_non_json_body(client: TestClient) -> None:
    r = client.post("/auth/register", content=b"email=a", headers={"content-type": "application/json"})
    assert r.status_code == 400
    assert "error" in r.json()


def test_register_duplicate_email_conflicts(client: TestClient, register) -> None:
    register(client, "alice@example.com")
    r = client.post("/auth/register", json={"email": "ALICE@example.com", "password": "another123"})
    assert r.status_code == 409
    assert r.json() == {"error": "Email already registered"}


def test_register_and_login_with_long_password(app, store, register) -> None:
    password = "x" * 100
    register(TestClient(app), "long@example.com", password)
    assert verify_password(password, store.accounts["long@example.com"].password_hash)

    c = TestClient(app)
    r = c.post("/auth/login", json={"email": "long@example.com", "password": password})
    assert r.status_code == 200
    assert SESSION_COOKIE_NAME in c.cookies

    r = TestClient(app).post("/auth/login", json={"email": "long@example.com", "password": "x" * 72})
    assert r.status_code == 401


def test_login_success_sets_cookie(app, store, register) -> None:
    register(TestClient(app), "alice@example.com", "secret123")

    c = TestClient(app)
    r = c.post("/auth/login", json={"email": "alice@example.com", "password": "secret123"})
    assert r.status_code == 200
    assert r.json() == {"accountId": 1, "email": "alice@example.com"}
    assert SESSION_COOKIE_NAME in c.cookies

    me = c.get("/auth/me")
    assert me.status_code == 200
    assert me.json() == {"accountId": 1, "email": "alice@example.com"}


def test_login_invalid_credentials_are_uniform(app, register) -> None:
    register(TestClient(app), "alice@example.com", "secret123")
    c = TestClient(app)

    wrong_pw = c.post("/auth/login", json={"email": "alice@example.com", "password": "nope-nope"})
    unknown = c.post("/auth/login", json={"email": "bob@example.com", "password": "secret123"})
    assert wrong_pw.status_code == unknown.status_code == 401
    assert wrong_pw.json() == unknown.json() == {"error": "Invalid credentials"}
    assert SESSION_COOKIE_NAME not in c.cookies


def test_login_missing_credentials(client: TestClient) -> None:
    assert client.post("/auth/login", json={"password": "x"}).status_code == 400
    assert client.post("/auth/login", json={"email": "a@example.com"}).status_code == 400


def test_login_store_failure_is_generic_500(client: TestClient, store) -> None:
    with patch.object(store, "get_account_by_email", side_effect=RuntimeError("connection refused at 10.0.0.5")):
        r = client.post("/auth/login", json={"email": "a@example.com", "password": "secret123"})
    assert r.status_code == 500
    assert r.json() == {"error": "Server error"}


def test_logout_clears_session(client: TestClient, register) -> None:
    register(client, "alice@example.com")
    r = client.post("/auth/logout")
    assert r.status_code == 200
    assert r.json() == {"ok": True}

    cookies = _set_cookie(r).lower()
    assert "max-age=0" in cookies

    assert client.get("/auth/me").status_code == 401


def test_logout_without_session_is_unauthenticated_but_still_clears(client: TestClient) -> None:
    client.cookies.set(SESSION_COOKIE_NAME, "stale")
    r = client.post("/auth/logout")
    assert r.status_code == 401
    assert r.json() == {"error": "Not authenticated"}
    assert "max-age=0" in _set_cookie(r).lower()


def test_me_requires_auth_without_www_authenticate(client: TestClient) -> None:
    r = client.get("/auth/me")
    assert r.status_code == 401
    assert r.json() == {"error": "Not authenticated"}
    assert "www-authenticate" not in {k.lower() for k in r.headers.keys()}


def test_missing_store_is_generic_500(auth_cfg) -> None:
    from tasktracker.api.app import create_app

    c = TestClient(create_app(auth_cfg))
    r = c.post("/auth/login", json={"email": "a@example.com", "password": "secret123"})
    assert r.status_code == 500
    assert r.json() == {"error": "Server error"}
