"""Account and session route tests."""

from __future__ import annotations

from conftest import auth, register


def test_healthcheck(api_client) -> None:
    response = api_client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_register_login_and_me(api_client) -> None:
    token = register(api_client)

    me = api_client.get("/api/auth/me", headers=auth(token))
    assert me.status_code == 200
    assert me.json()["email"] == "ada@example.com"
    assert me.json()["role"] == "user"

    login = api_client.post(
        "/api/auth/login",
        json={"email": "ADA@example.com", "password": "correct-horse"},
    )
    assert login.status_code == 200
    payload = login.json()
    assert payload["user"]["name"] == "Ada"
    assert payload["token"] != token


def test_register_rejects_duplicate_email(api_client) -> None:
    register(api_client)

    response = api_client.post(
        "/api/auth/register",
        json={"email": "ada@example.com", "name": "Other", "password": "correct-horse"},
    )

    assert response.status_code == 409
    assert response.json()["detail"] == "Email already exists"


def test_register_validation_failure_returns_400(api_client) -> None:
    response = api_client.post(
        "/api/auth/register",
        json={"email": "ada@example.com", "name": "Ada", "password": "short"},
    )

    assert response.status_code == 400
    assert response.json()["message"]


def test_login_with_wrong_password_is_unauthorized(api_client) -> None:
    register(api_client)

    response = api_client.post(
        "/api/auth/login",
        json={"email": "ada@example.com", "password": "wrong-horse"},
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


def test_logout_revokes_token(api_client) -> None:
    token = register(api_client)

    response = api_client.post("/api/auth/logout", headers=auth(token))
    assert response.status_code == 204

    me = api_client.get("/api/auth/me", headers=auth(token))
    assert me.status_code == 401


def test_user_routes_require_bearer_token(api_client) -> None:
    for path in ("/api/auth/me", "/api/watchlist", "/api/favorites", "/api/history"):
        response = api_client.get(path)
        assert response.status_code == 401, path

    response = api_client.get("/api/watchlist", headers=auth("not-a-token"))
    assert response.status_code == 401
