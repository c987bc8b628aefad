"""Profile and password management routes."""

from __future__ import annotations

from conftest import auth, register


def test_profile_update_changes_name_and_email(api_client) -> None:
    token = register(api_client)

    response = api_client.put(
        "/api/profile",
        json={"name": " Ada Lovelace ", "email": "Ada.L@Example.com"},
        headers=auth(token),
    )

    assert response.status_code == 200
    assert response.json()["name"] == "Ada Lovelace"
    assert response.json()["email"] == "ada.l@example.com"
    me = api_client.get("/api/auth/me", headers=auth(token)).json()
    assert me["email"] == "ada.l@example.com"
    login = api_client.post(
        "/api/auth/login",
        json={"email": "ada.l@example.com", "password": "correct-horse"},
    )
    assert login.status_code == 200


def test_profile_update_accepts_name_only(api_client) -> None:
    token = register(api_client)

    response = api_client.put("/api/profile", json={"name": "Countess"}, headers=auth(token))

    assert response.status_code == 200
    assert response.json()["name"] == "Countess"
    assert response.json()["email"] == "ada@example.com"


def test_profile_update_requires_a_field(api_client) -> None:
    token = register(api_client)

    response = api_client.put("/api/profile", json={}, headers=auth(token))

    assert response.status_code == 400
    assert "Name or email is required" in response.json()["message"]


def test_profile_update_rejects_taken_email(api_client) -> None:
    token = register(api_client)
    register(api_client, email="grace@example.com", name="Grace")

    response = api_client.put(
        "/api/profile", json={"email": "grace@example.com"}, headers=auth(token)
    )

    assert response.status_code == 409
    assert response.json()["detail"] == "Email already exists"


def test_profile_routes_require_auth(api_client) -> None:
    assert api_client.put("/api/profile", json={"name": "X"}).status_code == 401
    response = api_client.put(
        "/api/profile/password",
        json={
            "currentPassword": "correct-horse",
            "newPassword": "Battery-Staple9",
            "confirmPassword": "Battery-Staple9",
        },
    )
    assert response.status_code == 401


def test_password_change_replaces_credentials(api_client) -> None:
    token = register(api_client)

    response = api_client.put(
        "/api/profile/password",
        json={
            "currentPassword": "correct-horse",
            "newPassword": "Battery-Staple9",
            "confirmPassword": "Battery-Staple9",
        },
        headers=auth(token),
    )

    assert response.status_code == 200
    assert response.json() == {"message": "Password updated successfully"}
    old = api_client.post(
        "/api/auth/login", json={"email": "ada@example.com", "password": "correct-horse"}
    )
    new = api_client.post(
        "/api/auth/login", json={"email": "ada@example.com", "password": "Battery-Staple9"}
    )
    assert old.status_code == 401
    assert new.status_code == 200
    assert api_client.get("/api/auth/me", headers=auth(token)).status_code == 200


def test_password_change_with_wrong_current_password(api_client) -> None:
    token = register(api_client)

    response = api_client.put(
        "/api/profile/password",
        json={
            "currentPassword": "wrong-horse",
            "newPassword": "Battery-Staple9",
            "confirmPassword": "Battery-Staple9",
        },
        headers=auth(token),
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Current password is incorrect"


def test_password_change_validates_new_password(api_client) -> None:
    token = register(api_client)
    cases = [
        ("battery-staple9", "battery-staple9", "uppercase"),
        ("Battery-Staple", "Battery-Staple", "number"),
        ("Battery-Staple9", "Battery-Staple8", "do not match"),
        ("Bs9", "Bs9", "at least 8"),
    ]

    for new_password, confirmation, expected in cases:
        response = api_client.put(
            "/api/profile/password",
            json={
                "currentPassword": "correct-horse",
                "newPassword": new_password,
                "confirmPassword": confirmation,
            },
            headers=auth(token),
        )
        assert response.status_code == 400
        assert expected in response.json()["message"]
