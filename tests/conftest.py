"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterator

import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``cinehub``
# sits at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.fixture
def api_client(tmp_path, monkeypatch) -> Iterator["TestClient"]:
    """Return a TestClient bound to a fresh SQLite database."""

    from fastapi.testclient import TestClient

    from cinehub.main import create_app, settings

    monkeypatch.setattr(
        settings, "database_url", f"sqlite+aiosqlite:///{tmp_path / 'cinehub.db'}"
    )
    monkeypatch.setattr(settings, "tmdb_api_key", None)

    with TestClient(create_app()) as client:
        yield client


def register(client, email: str = "ada@example.com", name: str = "Ada") -> str:
    """Register an account through the API and return its bearer token."""

    response = client.post(
        "/api/auth/register",
        json={"email": email, "name": name, "password": "correct-horse"},
    )
    assert response.status_code == 201, response.text
    return response.json()["token"]


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
