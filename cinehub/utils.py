"""Utility helpers for the CineHub service."""

from __future__ import annotations

import hashlib
import hmac
import re
import secrets
from datetime import datetime, timezone

BEARER_RE = re.compile(r"^\s*bearer\s+(\S+)\s*$", re.IGNORECASE)
PBKDF2_ROUNDS = 240_000


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime for storage."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_email(value: str) -> str:
    return value.strip().lower()


def hash_password(password: str, *, salt: str | None = None) -> str:
    """Return a ``pbkdf2_sha256$rounds$salt$digest`` password hash."""

    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("ascii"), PBKDF2_ROUNDS
    )
    return f"pbkdf2_sha256${PBKDF2_ROUNDS}${salt}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    """Check ``password`` against a hash produced by :func:`hash_password`."""

    try:
        algorithm, rounds, salt, expected = encoded.split("$", 3)
        iterations = int(rounds)
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("ascii"), iterations
    )
    return hmac.compare_digest(digest.hex(), expected)


def parse_bearer_token(header: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer`` header value."""

    if not header:
        return None
    match = BEARER_RE.match(header)
    if not match:
        return None
    return match.group(1)


def owner_scope(identity: str) -> str:
    """Return a filesystem-safe, stable scope name for an owner identity."""

    return hashlib.sha256(identity.encode("utf-8")).hexdigest()[:24]
