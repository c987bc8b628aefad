"""Exceptions raised by the persistence services."""

from __future__ import annotations


class DuplicateEntryError(ValueError):
    """Raised when a record already exists for the owning user."""


class InvalidCredentialsError(ValueError):
    """Raised when an email/password pair does not match an account."""
