"""Account registration and bearer session handling."""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..db_models import SessionToken, User
from ..models import ProfileUpdate, RegisterRequest, UserPublic
from ..utils import hash_password, normalize_email, utcnow, verify_password
from .errors import DuplicateEntryError, InvalidCredentialsError

logger = logging.getLogger(__name__)


class AccountService:
    """Creates users and issues, resolves and revokes session tokens."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self._settings = settings
        self._session_factory = session_factory

    async def register(self, payload: RegisterRequest) -> tuple[UserPublic, str]:
        email = normalize_email(payload.email)
        async with self._session_factory() as session:
            existing = await session.scalar(select(User.id).where(User.email == email))
            if existing is not None:
                raise DuplicateEntryError("Email already exists")
            user = User(
                email=email,
                name=payload.name.strip(),
                password_hash=hash_password(payload.password),
                created_at=utcnow(),
            )
            session.add(user)
            try:
                await session.flush()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateEntryError("Email already exists") from exc
            token = self._issue_token(session, user.id)
            await session.commit()
            logger.info("Registered user %s", user.id)
            return self._to_public(user), token

    async def authenticate(self, email: str, password: str) -> tuple[UserPublic, str]:
        async with self._session_factory() as session:
            user = await session.scalar(
                select(User).where(User.email == normalize_email(email))
            )
            if user is None or not verify_password(password, user.password_hash):
                raise InvalidCredentialsError("Invalid credentials")
            token = self._issue_token(session, user.id)
            await session.commit()
            return self._to_public(user), token

    async def resolve_token(self, token: str) -> UserPublic | None:
        """Return the user owning ``token`` or ``None`` when unknown/expired."""

        async with self._session_factory() as session:
            record = await session.get(SessionToken, token)
            if record is None:
                return None
            if record.expires_at <= utcnow():
                await session.delete(record)
                await session.commit()
                return None
            user = await session.get(User, record.user_id)
            if user is None:
                return None
            return self._to_public(user)

    async def update_profile(self, user_id: int, payload: ProfileUpdate) -> UserPublic:
        async with self._session_factory() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise KeyError("User not found")
            if payload.email is not None:
                email = normalize_email(payload.email)
                taken = await session.scalar(
                    select(User.id).where(User.email == email, User.id != user_id)
                )
                if taken is not None:
                    raise DuplicateEntryError("Email already exists")
                user.email = email
            if payload.name is not None:
                user.name = payload.name.strip()
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateEntryError("Email already exists") from exc
            logger.info("Updated profile of user %s", user_id)
            return self._to_public(user)

    async def change_password(
        self, user_id: int, current_password: str, new_password: str
    ) -> None:
        """Replace the password hash. Existing sessions stay valid."""

        async with self._session_factory() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise KeyError("User not found")
            if not verify_password(current_password, user.password_hash):
                raise InvalidCredentialsError("Current password is incorrect")
            user.password_hash = hash_password(new_password)
            await session.commit()
            logger.info("Changed password of user %s", user_id)

    async def revoke(self, token: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(SessionToken).where(SessionToken.token == token))
            await session.commit()

    def _issue_token(self, session: AsyncSession, user_id: int) -> str:
        token = secrets.token_urlsafe(32)
        now = utcnow()
        session.add(
            SessionToken(
                token=token,
                user_id=user_id,
                created_at=now,
                expires_at=now + timedelta(seconds=self._settings.session_ttl_seconds),
            )
        )
        return token

    @staticmethod
    def _to_public(user: User) -> UserPublic:
        return UserPublic(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role or "user",
            created_at=user.created_at,
        )
