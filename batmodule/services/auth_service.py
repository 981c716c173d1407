from __future__ import annotations

import logging

import bcrypt
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from batmodule.models.user import User

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 12

# Pre-hashed dummy password for timing-attack prevention
_DUMMY_HASH = bcrypt.hashpw(b"dummy-timing-safe", bcrypt.gensalt(rounds=BCRYPT_ROUNDS))


class EmailAlreadyUsedError(ValueError):
    pass


class UserNotFoundError(LookupError):
    pass


def _hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def _check_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def _to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "company_name": user.company_name,
        "created_at": user.created_at,
    }


class AuthService:
    """Email + password accounts backed by the users table."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def register(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        company_name: str | None = None,
    ) -> dict:
        hashed = _hash_password(password)

        async with self._session_factory() as session:
            stmt = select(User.id).where(User.email == email)
            if (await session.execute(stmt)).scalar_one_or_none() is not None:
                raise EmailAlreadyUsedError(email)

            user = User(
                email=email,
                password_hash=hashed,
                first_name=first_name,
                last_name=last_name,
                company_name=company_name,
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return _to_dict(user)

    async def authenticate(self, email: str, password: str) -> dict | None:
        """
        Email + password check.
        Success: user dict, failure: None
        """
        async with self._session_factory() as session:
            stmt = select(User).where(User.email == email)
            user = (await session.execute(stmt)).scalar_one_or_none()

            if not user:
                # Timing attack prevention: dummy bcrypt comparison
                bcrypt.checkpw(password.encode("utf-8"), _DUMMY_HASH)
                return None

            if not _check_password(password, user.password_hash):
                return None
            return _to_dict(user)

    async def get_user(self, user_id: int) -> dict | None:
        async with self._session_factory() as session:
            user = await session.get(User, user_id)
            return _to_dict(user) if user else None

    async def change_password(self, user_id: int, current_password: str, new_password: str) -> bool:
        """False when the current password is wrong."""
        async with self._session_factory() as session:
            user = await session.get(User, user_id)
            if not user:
                raise UserNotFoundError(user_id)
            if not _check_password(current_password, user.password_hash):
                return False
            user.password_hash = _hash_password(new_password)
            await session.commit()
            return True

    async def delete_user(self, user_id: int) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(delete(User).where(User.id == user_id))
            await session.commit()
            return result.rowcount > 0
