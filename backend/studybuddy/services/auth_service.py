"""
StudyBuddy Backend — Auth Service (Credential Store)
======================================================

What:  Registers users and checks their passwords.
How:   bcrypt hashes in the `users` table. Hashing runs in a worker thread so
       the event loop keeps serving other requests. Registration inserts the
       User and its empty UserProfile in one transaction.
Who:   Called by POST /api/register and POST /api/login.
"""

import asyncio
import logging
from typing import Optional

import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studybuddy.exceptions import DatabaseError, ValidationError
from studybuddy.models.profile import UserProfileRecord
from studybuddy.models.user import User

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes; newer releases reject longer input.
BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False


class AuthService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], bcrypt_rounds: int = 12):
        self._session_factory = session_factory
        self.bcrypt_rounds = bcrypt_rounds

    async def _find_by_email(self, email: str) -> Optional[User]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(User).where(User.email == email))
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error looking up user: %s", str(e))
            raise DatabaseError(
                message=f"Database query failed: {e}",
                context={"error_type": type(e).__name__},
            )

    async def register(
        self,
        username: Optional[str],
        email: Optional[str],
        password: Optional[str],
    ) -> User:
        """
        Create a user and their empty note tree.

        Raises:
            ValidationError: a field is missing, or the email is taken
            DatabaseError: the insert failed for another reason
        """
        username = (username or "").strip()
        email = (email or "").strip()
        if not username or not email or not password:
            raise ValidationError(message="All fields are required")

        if await self._find_by_email(email) is not None:
            raise ValidationError(message="User already exists", field="email")

        password_hash = await asyncio.to_thread(hash_password, password, self.bcrypt_rounds)
        user = User(username=username, email=email, password_hash=password_hash)

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(user)
                    await session.flush()
                    session.add(UserProfileRecord(uuid=user.id, subjects=[], version=0))
        except IntegrityError:
            # Another registration with the same email won the race.
            raise ValidationError(message="User already exists", field="email")
        except SQLAlchemyError as e:
            logger.error("Database error registering user: %s", str(e))
            raise DatabaseError(
                message=f"Failed to register user: {e}",
                context={"error_type": type(e).__name__},
            )

        logger.info("User registered: %s", user.id)
        return user

    async def authenticate(self, email: Optional[str], password: Optional[str]) -> User:
        """
        Return the user whose email and password match.

        Unknown email and wrong password give the same error.
        """
        email = (email or "").strip()
        if not email or not password:
            raise ValidationError(message="Email and password are required")

        user = await self._find_by_email(email)
        if user is None or not user.password_hash:
            raise ValidationError(message="Invalid email or password")

        if not await asyncio.to_thread(verify_password, password, user.password_hash):
            logger.info("Failed login for user %s", user.id)
            raise ValidationError(message="Invalid email or password")

        logger.info("Login successful for user %s", user.id)
        return user
