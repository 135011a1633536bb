"""
StudyBuddy Backend — User SQLAlchemy Model
============================================

What:  ORM model for the `users` table, the credential store.
How:   One row per identity. The password is stored only as a bcrypt hash.
Who:   Written by AuthService.register(), read by AuthService.authenticate().

Table Design:
    - id: UUID string, also used as the UserProfile key in `user_profiles`
    - email: unique, the login identifier
    - password_hash: bcrypt hash (never the plain password)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, String, text
from sqlalchemy.orm import Mapped, mapped_column

from studybuddy.database import Base


class User(Base):
    """A registered StudyBuddy user."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Identity id; equals user_profiles.uuid",
    )

    username: Mapped[str] = mapped_column(
        String(150),
        nullable=False,
        comment="Display name chosen at registration",
    )

    email: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        unique=True,
        index=True,
        comment="Login identifier; unique across users",
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="bcrypt hash of the password",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"
