"""
StudyBuddy Backend — UserProfile SQLAlchemy Model
===================================================

What:  ORM model for the `user_profiles` table, the document store.
How:   One row per identity holding the complete Subject → Chapter → Note tree
       as a JSON document, plus an integer `version` for optimistic concurrency.
Who:   Read and written only through ProfileRepository.

Aggregate-root persistence:
    Every mutation loads the row, edits the tree in memory and writes the whole
    `subjects` document back with
        UPDATE user_profiles SET subjects=:tree, version=:v+1
        WHERE uuid=:uuid AND version=:v
    A zero-row update means another request wrote first.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import JSON, DateTime, Integer, String, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from studybuddy.database import Base


class UserProfileRecord(Base):
    """Persisted note tree of one user."""

    __tablename__ = "user_profiles"

    uuid: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        comment="Identity id from users.id",
    )

    # JSONB on PostgreSQL, JSON (text) elsewhere
    subjects: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=list,
        comment="Subject → Chapter → Note tree (camelCase JSON)",
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Incremented by every successful write",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        return f"<UserProfileRecord(uuid={self.uuid}, version={self.version})>"
