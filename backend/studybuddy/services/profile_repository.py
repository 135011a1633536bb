"""
StudyBuddy Backend — Profile Repository (Document Store)
==========================================================

What:  Loads and persists the UserProfile aggregate (a user's whole note tree).
How:   One short transaction per call. Writes replace the whole `subjects`
       document with a conditional UPDATE guarded by the `version` column.
Who:   Used by NoteTreeService; constructed by build_services().

Consistency model:
    load()   → UserProfile(version=v)
    mutate the tree in memory
    save()   → UPDATE ... WHERE uuid=:uuid AND version=v  (version := v+1)
    0 rows   → ConcurrentModificationError (409), nothing is retried

    create() inserts a brand-new profile; a duplicate key means another request
    created it first and is reported the same way.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studybuddy.exceptions import ConcurrentModificationError, DatabaseError
from studybuddy.models.profile import UserProfileRecord
from studybuddy.schemas.notes import Subject, UserProfile

logger = logging.getLogger(__name__)


def dump_subjects(subjects: List[Subject]) -> List[Dict[str, Any]]:
    """Serialize the tree to the camelCase JSON stored in the document column."""
    return [s.model_dump(mode="json", by_alias=True) for s in subjects]


def to_aggregate(record: UserProfileRecord) -> UserProfile:
    return UserProfile(
        uuid=record.uuid,
        subjects=[Subject.model_validate(s) for s in (record.subjects or [])],
        version=record.version,
    )


class ProfileRepository:
    """SQLAlchemy-backed store for UserProfile aggregates."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def load(self, user_id: str) -> Optional[UserProfile]:
        """Return the user's profile, or None if it was never created."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(UserProfileRecord).where(UserProfileRecord.uuid == user_id)
                )
                record = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error loading profile %s: %s", user_id, str(e))
            raise DatabaseError(
                message=f"Could not load profile: {e}",
                context={"user_id": user_id, "error_type": type(e).__name__},
            )
        return to_aggregate(record) if record is not None else None

    async def create(self, profile: UserProfile) -> UserProfile:
        """
        Insert a new profile row.

        Raises:
            ConcurrentModificationError: a profile for this user already exists
            DatabaseError: any other database failure
        """
        record = UserProfileRecord(
            uuid=profile.uuid,
            subjects=dump_subjects(profile.subjects),
            version=0,
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(record)
        except IntegrityError:
            logger.warning("Profile %s was created concurrently", profile.uuid)
            raise ConcurrentModificationError(context={"user_id": profile.uuid})
        except SQLAlchemyError as e:
            logger.error("Database error creating profile %s: %s", profile.uuid, str(e))
            raise DatabaseError(
                message=f"Could not create profile: {e}",
                context={"user_id": profile.uuid, "error_type": type(e).__name__},
            )

        logger.info("Profile created for user %s", profile.uuid)
        return profile.model_copy(update={"version": 0})

    async def save(self, profile: UserProfile) -> UserProfile:
        """
        Write the whole tree back if nobody else wrote since it was loaded.

        Returns:
            The profile carrying its new version.

        Raises:
            ConcurrentModificationError: the stored version moved on
            DatabaseError: any other database failure
        """
        expected = profile.version
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(UserProfileRecord)
                        .where(
                            UserProfileRecord.uuid == profile.uuid,
                            UserProfileRecord.version == expected,
                        )
                        .values(
                            subjects=dump_subjects(profile.subjects),
                            version=expected + 1,
                            updated_at=datetime.now(timezone.utc),
                        )
                        .execution_options(synchronize_session=False)
                    )
                    updated = result.rowcount
        except SQLAlchemyError as e:
            logger.error("Database error saving profile %s: %s", profile.uuid, str(e))
            raise DatabaseError(
                message=f"Could not save notes: {e}",
                context={"user_id": profile.uuid, "error_type": type(e).__name__},
            )

        if updated == 0:
            logger.warning(
                "Stale write rejected for profile %s (expected version %d)",
                profile.uuid,
                expected,
            )
            raise ConcurrentModificationError(
                context={"user_id": profile.uuid, "expected_version": expected}
            )

        return profile.model_copy(update={"version": expected + 1})
