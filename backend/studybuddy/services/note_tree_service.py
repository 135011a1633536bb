"""
StudyBuddy Backend — Note Tree Service (Business Logic Orchestrator)
======================================================================

What:  Creates and lists the Subject → Chapter → Note tree of one user.
Why:   Keeps ownership checks, validation and upload ordering out of the routes.
How:   Every mutation is an aggregate-root update: load the UserProfile, change
       it in memory, write the whole tree back through ProfileRepository.save()
       (optimistic concurrency, 409 on a stale version).
Who:   Called by the /api/user routes and the AI buddy context endpoint.

Note-with-file flow (POST /api/user/upload-note-file):
    ┌───────────┐    ┌──────────┐    ┌──────────────┐    ┌──────────────┐
    │ Validate  │───▶│  Lookup  │───▶│ Object store │───▶│ Append note  │
    │ ids/title │    │ subject/ │    │ put_object   │    │ save profile │
    └───────────┘    │ chapter  │    │ (timeout)    │    └──────┬───────┘
                     └──────────┘    └──────────────┘           │ fails
                                                               ▼
                                                     delete_object (best-effort)

    The note is appended only after the object was stored, so a note never
    points at a file that does not exist.
    An upload that outlives the timeout is deleted in the background once
    put_object returns.
"""

import asyncio
import logging
from typing import List, Optional, Set, Tuple

from studybuddy.exceptions import (
    NotFoundError,
    ObjectStoreError,
    ServiceUnavailableError,
    ValidationError,
)
from studybuddy.schemas.notes import (
    NOTE_TYPES,
    Chapter,
    Note,
    Subject,
    SubjectListResponse,
    UserProfile,
)
from studybuddy.services.notes_context import build_notes_context
from studybuddy.services.object_store import (
    ObjectStore,
    UploadedFile,
    build_object_name,
    safe_filename,
    validate_upload,
)
from studybuddy.services.profile_repository import ProfileRepository

logger = logging.getLogger(__name__)

EMPTY_TREE_MESSAGE = "Add your first subject to get started!"


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


class NoteTreeService:
    """
    Business logic for the note tree.

    Dependencies are injected by build_services(); the object store is None
    when file uploads are not configured.
    """

    def __init__(
        self,
        repository: ProfileRepository,
        object_store: Optional[ObjectStore],
        max_upload_size: int,
        upload_timeout: float,
    ):
        self.repository = repository
        self.object_store = object_store
        self.max_upload_size = max_upload_size
        self.upload_timeout = upload_timeout
        self._pending_cleanups: Set["asyncio.Task[None]"] = set()

    async def _load_existing(self, user_id: str) -> UserProfile:
        profile = await self.repository.load(user_id)
        if profile is None:
            raise NotFoundError(resource="user", resource_id=user_id)
        return profile

    def _delete_when_finished(self, put: "asyncio.Future[str]", object_name: str) -> None:
        """Remove an abandoned upload once its put_object call has returned."""

        async def cleanup() -> None:
            try:
                await put
            except ObjectStoreError as e:
                logger.warning("Abandoned upload of %s failed: %s", object_name, e.message)
            await self.object_store.delete_object(object_name)

        task = asyncio.ensure_future(cleanup())
        self._pending_cleanups.add(task)
        task.add_done_callback(self._pending_cleanups.discard)

    async def wait_for_cleanups(self) -> None:
        """Wait until every abandoned upload has been removed (used on shutdown)."""
        if self._pending_cleanups:
            await asyncio.gather(*self._pending_cleanups, return_exceptions=True)

    # ── Queries ───────────────────────────────────────────────────────────

    async def list_subjects(self, user_id: str) -> SubjectListResponse:
        """A missing profile or an empty tree is the first-use state, not an error."""
        profile = await self.repository.load(user_id)
        if profile is None or not profile.subjects:
            return SubjectListResponse(
                has_subjects=False,
                subjects=[],
                message=EMPTY_TREE_MESSAGE,
            )
        return SubjectListResponse(has_subjects=True, subjects=profile.subjects)

    async def build_notes_context(self, user_id: str) -> Tuple[str, List[Subject]]:
        """Serialized tree for the AI buddy, plus the subjects it was built from."""
        profile = await self.repository.load(user_id)
        subjects = profile.subjects if profile is not None else []
        return build_notes_context(subjects), subjects

    # ── Mutations ─────────────────────────────────────────────────────────

    async def create_subject(self, user_id: str, name: Optional[str]) -> List[Subject]:
        """
        Append a subject, creating the profile on first use.

        Duplicate names are allowed; each subject gets its own id.

        Raises:
            ValidationError: name missing or blank
            ConcurrentModificationError: the profile changed since it was loaded
        """
        name = _clean(name)
        if not name:
            raise ValidationError(message="Subject name is required", field="name")

        subject = Subject(name=name)
        profile = await self.repository.load(user_id)

        if profile is None:
            profile = await self.repository.create(
                UserProfile(uuid=user_id, subjects=[subject])
            )
        else:
            profile.subjects.append(subject)
            profile = await self.repository.save(profile)

        logger.info("Subject %s created for user %s", subject.id, user_id)
        return profile.subjects

    async def create_chapter(
        self,
        user_id: str,
        subject_id: Optional[str],
        name: Optional[str],
    ) -> List[Chapter]:
        """
        Append a chapter to one of the user's subjects.

        Raises:
            ValidationError: subjectId or name missing
            NotFoundError: no profile, or the subject is not the user's
        """
        subject_id = _clean(subject_id)
        name = _clean(name)
        if not subject_id or not name:
            raise ValidationError(message="Subject ID and chapter name are required")

        profile = await self._load_existing(user_id)
        subject = profile.find_subject(subject_id)
        if subject is None:
            raise NotFoundError(resource="subject", resource_id=subject_id)

        chapter = Chapter(name=name)
        subject.chapters.append(chapter)
        profile = await self.repository.save(profile)

        logger.info("Chapter %s created in subject %s", chapter.id, subject_id)
        return profile.find_subject(subject_id).chapters

    async def create_note(
        self,
        user_id: str,
        subject_id: Optional[str],
        chapter_id: Optional[str],
        title: Optional[str] = None,
        content: Optional[str] = "",
        note_type: Optional[str] = "notes",
        upload: Optional[UploadedFile] = None,
    ) -> Tuple[List[Note], Optional[str]]:
        """
        Append a note, optionally backed by an uploaded file.

        Workflow Steps:
            1. Validate ids, title-or-file, and note type
            2. Resolve subject and chapter inside the user's profile
            3. With a file: require an object store, check size and MIME type,
               store the object (bounded by upload_timeout)
            4. Append the note and save the profile
            5. If the save fails, remove the stored object

        Returns:
            (chapter notes after the append, file URL or None)

        Raises:
            ValidationError: missing ids, no title and no file, unknown type,
                disallowed MIME type
            NotFoundError: no profile, subject or chapter
            ServiceUnavailableError: file given but no object store configured
            PayloadTooLargeError: file above max_upload_size
            ObjectStoreError: upload failed or timed out
            ConcurrentModificationError: the profile changed since it was loaded
        """
        subject_id = _clean(subject_id)
        chapter_id = _clean(chapter_id)
        title = _clean(title)
        note_type = _clean(note_type) or "notes"

        # ── Step 1: Validate input ────────────────────────────────────────
        if not subject_id or not chapter_id:
            raise ValidationError(message="Subject ID and chapter ID are required")
        if not title and upload is None:
            raise ValidationError(message="Title or file is required", field="title")
        if note_type not in NOTE_TYPES:
            raise ValidationError(
                message=f"Invalid note type '{note_type}'",
                field="type",
                context={"allowed": list(NOTE_TYPES)},
            )

        # ── Step 2: Resolve ancestors ─────────────────────────────────────
        profile = await self._load_existing(user_id)
        subject = profile.find_subject(subject_id)
        if subject is None:
            raise NotFoundError(resource="subject", resource_id=subject_id)
        chapter = subject.find_chapter(chapter_id)
        if chapter is None:
            raise NotFoundError(resource="chapter", resource_id=chapter_id)

        # ── Step 3: Store the file ────────────────────────────────────────
        file_url: Optional[str] = None
        object_name: Optional[str] = None
        mime_type = ""
        if upload is not None:
            if self.object_store is None:
                raise ServiceUnavailableError(service="object_store")
            validate_upload(upload, self.max_upload_size)

            object_name = build_object_name(user_id, subject_id, chapter_id, upload.filename)
            mime_type = upload.content_type
            put = asyncio.ensure_future(
                self.object_store.put_object(object_name, upload.content, mime_type)
            )
            try:
                file_url = await asyncio.wait_for(asyncio.shield(put), timeout=self.upload_timeout)
            except asyncio.TimeoutError:
                logger.error(
                    "Upload of %s timed out after %ss", object_name, self.upload_timeout
                )
                self._delete_when_finished(put, object_name)
                raise ObjectStoreError(
                    message="Upload timed out",
                    context={"object": object_name, "timeout_seconds": self.upload_timeout},
                )
            except asyncio.CancelledError:
                self._delete_when_finished(put, object_name)
                raise
            if not title:
                title = safe_filename(upload.filename)

        # ── Step 4: Append and persist ────────────────────────────────────
        note = Note(
            title=title,
            content=content or "",
            type=note_type,
            file_url=file_url or "",
            mime_type=mime_type,
        )
        chapter.notes.append(note)
        try:
            profile = await self.repository.save(profile)
        except Exception:
            # ── Step 5: Undo the upload ───────────────────────────────────
            if object_name is not None:
                await self.object_store.delete_object(object_name)
            raise

        logger.info("Note %s added to chapter %s", note.id, chapter_id)
        notes = profile.find_subject(subject_id).find_chapter(chapter_id).notes
        return notes, file_url
