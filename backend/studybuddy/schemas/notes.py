"""
StudyBuddy Backend — Note Tree Schemas
========================================

What:  Pydantic models for the Subject → Chapter → Note tree and the request
       and response bodies of the /api/user endpoints.
How:   The same models are the in-memory aggregate (UserProfile), the JSON
       stored in `user_profiles.subjects`, and the API response payload.

Ownership:
    UserProfile ─┬─ Subject ─┬─ Chapter ─┬─ Note
                 │           │           └─ Note
                 │           └─ Chapter
                 └─ Subject

Identifiers are UUID4 strings, unique across the whole tree. Lookups are still
always resolved within the parent (find_subject → find_chapter).
"""

import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import Field

from studybuddy.schemas.common import CamelModel

NoteType = Literal["notes", "test", "assignment", "project"]
NOTE_TYPES = ("notes", "test", "assignment", "project")


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ══════════════════════════════════════════════════════════════════════════
# Document Models: the note tree
# ══════════════════════════════════════════════════════════════════════════


class Note(CamelModel):
    """
    A single study item inside a chapter.

    fileUrl/mimeType stay empty unless a file was stored in the object store.
    """
    id: str = Field(default_factory=new_id)
    title: str
    content: str = ""
    type: NoteType = "notes"
    file_url: str = ""
    mime_type: str = ""
    created_at: datetime = Field(default_factory=utcnow)


class Chapter(CamelModel):
    id: str = Field(default_factory=new_id)
    name: str
    notes: List[Note] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class Subject(CamelModel):
    id: str = Field(default_factory=new_id)
    name: str
    chapters: List[Chapter] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    def find_chapter(self, chapter_id: str) -> Optional[Chapter]:
        return next((c for c in self.chapters if c.id == chapter_id), None)


class UserProfile(CamelModel):
    """
    Aggregate root: one user's whole note tree.

    `version` is the value read from the store; ProfileRepository.save() only
    succeeds if the stored version still matches it.
    """
    uuid: str
    subjects: List[Subject] = Field(default_factory=list)
    version: int = 0

    def find_subject(self, subject_id: str) -> Optional[Subject]:
        return next((s for s in self.subjects if s.id == subject_id), None)


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════
# Fields are optional so that missing values reach the service and produce the
# 400 ValidationError messages instead of FastAPI's schema errors.


class CreateSubjectRequest(CamelModel):
    name: Optional[str] = None


class CreateChapterRequest(CamelModel):
    subject_id: Optional[str] = None
    name: Optional[str] = None


class CreateNoteRequest(CamelModel):
    subject_id: Optional[str] = None
    chapter_id: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = ""
    type: Optional[str] = "notes"


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class SubjectListResponse(CamelModel):
    """
    GET /api/user/subjects.

    hasSubjects=false with an empty list and a guidance message is the
    first-use signal, not an error.
    """
    has_subjects: bool
    subjects: List[Subject]
    message: Optional[str] = None


class SubjectsResponse(CamelModel):
    message: str = "Subject created"
    subjects: List[Subject]


class ChaptersResponse(CamelModel):
    message: str = "Chapter created"
    chapters: List[Chapter]


class NotesResponse(CamelModel):
    message: str = "Note added"
    notes: List[Note]


class UploadNoteResponse(CamelModel):
    message: str
    notes: List[Note]
    file_url: Optional[str] = None
