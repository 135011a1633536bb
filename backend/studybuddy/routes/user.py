"""
StudyBuddy Backend — Note Tree Route Handlers
===============================================

What:  The /api/user endpoints that read and grow a user's note tree.
How:   Thin handlers: pull the user id from the session, delegate to
       NoteTreeService, wrap the result in a response model.

    GET  /api/user/subjects          → {hasSubjects, subjects, message?}
    POST /api/user/subjects          → 201 {message, subjects}
    POST /api/user/chapters          → 201 {message, chapters}
    POST /api/user/notes             → 201 {message, notes}
    POST /api/user/upload-note-file  → 201 {message, notes, fileUrl?}  (multipart)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from studybuddy.container import ServiceContainer
from studybuddy.dependencies import get_services, require_session
from studybuddy.schemas.common import ErrorResponse
from studybuddy.schemas.notes import (
    ChaptersResponse,
    CreateChapterRequest,
    CreateNoteRequest,
    CreateSubjectRequest,
    NotesResponse,
    SubjectListResponse,
    SubjectsResponse,
    UploadNoteResponse,
)
from studybuddy.services.object_store import UploadedFile
from studybuddy.services.session import SessionData

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["Notes"])

_ERRORS = {
    400: {"description": "Missing or invalid input", "model": ErrorResponse},
    401: {"description": "Not logged in", "model": ErrorResponse},
    404: {"description": "Subject or chapter not found", "model": ErrorResponse},
    409: {"description": "The note tree changed concurrently; reload and retry", "model": ErrorResponse},
}


@router.get(
    "/subjects",
    response_model=SubjectListResponse,
    response_model_exclude_none=True,
    responses={401: _ERRORS[401]},
    summary="List the user's subjects with their chapters and notes",
)
async def list_subjects(
    session: SessionData = Depends(require_session),
    services: ServiceContainer = Depends(get_services),
) -> SubjectListResponse:
    return await services.notes.list_subjects(session.uid)


@router.post(
    "/subjects",
    status_code=201,
    response_model=SubjectsResponse,
    responses={k: _ERRORS[k] for k in (400, 401, 409)},
    summary="Create a subject",
)
async def create_subject(
    body: CreateSubjectRequest,
    session: SessionData = Depends(require_session),
    services: ServiceContainer = Depends(get_services),
) -> SubjectsResponse:
    subjects = await services.notes.create_subject(session.uid, body.name)
    return SubjectsResponse(subjects=subjects)


@router.post(
    "/chapters",
    status_code=201,
    response_model=ChaptersResponse,
    responses=_ERRORS,
    summary="Create a chapter inside a subject",
)
async def create_chapter(
    body: CreateChapterRequest,
    session: SessionData = Depends(require_session),
    services: ServiceContainer = Depends(get_services),
) -> ChaptersResponse:
    chapters = await services.notes.create_chapter(session.uid, body.subject_id, body.name)
    return ChaptersResponse(chapters=chapters)


@router.post(
    "/notes",
    status_code=201,
    response_model=NotesResponse,
    responses=_ERRORS,
    summary="Add a text note to a chapter",
)
async def create_note(
    body: CreateNoteRequest,
    session: SessionData = Depends(require_session),
    services: ServiceContainer = Depends(get_services),
) -> NotesResponse:
    notes, _ = await services.notes.create_note(
        session.uid,
        subject_id=body.subject_id,
        chapter_id=body.chapter_id,
        title=body.title,
        content=body.content,
        note_type=body.type,
    )
    return NotesResponse(notes=notes)


@router.post(
    "/upload-note-file",
    status_code=201,
    response_model=UploadNoteResponse,
    response_model_exclude_none=True,
    responses={
        **_ERRORS,
        411: {"description": "Upload sent without Content-Length", "model": ErrorResponse},
        413: {"description": "File larger than 50MB", "model": ErrorResponse},
        500: {"description": "Cloud storage not configured or upload failed", "model": ErrorResponse},
    },
    summary="Add a note, optionally with an attached file",
    description=(
        "Multipart form with subjectId, chapterId and optional title, type, content "
        "and file (PDF, Word, Excel, JPEG, PNG or plain text, max 50MB). The file is "
        "stored first; the note is only added once the upload succeeded."
    ),
)
async def upload_note_file(
    subject_id: Optional[str] = Form(None, alias="subjectId"),
    chapter_id: Optional[str] = Form(None, alias="chapterId"),
    title: Optional[str] = Form(None),
    type: Optional[str] = Form("notes"),
    content: Optional[str] = Form(""),
    file: Optional[UploadFile] = File(None),
    session: SessionData = Depends(require_session),
    services: ServiceContainer = Depends(get_services),
) -> UploadNoteResponse:
    upload: Optional[UploadedFile] = None
    if file is not None and file.filename:
        try:
            data = await file.read()
        finally:
            await file.close()
        upload = UploadedFile(
            filename=file.filename,
            content=data,
            content_type=file.content_type or "application/octet-stream",
        )
        logger.info(
            "Received note upload: filename=%s, size=%d bytes",
            file.filename,
            len(data),
        )

    notes, file_url = await services.notes.create_note(
        session.uid,
        subject_id=subject_id,
        chapter_id=chapter_id,
        title=title,
        content=content,
        note_type=type,
        upload=upload,
    )
    message = "File uploaded" if file_url else "Note saved"
    return UploadNoteResponse(message=message, notes=notes, file_url=file_url)
