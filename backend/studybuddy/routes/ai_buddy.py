"""
StudyBuddy Backend — AI Buddy Route Handlers
==============================================

    POST /api/ai-buddy/chat        → {response}
    POST /api/ai-buddy/clear-chat  → {message}
    GET  /api/ai-buddy/context     → {context, subjectCount, noteCount}

The chat endpoint never fails because of the AI provider; ChatService falls
back to its rule table. It only returns 400 (blank message) or 401.
"""

import logging

from fastapi import APIRouter, Depends

from studybuddy.container import ServiceContainer
from studybuddy.dependencies import get_services, require_session
from studybuddy.schemas.chat import ChatRequest, ChatResponse, NotesContextResponse
from studybuddy.schemas.common import ErrorResponse, MessageResponse
from studybuddy.services.notes_context import count_notes
from studybuddy.services.session import SessionData

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai-buddy", tags=["AI Buddy"])


@router.post(
    "/chat",
    response_model=ChatResponse,
    responses={
        400: {"description": "Message is required", "model": ErrorResponse},
        401: {"description": "Not logged in", "model": ErrorResponse},
    },
    summary="Ask the AI study buddy",
)
async def chat(
    body: ChatRequest,
    session: SessionData = Depends(require_session),
    services: ServiceContainer = Depends(get_services),
) -> ChatResponse:
    """
    Answer one chat message.

    The browser normally sends the notesContext it assembled itself. With
    includeNotes=true and no notesContext the server builds it from the stored
    tree.
    """
    notes_context = body.notes_context
    if body.include_notes and not (notes_context and notes_context.strip()):
        notes_context, _ = await services.notes.build_notes_context(session.uid)

    response = await services.chat.chat(session.sid, body.message, notes_context)
    return ChatResponse(response=response)


@router.post(
    "/clear-chat",
    response_model=MessageResponse,
    responses={401: {"description": "Not logged in", "model": ErrorResponse}},
    summary="Forget this session's chat history",
)
async def clear_chat(
    session: SessionData = Depends(require_session),
    services: ServiceContainer = Depends(get_services),
) -> MessageResponse:
    services.chat.clear_chat(session.sid)
    return MessageResponse(message="Chat history cleared")


@router.get(
    "/context",
    response_model=NotesContextResponse,
    responses={401: {"description": "Not logged in", "model": ErrorResponse}},
    summary="Notes context the AI buddy is grounded in",
)
async def notes_context(
    session: SessionData = Depends(require_session),
    services: ServiceContainer = Depends(get_services),
) -> NotesContextResponse:
    context, subjects = await services.notes.build_notes_context(session.uid)
    return NotesContextResponse(
        context=context,
        subject_count=len(subjects),
        note_count=count_notes(subjects),
    )
