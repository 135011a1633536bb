"""
StudyBuddy Backend — AI Buddy Chat Schemas
============================================
"""

from typing import Optional

from pydantic import Field

from studybuddy.schemas.common import CamelModel


class ChatRequest(CamelModel):
    """
    POST /api/ai-buddy/chat.

    notesContext is the text the browser assembled from the note tree. With
    includeNotes=true and no notesContext, the server builds it from the
    user's stored tree instead.
    """
    message: Optional[str] = None
    notes_context: Optional[str] = None
    include_notes: bool = False


class ChatResponse(CamelModel):
    response: str


class NotesContextResponse(CamelModel):
    context: str = Field(description="Serialized note tree used to ground the assistant")
    subject_count: int
    note_count: int
