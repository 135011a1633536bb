"""
StudyBuddy Backend — Service Container
========================================

What:  Builds every service once and holds them for the app's lifetime.
How:   `build_services(settings)` wires repositories, the object store, the
       Gemini client and the chat history; `create_app()` stores the result on
       `app.state.services`, and routes reach it through `get_services`.
Who:   Called by create_app(); tests build their own container with fakes.

Readiness flags (Gemini probed, object store configured) live on these objects,
not in module globals.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studybuddy.config import Settings
from studybuddy.services.auth_service import AuthService
from studybuddy.services.chat_service import ChatHistoryStore, ChatService
from studybuddy.services.gemini_service import GeminiService
from studybuddy.services.llm_base import LLMService
from studybuddy.services.note_tree_service import NoteTreeService
from studybuddy.services.object_store import ObjectStore, build_object_store
from studybuddy.services.profile_repository import ProfileRepository
from studybuddy.services.session import SessionManager

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    auth: AuthService
    sessions: SessionManager
    notes: NoteTreeService
    chat: ChatService
    object_store: Optional[ObjectStore]
    llm: Optional[LLMService]


def build_services(
    settings: Settings,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    object_store: Optional[ObjectStore] = None,
    llm: Optional[LLMService] = None,
    disable_uploads: bool = False,
) -> ServiceContainer:
    """
    Wire the service graph.

    `object_store` and `llm` override what the settings would build; leave them
    None to build from settings (a missing GEMINI_API_KEY leaves the AI buddy
    in fallback mode, an empty OBJECT_STORE_BACKEND disables uploads).
    `disable_uploads=True` turns file notes off whatever the settings say.
    """
    if session_factory is None:
        from studybuddy.database import async_session_factory

        session_factory = async_session_factory

    if disable_uploads:
        object_store = None
    elif object_store is None:
        object_store = build_object_store(settings)

    if llm is None and settings.gemini_configured:
        llm = GeminiService(settings)
    elif llm is None:
        logger.warning("GEMINI_API_KEY is not set. AI buddy will use fallback responses.")

    notes = NoteTreeService(
        repository=ProfileRepository(session_factory),
        object_store=object_store,
        max_upload_size=settings.max_upload_size,
        upload_timeout=settings.upload_timeout_seconds,
    )
    chat = ChatService(
        llm=llm,
        history=ChatHistoryStore(limit=settings.chat_history_limit),
        context_chars=settings.notes_context_prompt_chars,
        prompt_history=settings.chat_prompt_history,
    )

    return ServiceContainer(
        settings=settings,
        auth=AuthService(session_factory, bcrypt_rounds=settings.bcrypt_rounds),
        sessions=SessionManager(settings),
        notes=notes,
        chat=chat,
        object_store=object_store,
        llm=llm,
    )
