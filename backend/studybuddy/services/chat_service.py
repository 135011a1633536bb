"""
StudyBuddy Backend — AI Buddy Chat Service
============================================

What:  Answers a student's chat message, grounded in their notes.
How:   Asks the LLM service when it is configured, ready and its circuit is
       closed; otherwise (or on any failure, timeout or empty reply) answers
       from an ordered keyword rule table.
Who:   Called by the /api/ai-buddy routes.

Per-message flow:
    message ──▶ blank? ──▶ ValidationError (400)
           │
           ├─▶ LLM available ──▶ build_prompt() ──▶ generate() ──▶ text
           │                                          │ fails / empty
           └─▶ fallback_response() ◀──────────────────┘
           │
           └─▶ history: append (user, assistant), keep the latest 10

History is held in ChatHistoryStore, keyed by the session id minted at login,
so two sessions of one user never see each other's conversation.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Pattern, Tuple

from studybuddy.exceptions import LLMServiceError, ValidationError
from studybuddy.services.llm_base import LLMService

logger = logging.getLogger(__name__)

PERSONA_PREAMBLE = (
    "You are a friendly AI study buddy. Be encouraging and concise (2-3 sentences).\n\n"
)


@dataclass(frozen=True)
class ChatEntry:
    role: str  # "user" | "assistant"
    content: str


# ══════════════════════════════════════════════════════════════════════════
# Fallback Rules
# ══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FallbackRule:
    """
    One rung of the fallback ladder.

    `pattern` is matched against the lowercased message. `template` may contain
    {notes_prefix}, filled with `notes_prefix` only when the student has notes
    context.
    """

    name: str
    pattern: Optional[Pattern[str]]
    template: str
    notes_prefix: str = ""

    def matches(self, lowered: str) -> bool:
        return self.pattern is None or self.pattern.search(lowered) is not None

    def render(self, has_context: bool) -> str:
        return self.template.format(notes_prefix=self.notes_prefix if has_context else "")


def _any_of(*phrases: str) -> Pattern[str]:
    return re.compile("|".join(re.escape(p) for p in phrases))


# Order matters: the first matching rule wins. Keywords are plain substrings,
# so "this" or "which" also read as greetings.
FALLBACK_RULES: Tuple[FallbackRule, ...] = (
    FallbackRule(
        name="greeting",
        pattern=_any_of("hello", "hi", "hey"),
        template=(
            "Hi there! I'm your AI study buddy! I'm here to help you learn and "
            "understand your materials better. What would you like to study today?"
        ),
    ),
    FallbackRule(
        name="help",
        pattern=_any_of("help", "what can you"),
        template=(
            "I can help you in many ways! I can explain concepts, quiz you on topics, "
            "break down complex ideas, and provide study tips. Just ask me anything "
            "about your subjects!"
        ),
    ),
    FallbackRule(
        name="explanation",
        pattern=_any_of("explain", "what is"),
        template=(
            "Great question! {notes_prefix}Let me break this down for you. This concept "
            "is fundamental - once you grasp it, everything becomes clearer! Would you "
            "like me to go deeper into any specific aspect?"
        ),
        notes_prefix="Based on your notes, ",
    ),
    FallbackRule(
        name="quiz",
        pattern=_any_of("quiz", "test"),
        template=(
            "Excellent! Testing yourself is one of the best ways to learn. Can you "
            "explain the main concept from your recent notes in your own words? This "
            "helps reinforce understanding!"
        ),
    ),
    FallbackRule(
        name="difficulty",
        pattern=_any_of("difficult", "hard", "don't understand"),
        template=(
            "Don't worry, that's completely normal! Let's break this down into smaller "
            "pieces. Which specific part is confusing? We'll tackle it step by step "
            "together!"
        ),
    ),
    FallbackRule(
        name="exam_prep",
        pattern=_any_of("exam", "preparation"),
        template=(
            "Preparing for exams? Smart! Review regularly, practice explaining concepts "
            "aloud, and test yourself frequently. Focus on understanding, not "
            "memorizing. You've got this!"
        ),
    ),
    FallbackRule(
        name="thanks",
        pattern=_any_of("thank"),
        template=(
            "You're very welcome! I'm always here to help you succeed. Keep up the "
            "great work! Is there anything else you'd like to learn about?"
        ),
    ),
    FallbackRule(
        name="default",
        pattern=None,
        template=(
            "That's an interesting question! {notes_prefix}The best approach is to "
            "break it down systematically. Can you tell me more about what you'd like "
            "to explore? I'm here to help!"
        ),
        notes_prefix="Looking at your study materials, ",
    ),
)


def fallback_response(message: str, notes_context: Optional[str] = None) -> str:
    lowered = message.lower()
    has_context = bool(notes_context and notes_context.strip())
    for rule in FALLBACK_RULES:
        if rule.matches(lowered):
            return rule.render(has_context)
    return FALLBACK_RULES[-1].render(has_context)


def build_prompt(
    message: str,
    notes_context: Optional[str],
    history: List[ChatEntry],
    context_chars: int = 300,
    history_entries: int = 6,
) -> str:
    """
    Assemble the single-turn prompt sent to the LLM.

    Layout:
        persona preamble
        Student's materials: <first context_chars of the notes>   (if any)
        Recent chat: <latest history_entries lines>               (if any)
        Student: <message>
        AI Buddy:
    """
    prompt = PERSONA_PREAMBLE
    if notes_context and notes_context.strip():
        prompt += f"Student's materials:\n{notes_context[:context_chars]}\n\n"

    recent = history[-history_entries:] if history_entries > 0 else []
    if recent:
        prompt += "Recent chat:\n"
        for entry in recent:
            speaker = "Student" if entry.role == "user" else "AI"
            prompt += f"{speaker}: {entry.content}\n"

    prompt += f"Student: {message}\nAI Buddy:"
    return prompt


# ══════════════════════════════════════════════════════════════════════════
# History Store
# ══════════════════════════════════════════════════════════════════════════

class ChatHistoryStore:
    """
    In-process rolling chat history per session id.

    Each append is followed by truncation to the latest `limit` entries.
    History does not survive a restart.
    """

    def __init__(self, limit: int = 10):
        self.limit = limit
        self._histories: Dict[str, List[ChatEntry]] = {}

    def get(self, session_id: str) -> List[ChatEntry]:
        return list(self._histories.get(session_id, []))

    def append(self, session_id: str, *entries: ChatEntry) -> None:
        history = self._histories.setdefault(session_id, [])
        history.extend(entries)
        if len(history) > self.limit:
            del history[: len(history) - self.limit]

    def clear(self, session_id: str) -> None:
        self._histories.pop(session_id, None)


# ══════════════════════════════════════════════════════════════════════════
# Chat Service
# ══════════════════════════════════════════════════════════════════════════

class ChatService:
    def __init__(
        self,
        llm: Optional[LLMService],
        history: ChatHistoryStore,
        context_chars: int = 300,
        prompt_history: int = 6,
    ):
        self.llm = llm
        self.history = history
        self.context_chars = context_chars
        self.prompt_history = prompt_history

    @property
    def llm_available(self) -> bool:
        return self.llm is not None and self.llm.is_ready

    async def chat(
        self,
        session_id: str,
        message: Optional[str],
        notes_context: Optional[str] = None,
    ) -> str:
        """
        Answer one message and record the exchange in the session's history.

        Raises:
            ValidationError: message missing or blank
        """
        if not message or not message.strip():
            raise ValidationError(message="Message is required", field="message")

        history = self.history.get(session_id)
        response = ""

        if self.llm_available:
            prompt = build_prompt(
                message,
                notes_context,
                history,
                context_chars=self.context_chars,
                history_entries=self.prompt_history,
            )
            try:
                response = await self.llm.generate(prompt)
            except LLMServiceError as e:
                logger.warning("AI buddy falling back to rules: %s", e.message)
                response = ""

        if not response:
            response = fallback_response(message, notes_context)
            logger.info("AI buddy answered from fallback rules")

        self.history.append(
            session_id,
            ChatEntry(role="user", content=message),
            ChatEntry(role="assistant", content=response),
        )
        return response

    def clear_chat(self, session_id: str) -> None:
        self.history.clear(session_id)
        logger.info("Chat history cleared for session %s", session_id[:8])
