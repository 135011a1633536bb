"""
StudyBuddy Backend — AI Buddy Chat Service Tests
==================================================

What:  ChatService, the fallback rule ladder, prompt assembly, notes context.
How:   The LLM is a MagicMock with an AsyncMock generate(); no network.

What we test:
    ✅ Fallback precedence and notes-context interpolation
    ✅ Prompt layout (preamble, 300-char context, last 6 history lines)
    ✅ History rolling window and clear
    ✅ LLM failure, timeout, empty reply and not-ready all fall back
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from studybuddy.exceptions import CircuitBreakerOpenError, LLMServiceError, ValidationError
from studybuddy.schemas.notes import Chapter, Note, Subject
from studybuddy.services.chat_service import (
    PERSONA_PREAMBLE,
    ChatEntry,
    ChatHistoryStore,
    ChatService,
    build_prompt,
    fallback_response,
)
from studybuddy.services.notes_context import build_notes_context, count_notes

SID = "session-1"


def _llm(reply="Mitochondria make ATP.", ready=True):
    llm = MagicMock()
    llm.is_ready = ready
    llm.generate = AsyncMock(return_value=reply)
    return llm


def _service(llm=None, limit=10):
    return ChatService(llm=llm, history=ChatHistoryStore(limit=limit))


class TestFallbackRules:

    @pytest.mark.parametrize(
        "message, expected_start",
        [
            ("Hello there", "Hi there! I'm your AI study buddy!"),
            ("hey", "Hi there!"),
            ("What can you do?", "I can help you in many ways!"),
            ("Please explain osmosis", "Great question!"),
            ("Quiz me", "Excellent! Testing yourself"),
            ("Can you quiz me?", "Excellent! Testing yourself"),
            ("It's so hard", "Don't worry, that's completely normal!"),
            ("I don't understand", "Don't worry"),
            ("exam tomorrow", "Preparing for exams? Smart!"),
            ("Thanks a lot", "You're very welcome!"),
            ("Tell me about photosynthesis", "That's an interesting question!"),
        ],
    )
    def test_rule_selection(self, message, expected_start):
        assert fallback_response(message).startswith(expected_start)

    def test_first_match_wins(self):
        """'help' is checked before 'quiz'."""
        response = fallback_response("I need help with a quiz")
        assert response.startswith("I can help you in many ways!")

    @pytest.mark.parametrize(
        "message", ["this history chapter", "Which topic is hard?", "What is this?", "Explain this"]
    )
    def test_greeting_matches_inside_words(self, message):
        """'hi' anywhere in the message, as in 'this' or 'which', counts as a greeting."""
        assert fallback_response(message).startswith("Hi there! I'm your AI study buddy!")

    def test_case_insensitive(self):
        assert fallback_response("HELLO").startswith("Hi there!")

    def test_explanation_mentions_notes_only_with_context(self):
        with_notes = fallback_response("What is ATP?", "User's Study Materials:\n\nSubject: Bio\n")
        without = fallback_response("What is ATP?", "")
        assert "Based on your notes, Let me break this down" in with_notes
        assert "Great question! Let me break this down" in without

    def test_default_mentions_materials_only_with_context(self):
        assert "Looking at your study materials, " in fallback_response("Photosynthesis?", "notes")
        assert "Looking at your study materials" not in fallback_response("Photosynthesis?", "   ")


class TestBuildPrompt:

    def test_minimal_prompt(self):
        prompt = build_prompt("What is ATP?", None, [])
        assert prompt == PERSONA_PREAMBLE + "Student: What is ATP?\nAI Buddy:"

    def test_context_truncated(self):
        context = "x" * 500
        prompt = build_prompt("Q", context, [])
        assert f"Student's materials:\n{'x' * 300}\n\n" in prompt
        assert "x" * 301 not in prompt

    def test_only_last_six_history_entries(self):
        history = [
            ChatEntry(role="user" if i % 2 == 0 else "assistant", content=f"m{i}")
            for i in range(8)
        ]
        prompt = build_prompt("Q", "", history)
        assert "m0" not in prompt and "m1" not in prompt
        assert "Recent chat:\nStudent: m2\nAI: m3\nStudent: m4\nAI: m5\nStudent: m6\nAI: m7\n" in prompt
        assert prompt.endswith("Student: Q\nAI Buddy:")

    def test_section_order(self):
        history = [ChatEntry("user", "hi"), ChatEntry("assistant", "hello!")]
        prompt = build_prompt("Next?", "Subject: Bio", history)
        assert prompt == (
            PERSONA_PREAMBLE
            + "Student's materials:\nSubject: Bio\n\n"
            + "Recent chat:\nStudent: hi\nAI: hello!\n"
            + "Student: Next?\nAI Buddy:"
        )


class TestChatService:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", [None, "", "   "])
    async def test_blank_message_rejected(self, message):
        with pytest.raises(ValidationError) as exc_info:
            await _service().chat(SID, message)
        assert exc_info.value.message == "Message is required"

    @pytest.mark.asyncio
    async def test_uses_llm_reply(self):
        llm = _llm()
        service = _service(llm)

        response = await service.chat(SID, "What do mitochondria do?", "Subject: Bio")

        assert response == "Mitochondria make ATP."
        prompt = llm.generate.await_args.args[0]
        assert prompt.startswith(PERSONA_PREAMBLE)
        assert prompt.endswith("Student: What do mitochondria do?\nAI Buddy:")

    @pytest.mark.asyncio
    async def test_prompt_includes_previous_exchange(self):
        llm = _llm()
        service = _service(llm)
        await service.chat(SID, "first question")
        await service.chat(SID, "second question")

        prompt = llm.generate.await_args.args[0]
        assert "Recent chat:\nStudent: first question\nAI: Mitochondria make ATP.\n" in prompt

    @pytest.mark.asyncio
    async def test_no_llm_uses_fallback(self):
        response = await _service(None).chat(SID, "hello")
        assert response.startswith("Hi there!")

    @pytest.mark.asyncio
    async def test_not_ready_skips_llm(self):
        llm = _llm(ready=False)
        response = await _service(llm).chat(SID, "thanks")
        assert response.startswith("You're very welcome!")
        llm.generate.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [LLMServiceError(message="AI response timed out"), CircuitBreakerOpenError(recovery_time=30)],
    )
    async def test_llm_errors_fall_back(self, error):
        llm = _llm()
        llm.generate.side_effect = error
        response = await _service(llm).chat(SID, "quiz me")
        assert response.startswith("Excellent! Testing yourself")

    @pytest.mark.asyncio
    async def test_empty_reply_falls_back(self):
        response = await _service(_llm(reply="")).chat(SID, "exam prep")
        assert response.startswith("Preparing for exams?")

    @pytest.mark.asyncio
    async def test_history_keeps_last_ten(self):
        service = _service(None)
        for i in range(7):
            await service.chat(SID, f"question {i}")

        history = service.history.get(SID)
        assert len(history) == 10
        assert history[0] == ChatEntry("user", "question 2")
        assert history[-1].role == "assistant"

    @pytest.mark.asyncio
    async def test_clear_then_one_exchange(self):
        service = _service(None)
        for i in range(6):
            await service.chat(SID, f"question {i}")

        service.clear_chat(SID)
        assert service.history.get(SID) == []

        await service.chat(SID, "thanks")
        assert len(service.history.get(SID)) == 2

    @pytest.mark.asyncio
    async def test_sessions_do_not_share_history(self):
        service = _service(None)
        await service.chat("session-a", "hello")
        assert service.history.get("session-b") == []

    def test_clear_unknown_session(self):
        _service(None).clear_chat("never-seen")


class TestNotesContext:

    def _tree(self):
        return [
            Subject(
                name="Biology",
                chapters=[
                    Chapter(
                        name="Cell Theory",
                        notes=[
                            Note(title="Mitochondria", content="Powerhouse of the cell"),
                            Note(title="Lab report", type="assignment"),
                        ],
                    )
                ],
            ),
            Subject(name="History"),
        ]

    def test_format(self):
        assert build_notes_context(self._tree()) == (
            "User's Study Materials:\n\n"
            "Subject: Biology\n"
            "  Chapter: Cell Theory\n"
            "    - Mitochondria (notes)\n"
            "      Content: Powerhouse of the cell\n"
            "    - Lab report (assignment)\n"
            "\n"
            "Subject: History\n"
            "\n"
        )

    def test_empty_tree(self):
        assert build_notes_context([]) == "User's Study Materials:\n\n"

    def test_count_notes(self):
        assert count_notes(self._tree()) == 2
        assert count_notes([]) == 0
