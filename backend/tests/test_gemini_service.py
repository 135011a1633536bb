"""
StudyBuddy Backend — Gemini Service Unit Tests (Mocked)
=========================================================

What:  Tests for GeminiService with mocked Google Generative AI SDK.
Why:   Tests should not make real API calls (costs money, requires network).
How:   Patches the genai module and model to simulate success/failure.

What we test:
    ✅ Circuit breaker state machine
    ✅ Readiness probe (success, failure after retries)
    ✅ generate(): success, not ready, circuit open, timeout, API error
    ✅ Health check never raises
    ❌ Real API calls (use integration tests for that)
"""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from studybuddy.config import Settings
from studybuddy.exceptions import CircuitBreakerOpenError, LLMServiceError
from studybuddy.services.gemini_service import CircuitBreaker, GeminiService


def _settings(**overrides) -> Settings:
    values = dict(
        gemini_api_key="test-key",
        ai_probe_on_startup=False,
        retry_max_attempts=1,
        retry_min_wait=1,
        retry_max_wait=5,
        cb_failure_threshold=2,
        cb_recovery_timeout=10,
    )
    values.update(overrides)
    return Settings(**values)


def _response(text):
    response = MagicMock()
    response.text = text
    return response


class TestCircuitBreaker:
    """Tests for the CircuitBreaker resilience pattern."""

    def test_initial_state_is_closed(self):
        """New circuit breaker should start in CLOSED (allowing calls)."""
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        assert cb.state == "closed"
        assert cb.failure_count == 0

    def test_stays_closed_under_threshold(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        for _ in range(4):
            cb.record_failure()
        assert cb.state == "closed"
        assert cb.can_execute() is True

    def test_opens_at_threshold(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        for _ in range(3):
            cb.record_failure()
        assert cb.state == "open"

    def test_open_circuit_rejects_calls(self):
        """OPEN circuit breaker should reject calls with CircuitBreakerOpenError."""
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        cb.record_failure()

        with pytest.raises(CircuitBreakerOpenError):
            cb.can_execute()

    def test_success_resets_failure_count(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        cb.record_failure()
        cb.record_failure()
        assert cb.failure_count == 2

        cb.record_success()
        assert cb.failure_count == 0
        assert cb.state == "closed"

    def test_half_open_after_recovery_timeout(self):
        """With a 0s recovery timeout the next check moves to HALF_OPEN."""
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        assert cb.state == "open"

        time.sleep(0.01)
        assert cb.can_execute() is True
        assert cb.state == "half_open"

    def test_failure_in_half_open_reopens(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        cb.can_execute()

        cb.record_failure()
        assert cb.state == "open"

    def test_success_after_half_open_closes(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        time.sleep(0.01)
        cb.can_execute()

        cb.record_success()
        assert cb.state == "closed"
        assert cb.failure_count == 0


class TestGeminiServiceMocked:
    """Tests for GeminiService with mocked Gemini API."""

    def test_model_configured_from_settings(self):
        with patch("studybuddy.services.gemini_service.genai") as mock_genai:
            GeminiService(_settings(gemini_model="gemini-1.5-pro", gemini_temperature=0.2))

        mock_genai.configure.assert_called_once_with(api_key="test-key")
        args, kwargs = mock_genai.GenerativeModel.call_args
        assert args[0] == "gemini-1.5-pro"
        assert kwargs["generation_config"]["temperature"] == 0.2

    def test_ready_without_probe(self):
        with patch("studybuddy.services.gemini_service.genai"):
            assert GeminiService(_settings(ai_probe_on_startup=False)).is_ready is True

    def test_not_ready_until_probed(self):
        with patch("studybuddy.services.gemini_service.genai"):
            assert GeminiService(_settings(ai_probe_on_startup=True)).is_ready is False

    @pytest.mark.asyncio
    async def test_generate_success(self):
        with patch("studybuddy.services.gemini_service.genai") as mock_genai:
            mock_model = MagicMock()
            mock_model.generate_content_async = AsyncMock(
                return_value=_response("  Mitochondria make ATP.  \n")
            )
            mock_genai.GenerativeModel.return_value = mock_model

            service = GeminiService(_settings())
            result = await service.generate("Student: what are mitochondria?\nAI Buddy:")

        assert result == "Mitochondria make ATP."
        mock_model.generate_content_async.assert_awaited_once_with(
            "Student: what are mitochondria?\nAI Buddy:"
        )
        assert service.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_generate_refused_when_not_ready(self):
        with patch("studybuddy.services.gemini_service.genai") as mock_genai:
            service = GeminiService(_settings(ai_probe_on_startup=True))

            with pytest.raises(LLMServiceError, match="not ready"):
                await service.generate("hi")

        mock_genai.GenerativeModel.return_value.generate_content_async.assert_not_called()

    @pytest.mark.asyncio
    async def test_generate_circuit_breaker_open(self):
        """When circuit breaker is open, should raise CircuitBreakerOpenError."""
        with patch("studybuddy.services.gemini_service.genai"):
            service = GeminiService(_settings())

            for _ in range(service.circuit_breaker.failure_threshold):
                service.circuit_breaker.record_failure()

            with pytest.raises(CircuitBreakerOpenError):
                await service.generate("hi")

    @pytest.mark.asyncio
    async def test_generate_timeout_records_failure(self):
        with patch("studybuddy.services.gemini_service.genai") as mock_genai:
            mock_model = MagicMock()
            mock_model.generate_content_async = AsyncMock(side_effect=asyncio.TimeoutError())
            mock_genai.GenerativeModel.return_value = mock_model

            service = GeminiService(_settings())
            with pytest.raises(LLMServiceError, match="timed out"):
                await service.generate("hi")

        assert service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_repeated_api_errors_open_circuit(self):
        with patch("studybuddy.services.gemini_service.genai") as mock_genai:
            mock_model = MagicMock()
            mock_model.generate_content_async = AsyncMock(side_effect=RuntimeError("quota"))
            mock_genai.GenerativeModel.return_value = mock_model

            service = GeminiService(_settings(cb_failure_threshold=2))
            for _ in range(2):
                with pytest.raises(LLMServiceError, match="AI response failed"):
                    await service.generate("hi")

            assert service.circuit_breaker.state == "open"
            with pytest.raises(CircuitBreakerOpenError):
                await service.generate("hi")
            assert mock_model.generate_content_async.await_count == 2

    @pytest.mark.asyncio
    async def test_probe_success_marks_ready(self):
        with patch("studybuddy.services.gemini_service.genai") as mock_genai:
            mock_model = MagicMock()
            mock_model.generate_content_async = AsyncMock(return_value=_response("Hi!"))
            mock_genai.GenerativeModel.return_value = mock_model

            service = GeminiService(_settings(ai_probe_on_startup=True))
            assert await service.probe() is True

        assert service.is_ready is True
        mock_model.generate_content_async.assert_awaited_once_with("Hello")

    @pytest.mark.asyncio
    async def test_probe_failure_leaves_fallback_mode(self):
        with patch("studybuddy.services.gemini_service.genai") as mock_genai:
            mock_model = MagicMock()
            mock_model.generate_content_async = AsyncMock(side_effect=RuntimeError("bad key"))
            mock_genai.GenerativeModel.return_value = mock_model

            service = GeminiService(_settings(ai_probe_on_startup=True, retry_max_attempts=1))
            assert await service.probe() is False

        assert service.is_ready is False

    @pytest.mark.asyncio
    async def test_health_check_reachable(self):
        with patch("studybuddy.services.gemini_service.genai") as mock_genai:
            model = MagicMock()
            model.name = "models/gemini-1.5-flash"
            mock_genai.list_models.return_value = [model]

            service = GeminiService(_settings())
            assert await service.health_check() is True

    @pytest.mark.asyncio
    async def test_health_check_failure_returns_false(self):
        with patch("studybuddy.services.gemini_service.genai") as mock_genai:
            mock_genai.list_models.side_effect = RuntimeError("unauthenticated")

            service = GeminiService(_settings())
            assert await service.health_check() is False
