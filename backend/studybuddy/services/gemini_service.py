"""
StudyBuddy Backend — Google Gemini Service Implementation
===========================================================

What:  Concrete LLM service answering AI buddy prompts with Google Gemini.
How:   One GenerativeModel per process, a readiness probe at startup, a timeout
       on every call, and a circuit breaker in front of the API.
Who:   Built once by build_services(); called by ChatService for each message.

Resilience Strategy:
    1. Startup probe: a short "Hello" generation, retried with tenacity
       (exponential backoff + jitter). Until it succeeds the service is not
       ready and ChatService answers from its fallback rules.
    2. Request path: no retries. Each call is bounded by AI_TIMEOUT_SECONDS.
    3. Circuit breaker: after CB_FAILURE_THRESHOLD consecutive failures calls
       are rejected instantly until CB_RECOVERY_TIMEOUT has passed.
"""

import asyncio
import logging
import time
import uuid
from typing import Optional

import google.generativeai as genai
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential_jitter,
)

from studybuddy.config import Settings
from studybuddy.exceptions import CircuitBreakerOpenError, LLMServiceError
from studybuddy.services.llm_base import LLMService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker guarding the Gemini API.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow ONE request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Not thread-safe; all callers share one event loop.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through.

        Raises:
            CircuitBreakerOpenError if OPEN and the recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Gemini Service
# ══════════════════════════════════════════════════════════════════════════

class GeminiService(LLMService):
    """
    Google Gemini implementation of LLMService.

    Error Handling Chain:
        not ready           → LLMServiceError (no API call)
        circuit OPEN        → CircuitBreakerOpenError (no API call)
        timeout / API error → record failure → LLMServiceError
        success             → record success → stripped text
    """

    PROBE_PROMPT = "Hello"

    def __init__(self, settings: Settings):
        genai.configure(api_key=settings.gemini_api_key)

        self.model_name = settings.gemini_model
        self.model = genai.GenerativeModel(
            settings.gemini_model,
            generation_config={
                "temperature": settings.gemini_temperature,
                "max_output_tokens": settings.gemini_max_output_tokens,
            },
        )
        self.timeout = settings.ai_timeout_seconds
        self.retry_max_attempts = settings.retry_max_attempts
        self.retry_min_wait = settings.retry_min_wait
        self.retry_max_wait = settings.retry_max_wait

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )
        # Without a startup probe the configured key is trusted as-is.
        self._ready = not settings.ai_probe_on_startup

        logger.info(
            "GeminiService initialized with model=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            settings.gemini_model,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def _call_gemini(self, prompt: str, request_id: str) -> str:
        start_time = time.time()
        response = await asyncio.wait_for(
            self.model.generate_content_async(prompt),
            timeout=self.timeout,
        )
        text = (response.text or "").strip()
        logger.info(
            "[%s] Gemini responded in %.0fms with %d chars",
            request_id,
            (time.time() - start_time) * 1000,
            len(text),
        )
        return text

    async def probe(self) -> bool:
        """
        Readiness probe run once at startup.

        What:    Sends a short "Hello" generation.
        How:     tenacity AsyncRetrying with exponential backoff + jitter.
        Returns: True if the model answered; the service stays in fallback
                 mode otherwise.
        """
        request_id = "probe"
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_max_attempts),
                wait=wait_exponential_jitter(
                    initial=self.retry_min_wait,
                    max=self.retry_max_wait,
                    jitter=1,
                ),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    await self._call_gemini(self.PROBE_PROMPT, request_id)
        except Exception as e:
            self._ready = False
            logger.error(
                "Gemini model %s failed its readiness probe: %s. "
                "AI buddy will answer from fallback rules.",
                self.model_name,
                str(e),
            )
            return False

        self._ready = True
        logger.info("Gemini model %s is ready", self.model_name)
        return True

    async def generate(self, prompt: str) -> str:
        """
        Generate a reply for the AI buddy.

        Flow:
            1. Refuse if the startup probe has not succeeded
            2. Check circuit breaker → may raise CircuitBreakerOpenError
            3. Call Gemini once, bounded by the configured timeout
            4. Record success/failure in the circuit breaker
        """
        request_id = str(uuid.uuid4())[:8]

        if not self._ready:
            raise LLMServiceError(
                message="AI model is not ready",
                context={"request_id": request_id},
            )

        self.circuit_breaker.can_execute()

        try:
            text = await self._call_gemini(prompt, request_id)
        except asyncio.TimeoutError:
            self.circuit_breaker.record_failure()
            logger.warning("[%s] Gemini timed out after %ss", request_id, self.timeout)
            raise LLMServiceError(
                message="AI response timed out",
                context={"request_id": request_id, "timeout_seconds": self.timeout},
            )
        except Exception as e:
            # The SDK raises google.api_core errors and ValueError (blocked
            # responses have no .text).
            self.circuit_breaker.record_failure()
            logger.warning("[%s] Gemini call failed: %s", request_id, str(e))
            raise LLMServiceError(
                message="AI response failed",
                context={"request_id": request_id, "error_type": type(e).__name__},
            )

        self.circuit_breaker.record_success()
        return text

    async def health_check(self) -> bool:
        """
        Check if the Gemini API is reachable.

        How:     Lists available models (no token cost) in a worker thread.
        Returns: True if reachable and authenticated, False otherwise.
        """
        try:
            models = await asyncio.to_thread(lambda: [m.name for m in genai.list_models()])
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False

        target = f"models/{self.model_name}"
        if target not in models:
            logger.warning("Configured model %s not found in available models", target)
        return True
