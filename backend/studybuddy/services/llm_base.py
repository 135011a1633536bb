"""
StudyBuddy Backend — Abstract LLM Service Interface
=====================================================

What:  Abstract base class for the text-generation backend of the AI buddy.
Why:   ChatService only needs "prompt in, text out"; the provider stays swappable
       and tests can pass a mock.
How:   Concrete implementations inherit from LLMService and implement generate().
Who:   Called by ChatService.chat().
"""

from abc import ABC, abstractmethod


class LLMService(ABC):
    """
    Abstract interface for prompt-to-text generation.

    Contract:
        - generate() returns the model's text, stripped ("" when it said nothing)
        - Every provider failure is raised as LLMServiceError
        - A service that is not ready or whose circuit is open raises
          LLMServiceError / CircuitBreakerOpenError without calling out

    Implementations:
        - GeminiService: Google Gemini
    """

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """True once the service passed its readiness check."""
        ...

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """
        Generate a reply for a single-turn prompt.

        Raises:
            LLMServiceError: not ready, timed out, or the provider failed
            CircuitBreakerOpenError: too many recent failures
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Lightweight connectivity test that does not consume generation quota.

        Called by the health endpoint.
        """
        ...
