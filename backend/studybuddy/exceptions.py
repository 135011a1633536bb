"""
StudyBuddy Backend — Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions for the different error scenarios.
How:   Each exception carries a human-readable message and an optional context
       dict. Global exception handlers (registered in main.py) convert them into
       JSON error responses with the matching HTTP status code.
Who:   Raised by services, dependencies and middleware; caught by global handlers.

Exception Hierarchy:
    StudyBuddyError (base)
    ├── ValidationError              → 400 Bad Request
    ├── UnauthenticatedError         → 401 Unauthorized
    ├── NotFoundError                → 404 Not Found
    ├── ConcurrentModificationError  → 409 Conflict
    ├── PayloadTooLargeError         → 413 Payload Too Large
    ├── ServiceUnavailableError      → 500 (object store not configured)
    ├── ObjectStoreError             → 500 (upload failed or timed out)
    ├── DatabaseError                → 500
    └── LLMServiceError              → never surfaced; chat falls back to rules
        └── CircuitBreakerOpenError
"""

from typing import Any, Dict, Optional


class StudyBuddyError(Exception):
    """
    Base exception for all StudyBuddy application errors.

    Attributes:
        message:  User-facing error description (returned in the API response)
        context:  Additional debug info (logged, and returned as `details` only
                  where the handler says so)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(StudyBuddyError):
    """
    Raised when client input fails validation.

    When:    Missing or blank required field, unknown note type, disallowed file type.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class UnauthenticatedError(StudyBuddyError):
    """Raised when a session-protected route is called without a valid session (401)."""

    def __init__(
        self,
        message: str = "Not authenticated. Please log in.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(StudyBuddyError):
    """
    Raised when a requested resource does not exist for the current user.

    When:    Unknown profile, subject or chapter id.
    HTTP:    404 Not Found

    The message names the resource kind ("Subject not found"); the id is kept in
    the context only.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"{resource.capitalize()} not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource


class ConcurrentModificationError(StudyBuddyError):
    """
    Raised when a profile write loses an optimistic-concurrency race.

    What:    The profile's version changed between load and write.
    HTTP:    409 Conflict. The request is not retried; the client may resend it.
    """

    def __init__(
        self,
        message: str = "Your notes were changed by another request. Please try again.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PayloadTooLargeError(StudyBuddyError):
    """Raised when an upload exceeds the configured maximum size (413)."""

    def __init__(
        self,
        max_size: int,
        actual_size: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        max_mb = max_size / (1024 * 1024)
        ctx = context or {}
        ctx["max_size_mb"] = max_mb
        if actual_size is not None:
            ctx["actual_size"] = actual_size
        super().__init__(
            message=f"File size exceeds maximum of {max_mb:.0f}MB.",
            context=ctx,
        )
        self.max_size = max_size


class ServiceUnavailableError(StudyBuddyError):
    """
    Raised when a required external collaborator is not configured or reachable.

    When:    A file is uploaded but no object store is configured.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "Cloud storage not configured",
        service: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if service:
            ctx["service"] = service
        super().__init__(message=message, context=ctx)
        self.service = service


class ObjectStoreError(StudyBuddyError):
    """
    Raised when writing to the object store fails or times out.

    Recovery:
        - No note is appended (the note write only follows a successful upload)
        - The raw cause is attached to the response for diagnostics
    """

    def __init__(
        self,
        message: str = "Upload failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(StudyBuddyError):
    """Raised when a database operation fails unexpectedly (500)."""

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class LLMServiceError(StudyBuddyError):
    """
    Raised when the generative-AI call fails, times out or returns nothing.

    Never reaches the HTTP layer: ChatService catches it and answers from the
    fallback rule table instead.
    """

    def __init__(
        self,
        message: str = "AI service is temporarily unavailable",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CircuitBreakerOpenError(LLMServiceError):
    """
    Raised when the circuit breaker is in OPEN state.

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for the recovery timeout)
        → After the timeout → HALF-OPEN (allow one test call)
        → If test succeeds → CLOSED
        → If test fails → OPEN again
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(
            message=(
                "AI service is temporarily unavailable due to repeated failures. "
                f"It will be retried in approximately {recovery_time} seconds."
            ),
            context=ctx,
        )
        self.recovery_time = recovery_time
