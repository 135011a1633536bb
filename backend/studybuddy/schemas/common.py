"""
StudyBuddy Backend — Shared Schemas
=====================================

What:  Base model with camelCase aliases, plus error and health responses.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Base for every API/document model.

    Serializes as camelCase (FastAPI responses use by_alias) and accepts both
    camelCase and snake_case on input.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageResponse(CamelModel):
    message: str


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Fields:
        error: Human-readable description, safe to show to the user
        code: Machine-readable error code (e.g., "validation_error", "not_found")
        details: Optional extra context (field name, raw cause of a 500)
        request_id: Correlation ID for tracing this error in server logs

    Example:
        {
            "error": "Subject not found",
            "code": "not_found",
            "request_id": "1f2e3d4c"
        }
    """
    error: str = Field(description="Human-readable error description")
    code: str = Field(description="Machine-readable error code")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(CamelModel):
    """Returned by GET /api/health for monitoring."""

    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="connected | disconnected")
    object_store: str = Field(description="configured | unavailable | not_configured")
    gemini: str = Field(description="ready | fallback | circuit_open | not_configured")
    uptime_seconds: float = Field(description="Seconds since service started")
