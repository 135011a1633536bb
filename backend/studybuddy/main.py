"""
StudyBuddy Backend — FastAPI Application Factory
==================================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() builds the service container, registers
       middleware, exception handlers and routers.
Who:   uvicorn (uvicorn studybuddy.main:app) and the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────┐
    │                    FastAPI App                        │
    │                                                      │
    │  Middleware Chain:                                   │
    │  ┌────────┐ ┌─────────┐ ┌──────────────┐ ┌────────┐ │
    │  │ Req ID │→│ Logging │→│ Upload limit │→│GZip/CORS│ │
    │  └────────┘ └─────────┘ └──────────────┘ └────────┘ │
    │                                                      │
    │  Routes:                                             │
    │  /api/register /api/login /api/logout                │
    │  /api/user/{subjects,chapters,notes,upload-note-file}│
    │  /api/ai-buddy/{chat,clear-chat,context}             │
    │  /api/health                                         │
    │                                                      │
    │  State: app.state.services (ServiceContainer)        │
    └──────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Configure logging
    2. Report missing configuration (the server still starts)
    3. Probe the Gemini model; fallback mode if it does not answer
    Shutdown:
    1. Dispose database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from studybuddy import __version__
from studybuddy.config import Settings
from studybuddy.container import ServiceContainer, build_services
from studybuddy.database import dispose_engine
from studybuddy.exceptions import (
    ConcurrentModificationError,
    DatabaseError,
    NotFoundError,
    ObjectStoreError,
    PayloadTooLargeError,
    ServiceUnavailableError,
    StudyBuddyError,
    UnauthenticatedError,
    ValidationError,
)
from studybuddy.middleware.logging import RequestLoggingMiddleware
from studybuddy.middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware, request_id_var
from studybuddy.middleware.upload_limit import UploadSizeLimitMiddleware
from studybuddy.routes import ai_buddy, auth, health, user
from studybuddy.services.gemini_service import GeminiService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once, before anything else logs.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s  (stdout)
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Reduce noise from third-party libraries
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "google", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    services: ServiceContainer = app.state.services
    settings = services.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(settings.log_level)
    logger.info("=" * 60)
    logger.info("StudyBuddy Backend starting up...")

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Don't exit: the app still serves notes, and chat falls back to rules
        logger.warning("%s", str(e))

    if isinstance(services.llm, GeminiService) and settings.ai_probe_on_startup:
        await services.llm.probe()

    store = services.object_store
    logger.info("   Object store: %s", store.backend if store else "not configured")
    logger.info("   Gemini AI:    %s", "READY" if services.chat.llm_available else "FALLBACK MODE")
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("StudyBuddy Backend shutting down...")
    await services.notes.wait_for_cleanups()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_response(
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """Build the error body shared by every handler: {error, code, details?, request_id}."""
    content: Dict[str, Any] = {"error": message, "code": code}
    if details:
        content["details"] = jsonable_encoder(details)
    content["request_id"] = request_id_var.get("")
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to HTTP responses.

    Handler hierarchy:
        ValidationError / RequestValidationError → 400
        UnauthenticatedError                     → 401
        NotFoundError                            → 404
        ConcurrentModificationError              → 409
        PayloadTooLargeError                     → 413
        ServiceUnavailableError                  → 500 service_unavailable
        ObjectStoreError                         → 500 upload_failed
        DatabaseError                            → 500 database_error
        StudyBuddyError (base) / Exception       → 500 internal_error

    LLMServiceError never gets here; ChatService falls back to its rules.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return error_response(400, "validation_error", exc.message, exc.context)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        logger.warning("[%s] Malformed request: %s", request_id_var.get(""), exc.errors())
        return error_response(
            400, "validation_error", "Invalid request", {"errors": exc.errors()}
        )

    @app.exception_handler(UnauthenticatedError)
    async def handle_unauthenticated(request: Request, exc: UnauthenticatedError):
        return error_response(401, "unauthenticated", exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return error_response(404, "not_found", exc.message)

    @app.exception_handler(ConcurrentModificationError)
    async def handle_conflict(request: Request, exc: ConcurrentModificationError):
        logger.warning("[%s] Conflict: %s | %s", request_id_var.get(""), exc.message, exc.context)
        return error_response(409, "conflict", exc.message)

    @app.exception_handler(PayloadTooLargeError)
    async def handle_payload_too_large(request: Request, exc: PayloadTooLargeError):
        return error_response(413, "payload_too_large", exc.message, exc.context)

    @app.exception_handler(ServiceUnavailableError)
    async def handle_service_unavailable(request: Request, exc: ServiceUnavailableError):
        logger.error("[%s] %s", request_id_var.get(""), exc.message)
        return error_response(500, "service_unavailable", exc.message)

    @app.exception_handler(ObjectStoreError)
    async def handle_object_store_error(request: Request, exc: ObjectStoreError):
        rid = request_id_var.get("")
        logger.error("[%s] Object store error: %s | Context: %s", rid, exc.message, exc.context)
        return error_response(500, "upload_failed", exc.message, exc.context)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        rid = request_id_var.get("")
        logger.error("[%s] Database error: %s | Context: %s", rid, exc.message, exc.context)
        return error_response(500, "database_error", "Database operation failed", {"message": exc.message})

    @app.exception_handler(StudyBuddyError)
    async def handle_app_error(request: Request, exc: StudyBuddyError):
        rid = request_id_var.get("")
        logger.error("[%s] Unhandled application error: %s", rid, exc.message)
        return error_response(500, "internal_error", "Internal server error", {"message": exc.message})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return error_response(500, "internal_error", "Internal server error", {"message": str(exc)})


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    settings: Optional[Settings] = None,
    services: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Services are built here rather than in the lifespan so the app is usable
    under transports that do not run lifespan events (httpx ASGITransport).
    """
    if services is None:
        if settings is None:
            from studybuddy.config import settings
        services = build_services(settings)
    settings = services.settings

    app = FastAPI(
        title="StudyBuddy API",
        description=(
            "Backend of the AI Study Buddy: organize notes by subject and chapter, "
            "attach files, and chat with an assistant grounded in your notes."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.services = services

    # ── Register Middleware ───────────────────────────────────────────────
    # Executes in REVERSE order of addition (last added = outermost).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(UploadSizeLimitMiddleware, max_upload_size=settings.max_upload_size)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(user.router)
    app.include_router(ai_buddy.router)
    app.include_router(health.router)

    return app


app = create_app()
