"""
StudyBuddy Backend — Auth Route Handlers
==========================================

    POST /api/register  → create account (200, redirect hint to /login.html)
    POST /api/login     → set the session cookie (200, redirect hint to /dashboard.html)
    POST /api/logout    → clear the cookie and this session's chat history

Invalid credentials and duplicate emails are 400 (ValidationError), not 401.
"""

import logging

from fastapi import APIRouter, Depends, Response

from studybuddy.container import ServiceContainer
from studybuddy.dependencies import get_services, require_session
from studybuddy.schemas.auth import LoginRequest, LoginResponse, RegisterRequest, RegisterResponse
from studybuddy.schemas.common import ErrorResponse, MessageResponse
from studybuddy.services.session import SessionData

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Auth"])


@router.post(
    "/register",
    response_model=RegisterResponse,
    responses={400: {"description": "Missing fields or user exists", "model": ErrorResponse}},
    summary="Register a new user",
)
async def register(
    body: RegisterRequest,
    services: ServiceContainer = Depends(get_services),
) -> RegisterResponse:
    await services.auth.register(body.username, body.email, body.password)
    return RegisterResponse()


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={400: {"description": "Invalid email or password", "model": ErrorResponse}},
    summary="Log in and start a session",
)
async def login(
    body: LoginRequest,
    response: Response,
    services: ServiceContainer = Depends(get_services),
) -> LoginResponse:
    """
    Check credentials and issue a fresh session.

    Every login mints a new session id, so the chat history starts empty.
    """
    user = await services.auth.authenticate(body.email, body.password)

    session = services.sessions.new_session(
        uid=user.id, username=user.username, email=user.email
    )
    services.sessions.set_cookie(response, session)

    return LoginResponse(username=user.username, email=user.email, user_id=user.id)


@router.post(
    "/logout",
    response_model=MessageResponse,
    responses={401: {"description": "Not logged in", "model": ErrorResponse}},
    summary="End the current session",
)
async def logout(
    response: Response,
    session: SessionData = Depends(require_session),
    services: ServiceContainer = Depends(get_services),
) -> MessageResponse:
    services.chat.clear_chat(session.sid)
    services.sessions.clear_cookie(response)
    logger.info("User %s logged out", session.uid)
    return MessageResponse(message="Logged out successfully")
