"""
StudyBuddy Backend — FastAPI Dependencies
===========================================

    get_services     → the ServiceContainer on app.state
    require_session  → SessionData from the signed cookie, or 401
"""

from fastapi import Depends, Request

from studybuddy.container import ServiceContainer
from studybuddy.exceptions import UnauthenticatedError
from studybuddy.services.session import SessionData


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def require_session(
    request: Request,
    services: ServiceContainer = Depends(get_services),
) -> SessionData:
    """Raise UnauthenticatedError (401) unless the request carries a valid session cookie."""
    cookie = request.cookies.get(services.sessions.cookie_name)
    session = services.sessions.decode(cookie)
    if session is None:
        raise UnauthenticatedError()
    return session
