"""
StudyBuddy Backend — Session Cookies
======================================

What:  Issues and verifies the signed login cookie.
How:   itsdangerous URLSafeTimedSerializer over {uid, username, email, sid}.
       The signature carries a timestamp; cookies older than SESSION_MAX_AGE
       are rejected on read.
Who:   Written by POST /api/login, read by the require_session dependency.

`sid` is a random id minted per login. Chat history is keyed by it, so a new
login starts a new conversation and logout can discard the old one.
"""

import logging
import secrets
from dataclasses import asdict, dataclass
from typing import Optional

from fastapi import Response
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from studybuddy.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionData:
    uid: str
    username: str
    email: str
    sid: str


class SessionManager:
    SALT = "studybuddy-session"

    def __init__(self, settings: Settings):
        self.serializer = URLSafeTimedSerializer(settings.session_secret, salt=self.SALT)
        self.cookie_name = settings.session_cookie_name
        self.max_age = settings.session_max_age
        self.secure = settings.session_cookie_secure

    def new_session(self, uid: str, username: str, email: str) -> SessionData:
        return SessionData(uid=uid, username=username, email=email, sid=secrets.token_urlsafe(16))

    def encode(self, session: SessionData) -> str:
        return self.serializer.dumps(asdict(session))

    def decode(self, cookie_value: Optional[str]) -> Optional[SessionData]:
        """Return the session in a valid cookie, or None if missing, tampered or expired."""
        if not cookie_value:
            return None
        try:
            data = self.serializer.loads(cookie_value, max_age=self.max_age)
        except SignatureExpired:
            logger.info("Rejected expired session cookie")
            return None
        except BadSignature:
            logger.warning("Rejected session cookie with a bad signature")
            return None
        try:
            return SessionData(
                uid=data["uid"],
                username=data["username"],
                email=data["email"],
                sid=data["sid"],
            )
        except (KeyError, TypeError):
            logger.warning("Rejected malformed session cookie")
            return None

    def set_cookie(self, response: Response, session: SessionData) -> None:
        response.set_cookie(
            key=self.cookie_name,
            value=self.encode(session),
            max_age=self.max_age,
            httponly=True,
            samesite="lax",
            secure=self.secure,
            path="/",
        )

    def clear_cookie(self, response: Response) -> None:
        response.delete_cookie(
            key=self.cookie_name,
            path="/",
            httponly=True,
            samesite="lax",
            secure=self.secure,
        )
