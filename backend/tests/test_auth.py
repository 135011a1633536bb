"""
StudyBuddy Backend — Auth & Session Unit Tests
================================================

What:  Tests for password hashing, AuthService and the signed session cookie.
How:   AuthService runs against the per-test SQLite database (db fixture);
       bcrypt uses 4 rounds to keep the suite fast.

What we test:
    ✅ Register creates the user and an empty profile
    ✅ Duplicate email and missing fields are rejected
    ✅ Unknown email and wrong password give the same error
    ✅ Cookies round-trip; tampered and expired cookies are rejected
"""

import pytest
from sqlalchemy import select

from studybuddy.exceptions import ValidationError
from studybuddy.models.profile import UserProfileRecord
from studybuddy.models.user import User
from studybuddy.services.auth_service import AuthService, hash_password, verify_password
from studybuddy.services.session import SessionData, SessionManager


class TestPasswordHashing:

    def test_hash_is_not_plaintext(self):
        hashed = hash_password("s3cret-pass", rounds=4)
        assert hashed != "s3cret-pass"
        assert hashed.startswith("$2")

    def test_verify(self):
        hashed = hash_password("s3cret-pass", rounds=4)
        assert verify_password("s3cret-pass", hashed) is True
        assert verify_password("wrong", hashed) is False

    def test_long_passwords_are_accepted(self):
        password = "p" * 100
        assert verify_password(password, hash_password(password, rounds=4)) is True

    def test_garbage_hash_does_not_verify(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestAuthService:

    @pytest.fixture
    def auth(self, db) -> AuthService:
        return AuthService(db, bcrypt_rounds=4)

    @pytest.mark.asyncio
    async def test_register_creates_user_and_profile(self, auth, db):
        user = await auth.register("ada", " ada@example.com ", "s3cret-pass")

        assert user.email == "ada@example.com"
        async with db() as session:
            stored = await session.get(User, user.id)
            profile = await session.get(UserProfileRecord, user.id)
        assert stored.password_hash != "s3cret-pass"
        assert profile is not None
        assert profile.subjects == []
        assert profile.version == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "username, email, password",
        [("", "a@b.c", "pw"), ("ada", None, "pw"), ("ada", "a@b.c", ""), ("   ", "a@b.c", "pw")],
    )
    async def test_register_requires_all_fields(self, auth, username, email, password):
        with pytest.raises(ValidationError) as exc_info:
            await auth.register(username, email, password)
        assert exc_info.value.message == "All fields are required"

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, auth, db):
        await auth.register("ada", "ada@example.com", "s3cret-pass")

        with pytest.raises(ValidationError) as exc_info:
            await auth.register("ada2", "ada@example.com", "other-pass")
        assert exc_info.value.message == "User already exists"

        async with db() as session:
            users = (await session.execute(select(User))).scalars().all()
        assert len(users) == 1

    @pytest.mark.asyncio
    async def test_authenticate(self, auth):
        created = await auth.register("ada", "ada@example.com", "s3cret-pass")
        user = await auth.authenticate("ada@example.com", "s3cret-pass")
        assert user.id == created.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "email, password",
        [("ada@example.com", "wrong-pass"), ("nobody@example.com", "s3cret-pass")],
    )
    async def test_authenticate_rejects_bad_credentials(self, auth, email, password):
        await auth.register("ada", "ada@example.com", "s3cret-pass")
        with pytest.raises(ValidationError) as exc_info:
            await auth.authenticate(email, password)
        assert exc_info.value.message == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_authenticate_requires_fields(self, auth):
        with pytest.raises(ValidationError) as exc_info:
            await auth.authenticate("", None)
        assert exc_info.value.message == "Email and password are required"


class TestSessionManager:

    def test_round_trip(self, settings):
        manager = SessionManager(settings)
        session = manager.new_session("user-1", "ada", "ada@example.com")

        decoded = manager.decode(manager.encode(session))

        assert decoded == session
        assert isinstance(decoded, SessionData)

    def test_each_login_gets_new_sid(self, settings):
        manager = SessionManager(settings)
        first = manager.new_session("user-1", "ada", "ada@example.com")
        second = manager.new_session("user-1", "ada", "ada@example.com")
        assert first.sid != second.sid

    def test_missing_cookie(self, settings):
        assert SessionManager(settings).decode(None) is None
        assert SessionManager(settings).decode("") is None

    def test_tampered_cookie(self, settings):
        manager = SessionManager(settings)
        token = manager.encode(manager.new_session("user-1", "ada", "ada@example.com"))
        payload, rest = token.split(".", 1)
        tampered = payload[::-1] + "." + rest
        assert manager.decode(tampered) is None

    def test_other_secret_rejected(self, settings):
        token = SessionManager(settings).encode(
            SessionData(uid="user-1", username="ada", email="ada@example.com", sid="s")
        )
        other = SessionManager(settings.model_copy(update={"session_secret": "different"}))
        assert other.decode(token) is None

    def test_expired_cookie(self, settings):
        manager = SessionManager(settings)
        token = manager.encode(manager.new_session("user-1", "ada", "ada@example.com"))
        manager.max_age = -1
        assert manager.decode(token) is None

    def test_malformed_payload(self, settings):
        manager = SessionManager(settings)
        token = manager.serializer.dumps({"uid": "user-1"})
        assert manager.decode(token) is None
