"""
StudyBuddy Backend — Test Configuration (conftest.py)
=======================================================

What:  Shared pytest fixtures for the whole suite.
How:   Environment is pinned BEFORE any studybuddy import, so the module-level
       settings and engine point at a throwaway SQLite file, uploads are
       disabled, Gemini is unconfigured and bcrypt is cheap.

Fixture Hierarchy (all function-scoped):
    db ─────────────┬── services ── app ── client / logged_in_client
    (tables created │
     per test)      └── repository, note_tree_service
    settings
    local_store (LocalObjectStore under tmp_path)
"""

import os
import tempfile

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

_TEST_DIR = tempfile.mkdtemp(prefix="studybuddy_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.db"
os.environ["GEMINI_API_KEY"] = ""
os.environ["AI_PROBE_ON_STARTUP"] = "false"
os.environ["OBJECT_STORE_BACKEND"] = ""
os.environ["STORAGE_ROOT"] = os.path.join(_TEST_DIR, "storage")
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "WARNING"

from typing import Any, Dict  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from studybuddy.config import Settings  # noqa: E402
from studybuddy.container import build_services  # noqa: E402
from studybuddy.database import Base, async_session_factory, engine  # noqa: E402
from studybuddy.main import create_app  # noqa: E402
from studybuddy.services.note_tree_service import NoteTreeService  # noqa: E402
from studybuddy.services.object_store import LocalObjectStore  # noqa: E402
from studybuddy.services.profile_repository import ProfileRepository  # noqa: E402

import studybuddy.models  # noqa: E402,F401


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db():
    """
    Fresh tables for each test.

    The engine is disposed afterwards so no pooled connection outlives the
    test's event loop.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_session_factory
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def repository(db) -> ProfileRepository:
    return ProfileRepository(db)


# ══════════════════════════════════════════════════════════════════════════
# Services
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def local_store(tmp_path) -> LocalObjectStore:
    return LocalObjectStore(str(tmp_path / "objects"), "http://test/files")


@pytest.fixture
def note_tree_service(repository, local_store) -> NoteTreeService:
    return NoteTreeService(
        repository=repository,
        object_store=local_store,
        max_upload_size=1024 * 1024,
        upload_timeout=5.0,
    )


@pytest.fixture
def services(db, settings):
    return build_services(settings, session_factory=db)


# ══════════════════════════════════════════════════════════════════════════
# HTTP
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def app(services):
    return create_app(services=services)


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def register_and_login(
    client: AsyncClient,
    username: str = "ada",
    email: str = "ada@example.com",
    password: str = "s3cret-pass",
) -> Dict[str, Any]:
    """Register a user through the API and log in; the client keeps the cookie."""
    response = await client.post(
        "/api/register",
        json={"username": username, "email": email, "password": password},
    )
    assert response.status_code == 200, response.text
    response = await client.post("/api/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()


@pytest_asyncio.fixture
async def logged_in_client(client):
    await register_and_login(client)
    return client
