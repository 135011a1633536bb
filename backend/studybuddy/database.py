"""
StudyBuddy Backend — Database Session Management
==================================================

What:  Async SQLAlchemy engine, session factory and declarative base.
How:   One engine per process with connection pooling; repositories open a
       session (and transaction) per operation from `async_session_factory`.
Who:   Used by the credential store (AuthService) and the document store
       (ProfileRepository), both wired in `build_services()`.
When:  Engine is created at module import (no connection is made until first
       use); sessions are created per operation.

Connection Pooling Strategy (PostgreSQL):
    pool_size=20, max_overflow=10, pool_pre_ping, pool_recycle=3600.
    SQLite URLs (used by the test suite) get the driver's default pool.
"""

from typing import Any, Dict

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from studybuddy.config import settings


def build_engine(database_url: str) -> AsyncEngine:
    """
    Create the async engine for `database_url`.

    Pool sizing options only apply to server databases; SQLite's pool classes
    reject them.
    """
    options: Dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    if not database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return create_async_engine(database_url, **options)


engine = build_engine(settings.database_url)

# expire_on_commit=False: records stay readable after the transaction closes
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Registers every model with one metadata object (used by Alembic and by the
    test suite's create_all).
    """
    pass


async def check_connection() -> bool:
    """Run `SELECT 1`; used by the health endpoint."""
    from sqlalchemy import text

    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    return True


async def dispose_engine() -> None:
    """
    What:  Gracefully closes all connections in the pool.
    When:  Called during application shutdown (lifespan handler).
    """
    await engine.dispose()
