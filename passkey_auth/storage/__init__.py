"""Database connection and session management.

Provides async SQLAlchemy engine and session factory construction.
Uses asyncpg for PostgreSQL async support.

Engines are built per application and owned by whoever built them
(the API lifespan, the CLI, a test); there is no module-level engine.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from passkey_auth.settings import Settings, get_settings
from passkey_auth.storage.models import Base


def build_engine(settings: Settings | None = None) -> AsyncEngine:
    """Create an async database engine.

    Args:
        settings: Optional settings override. Uses get_settings() if not provided.

    Returns:
        Configured AsyncEngine instance.
    """
    settings = settings or get_settings()
    return create_async_engine(
        str(settings.database_url),
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
        pool_recycle=settings.database_pool_recycle,
        pool_pre_ping=True,
        echo=settings.debug,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to ``engine``."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Verify connectivity at application startup."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def create_tables(engine: AsyncEngine) -> None:
    """Create the passkey_user and passkey_credential tables if missing."""
    import passkey_auth.storage.entities  # noqa: F401  (register mappers)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    """Dispose of the engine's connection pool."""
    await engine.dispose()


__all__ = [
    "build_engine",
    "build_session_factory",
    "close_db",
    "create_tables",
    "init_db",
]
