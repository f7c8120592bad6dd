"""Database access for the module store.

One async engine per process, opened by the API lifespan. Sessions are
handed to request handlers through get_db.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from perseus.common.config import Settings, get_settings
from perseus.common.logging import get_logger

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def engine_options(settings: Settings) -> dict[str, Any]:
    """Keyword arguments for create_async_engine.

    Development runs without a pool so that reloads never hold
    connections open; other environments use the configured pool.
    """
    db = settings.database
    options: dict[str, Any] = {
        "echo": db.echo,
        "connect_args": {"server_settings": {"application_name": settings.app_name}},
    }
    if settings.environment == "development":
        options["poolclass"] = NullPool
        return options

    options.update(
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
        pool_pre_ping=True,
    )
    return options


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    """Create the async engine for the configured PostgreSQL database."""
    settings = settings or get_settings()
    return create_async_engine(settings.database.async_url, **engine_options(settings))


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


async def ensure_schema(engine: AsyncEngine) -> None:
    """Create the module, version and dependency tables if missing."""
    from perseus.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug("Module store schema ensured", tables=sorted(Base.metadata.tables))


async def init_database(settings: Settings | None = None, create_tables: bool = True) -> None:
    """Open the process-wide engine. Calling it again is a no-op.

    Args:
        settings: Application settings. Uses global settings if not provided.
        create_tables: Create any missing tables from the ORM metadata.
    """
    global _engine, _session_factory

    if _engine is not None:
        return

    engine = create_engine(settings)
    if create_tables:
        await ensure_schema(engine)
    _engine = engine
    _session_factory = create_session_factory(engine)


async def close_database() -> None:
    """Dispose of the process-wide engine, if one is open."""
    global _engine, _session_factory

    engine, _engine, _session_factory = _engine, None, None
    if engine is not None:
        await engine.dispose()


def get_engine() -> AsyncEngine:
    """Get the process-wide engine.

    Raises:
        RuntimeError: If init_database has not run.
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request.

    The session is committed when the handler succeeds and rolled back
    when it raises.
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def check_database_connection() -> bool:
    """Return whether the module store answers a trivial query."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Database health check failed", error=str(e))
        return False
    return True
