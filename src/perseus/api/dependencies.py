"""FastAPI dependency injection for API endpoints."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from perseus.common.config import get_settings
from perseus.common.database import get_db
from perseus.services.module_store import ModuleStore


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session for request.

    Yields:
        Database session.
    """
    async for session in get_db():
        yield session


# Type alias for database session dependency
DbSession = Annotated[AsyncSession, Depends(get_session)]


async def get_store(db: DbSession) -> ModuleStore:
    """Get the module store bound to the request's session."""
    return ModuleStore(db)


Store = Annotated[ModuleStore, Depends(get_store)]


def get_page_size(
    page_size: int = Query(0, ge=0, description="Maximum results per page, 0 for the default"),
) -> int:
    """Resolve the requested page size against configured limits."""
    settings = get_settings()
    if page_size <= 0:
        return settings.api.default_page_size
    return min(page_size, settings.api.max_page_size)


PageSize = Annotated[int, Depends(get_page_size)]
