from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import settings


def _engine_options() -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.debug}
    # SQLite uses a non-queue pool that rejects sizing arguments
    if not settings.uses_sqlite:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_recycle=settings.db_pool_recycle,
            pool_pre_ping=settings.db_pool_pre_ping,
        )
    return options


engine = create_async_engine(settings.database_url, **_engine_options())

# Repositories re-query with populate_existing after conditional writes, so
# committed objects are never reused as if they were fresh.
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
