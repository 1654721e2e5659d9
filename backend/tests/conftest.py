"""Shared test fixtures and configuration."""
import os

# Settings are read from the environment on first access; the engine in
# watchspan.database is created at import time, so these must be set first.
os.environ.setdefault("SECRET_KEY", "watchspan-test-secret-key-0123456789abcdef")
os.environ.setdefault("ALLOWED_ORIGINS", "http://localhost:3000")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from watchspan.models import Base  # noqa: E402


@pytest.fixture
async def db_engine(tmp_path):
    # A file database so separate sessions get separate connections
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'watchspan.db'}")
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as db_session:
        yield db_session


@pytest.fixture
def anyio_backend():
    # The code under test is built on asyncio; don't run it under other backends
    return "asyncio"
