from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .crud.video import VideoCatalogRepository
from .crud.video_progress import ProgressRepository
from .database import get_session
from .domain.ports.progress import (
    ProgressRepository as ProgressRepositoryPort,
    VideoCatalog,
)
from .infra.redis import get_async_redis_client
from .security.token_inspection import (
    ExpiredTokenError,
    InvalidTokenError,
    viewer_id_from_token,
)
from .services.catalog_cache import CachedVideoCatalog

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session():
        yield session


def get_progress_port(db: AsyncSession = Depends(get_db)) -> ProgressRepositoryPort:
    return ProgressRepository(db)


def get_catalog_repository(db: AsyncSession = Depends(get_db)) -> VideoCatalogRepository:
    return VideoCatalogRepository(db)


def get_video_catalog(
    catalog: VideoCatalogRepository = Depends(get_catalog_repository),
) -> VideoCatalog:
    try:
        redis_client = get_async_redis_client()
    except (RedisError, ValueError):
        redis_client = None
    return CachedVideoCatalog(
        catalog, redis_client, ttl_seconds=settings.catalog_cache_ttl_seconds
    )


async def get_current_viewer_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated"
        )

    try:
        return viewer_id_from_token(credentials.credentials)
    except ExpiredTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has expired"
        ) from None
    except InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token"
        ) from None
