import logging

from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from ..domain.ports.progress import VideoCatalog

logger = logging.getLogger("watchspan.catalog")

CACHE_KEY_PREFIX = "catalog:duration:"
DEFAULT_TTL_SECONDS = 3600


class CachedVideoCatalog(VideoCatalog):
    """
    Read-through Redis cache in front of the catalog duration lookup.
    Redis failures are logged and bypassed; the catalog stays authoritative.
    Only positive durations are cached so a later metadata fix is picked up.
    """

    def __init__(
        self,
        catalog: VideoCatalog,
        redis_client: AsyncRedis | None,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        self._catalog = catalog
        self._redis = redis_client
        self._ttl = ttl_seconds

    def _key(self, video_id: str) -> str:
        return f"{CACHE_KEY_PREFIX}{video_id}"

    async def _read_cached(self, video_id: str) -> float | None:
        if self._redis is None:
            return None
        try:
            cached = await self._redis.get(self._key(video_id))
        except RedisError as exc:
            logger.warning(
                "Redis operation failed operation=GET video_id=%s error=%s", video_id, exc
            )
            return None
        if cached is None:
            return None
        try:
            return float(cached)
        except (TypeError, ValueError):
            logger.warning("Discarding malformed cached duration video_id=%s value=%r", video_id, cached)
            return None

    async def _write_cached(self, video_id: str, duration: float) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.set(self._key(video_id), repr(duration), ex=self._ttl)
        except RedisError as exc:
            logger.warning(
                "Redis operation failed operation=SET video_id=%s error=%s", video_id, exc
            )

    async def get_duration(self, video_id: str) -> float | None:
        cached = await self._read_cached(video_id)
        if cached is not None and cached > 0:
            logger.debug("catalog_cache hit video_id=%s", video_id)
            return cached

        duration = await self._catalog.get_duration(video_id)
        if duration is not None and duration > 0:
            await self._write_cached(video_id, duration)
        return duration

