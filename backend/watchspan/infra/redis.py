import logging

from redis.asyncio import Redis as AsyncRedis

from ..config import settings

logger = logging.getLogger("watchspan.redis")

_async_client: AsyncRedis | None = None


def get_async_redis_client() -> AsyncRedis:
    """Return the process-wide async Redis client, creating it on first use."""
    global _async_client
    if _async_client is None:
        redis_url = settings.redis_url
        if not redis_url:
            raise ValueError("REDIS_URL environment variable must be set")
        _async_client = AsyncRedis.from_url(redis_url, decode_responses=True)
    return _async_client


async def close_async_redis_client() -> None:
    global _async_client
    if _async_client is None:
        return
    client, _async_client = _async_client, None
    await client.aclose()
    logger.debug("Redis client closed")
