from redis.asyncio import Redis

from config.settings import settings

_redis_client: Redis | None = None


async def get_redis() -> Redis:
    """Shared Redis client for the reserve/price cache."""
    global _redis_client
    if _redis_client is None:
        _redis_client = Redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=2.0,
        )
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
