"""Short-TTL Redis cache in front of the chain and price sources.

Key classes:
- reserves:{pair_id}  : pool reserve snapshot, 10s (changes every block)
- price:{SYMBOL}      : USD spot price, 60s
"""

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

from loguru import logger
from redis.exceptions import RedisError

if TYPE_CHECKING:
    from redis.asyncio import Redis

T = TypeVar("T")

_MISSING = object()


class PriceCache:
    """Pass-through key/value cache. A Redis failure reads as a miss."""

    def __init__(self, redis: "Redis") -> None:
        self._redis = redis

    async def get(self, key: str) -> str | None:
        try:
            return await self._redis.get(key)
        except RedisError as e:
            logger.debug(f"[CACHE] get {key} failed: {e}")
            return None

    async def set(self, key: str, value: str, ttl_sec: int) -> None:
        try:
            await self._redis.set(key, value, ex=ttl_sec)
        except RedisError as e:
            logger.debug(f"[CACHE] set {key} failed: {e}")


async def cached_fetch(
    cache: PriceCache,
    key: str,
    ttl_sec: int,
    fetch: Callable[[], Awaitable[T]],
    *,
    encode: Callable[[T], str],
    decode: Callable[[str], T],
    fallback: object = _MISSING,
    fallback_on: tuple[type[BaseException], ...] = (Exception,),
) -> T:
    """Return the cached value for ``key`` or fetch, store and return it.

    If ``fetch`` raises one of ``fallback_on`` and a ``fallback`` is given,
    the fallback is returned without being cached so the next call retries
    the source. Without a fallback the error propagates.
    """
    cached = await cache.get(key)
    if cached is not None:
        try:
            return decode(cached)
        except (ValueError, ArithmeticError) as e:
            logger.debug(f"[CACHE] Undecodable value under {key}: {e}")

    try:
        value = await fetch()
    except fallback_on as e:
        if fallback is _MISSING:
            raise
        logger.warning(f"[CACHE] {key} source failed ({e}), using fallback {fallback}")
        return fallback  # type: ignore[return-value]

    await cache.set(key, encode(value), ttl_sec)
    return value
