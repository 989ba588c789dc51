"""Tests for the Redis-backed cached_fetch helper."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from src.oracle.cache import PriceCache, cached_fetch
from src.oracle.exceptions import SourceUnavailable


async def _fetch_price(cache: PriceCache, fetch: AsyncMock, **kwargs) -> Decimal:
    return await cached_fetch(
        cache, "price:SUI", 60, fetch, encode=str, decode=Decimal, **kwargs
    )


@pytest.mark.asyncio
async def test_miss_fetches_and_stores(fake_redis):
    cache = PriceCache(fake_redis)
    fetch = AsyncMock(return_value=Decimal("3.21"))

    assert await _fetch_price(cache, fetch) == Decimal("3.21")
    assert fake_redis.store["price:SUI"] == "3.21"
    assert fake_redis.ttls["price:SUI"] == 60


@pytest.mark.asyncio
async def test_hit_skips_source(fake_redis):
    fake_redis.store["price:SUI"] = "2.50"
    fetch = AsyncMock()

    assert await _fetch_price(PriceCache(fake_redis), fetch) == Decimal("2.50")
    fetch.assert_not_awaited()


@pytest.mark.asyncio
async def test_fallback_is_not_cached(fake_redis):
    cache = PriceCache(fake_redis)
    fetch = AsyncMock(side_effect=SourceUnavailable("timeout"))

    value = await _fetch_price(cache, fetch, fallback=Decimal("3.5"))

    assert value == Decimal("3.5")
    assert "price:SUI" not in fake_redis.store

    # next call goes back to the source
    fetch.side_effect = None
    fetch.return_value = Decimal("3.9")
    assert await _fetch_price(cache, fetch, fallback=Decimal("3.5")) == Decimal("3.9")


@pytest.mark.asyncio
async def test_error_without_fallback_propagates(fake_redis):
    fetch = AsyncMock(side_effect=SourceUnavailable("down"))
    with pytest.raises(SourceUnavailable):
        await _fetch_price(PriceCache(fake_redis), fetch)


@pytest.mark.asyncio
async def test_redis_failure_is_a_miss(fake_redis):
    fake_redis.fail = True
    fetch = AsyncMock(return_value=Decimal("1.1"))

    assert await _fetch_price(PriceCache(fake_redis), fetch) == Decimal("1.1")
    fetch.assert_awaited_once()


@pytest.mark.asyncio
async def test_undecodable_value_refetched(fake_redis):
    fake_redis.store["price:SUI"] = "not-a-number"
    fetch = AsyncMock(return_value=Decimal("4"))

    assert await _fetch_price(PriceCache(fake_redis), fetch) == Decimal("4")
    assert fake_redis.store["price:SUI"] == "4"
