"""Shared test fixtures."""

from collections.abc import AsyncGenerator
from types import SimpleNamespace

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from config.settings import settings
from src.models.base import Base
from src.oracle.pools import PoolRegistry, build_registry


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh engine+session per test with NullPool to avoid loop mismatch.

    Persistence functions use flush() only, so the rollback at the end
    cleans up. Skips when PostgreSQL is not reachable.
    """
    engine = create_async_engine(
        settings.database_url,
        echo=False,
        poolclass=NullPool,
    )
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        await engine.dispose()
        pytest.skip(f"PostgreSQL unavailable: {type(e).__name__}")

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session
        await session.rollback()

    await engine.dispose()


@pytest.fixture
def pool_settings() -> SimpleNamespace:
    """Minimal settings for the two required pools (no BTC/VICTORY)."""
    return SimpleNamespace(
        package_id="0xfa",
        sui_type="0x2::sui::SUI",
        usdc_type="0xcafe::usdc::USDC",
        victory_type="0xbeef::victory::VICTORY",
        wbtc_type="",
        victory_sui_pair="0xpair_sui",
        victory_usdc_pair="0xpair_usdc",
        btc_victory_pair="",
        sui_fallback_usd=3.5,
        btc_fallback_usd=100000.0,
    )


@pytest.fixture
def registry(pool_settings: SimpleNamespace) -> PoolRegistry:
    return build_registry(pool_settings)


class FakeRedis:
    """In-memory stand-in for the handful of redis.asyncio calls the cache makes."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail = False

    async def get(self, key: str) -> str | None:
        if self.fail:
            raise RedisConnectionError("redis down")
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        if self.fail:
            raise RedisConnectionError("redis down")
        self.store[key] = value
        self.ttls[key] = ex


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
