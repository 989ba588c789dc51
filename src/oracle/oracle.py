"""USD valuation of LP deposits.

valuate(pool_type, lp_amount):
  1. resolve the tracked pool (UnknownPool otherwise)
  2. reserves via cache → chain (SourceUnavailable, no stale fallback)
  3. both constituent token prices concurrently
  4. pool USD / LP supply → per-LP price → deposit USD

Raw amounts are converted to decimal units before any multiplication.
"""

import asyncio
from decimal import Decimal
from typing import TYPE_CHECKING

from loguru import logger

from src.oracle.cache import PriceCache, cached_fetch
from src.oracle.exceptions import SourceUnavailable
from src.oracle.pools import LP_DECIMALS, PoolConfig, PoolRegistry, PriceRule, TokenConfig
from src.parsers.sui.exceptions import SuiError
from src.parsers.sui.models import PoolReserves

if TYPE_CHECKING:
    from src.parsers.coingecko.client import CoinGeckoClient
    from src.parsers.sui.client import SuiClient

STABLE_PRICE = Decimal("1")


def to_units(raw: int | Decimal, decimals: int) -> Decimal:
    """Base units → token units."""
    return Decimal(raw) / (Decimal(10) ** decimals)


def lp_unit_price(
    pool: PoolConfig,
    reserves: PoolReserves,
    price0: Decimal,
    price1: Decimal,
) -> Decimal:
    """USD price of one whole LP token."""
    pool_usd = (
        to_units(reserves.reserve0, pool.token0.decimals) * price0
        + to_units(reserves.reserve1, pool.token1.decimals) * price1
    )
    supply = to_units(reserves.total_supply, LP_DECIMALS)
    if supply <= 0:
        raise SourceUnavailable(f"{pool.name}: total supply is zero")
    return pool_usd / supply


class PriceOracle:
    """Values LP deposits using pool reserves and constituent token prices."""

    def __init__(
        self,
        *,
        sui: "SuiClient",
        coingecko: "CoinGeckoClient",
        cache: PriceCache,
        registry: PoolRegistry,
        reserve_ttl_sec: int = 10,
        price_ttl_sec: int = 60,
        price_timeout_sec: float = 5.0,
    ) -> None:
        self._sui = sui
        self._coingecko = coingecko
        self._cache = cache
        self._registry = registry
        self._reserve_ttl = reserve_ttl_sec
        self._price_ttl = price_ttl_sec
        self._price_timeout = price_timeout_sec

    @property
    def registry(self) -> PoolRegistry:
        return self._registry

    async def valuate(self, pool_type: str, lp_amount: int) -> Decimal:
        pool = self._registry.get(pool_type)
        reserves = await self.get_reserves(pool)

        price0, price1 = await asyncio.gather(
            self.get_token_price(pool.token0),
            self.get_token_price(pool.token1),
        )

        lp_price = lp_unit_price(pool, reserves, price0, price1)
        usd = to_units(lp_amount, LP_DECIMALS) * lp_price

        logger.info(f"[ORACLE] {pool.name} = ${usd:,.2f} (LP ${lp_price:.6f})")
        return usd

    async def get_reserves(self, pool: PoolConfig) -> PoolReserves:
        async def _fetch() -> PoolReserves:
            try:
                return await self._sui.get_pool_reserves(pool.id)
            except SuiError as e:
                raise SourceUnavailable(f"Reserves for {pool.name}: {e}") from e

        return await cached_fetch(
            self._cache,
            f"reserves:{pool.id}",
            self._reserve_ttl,
            _fetch,
            encode=lambda r: r.model_dump_json(),
            decode=PoolReserves.model_validate_json,
        )

    async def get_token_price(self, token: TokenConfig) -> Decimal:
        if token.rule is PriceRule.STABLE:
            return STABLE_PRICE

        if token.rule is PriceRule.MARKET:
            return await cached_fetch(
                self._cache,
                f"price:{token.symbol}",
                self._price_ttl,
                lambda: self._fetch_market_price(token),
                encode=str,
                decode=Decimal,
                fallback=Decimal(str(token.fallback_usd)),
            )

        return await cached_fetch(
            self._cache,
            f"price:{token.symbol}",
            self._price_ttl,
            lambda: self._derive_pool_price(token),
            encode=str,
            decode=Decimal,
        )

    async def price_for_type(self, coin_type: str) -> Decimal:
        """USD price by coin type; UnknownToken for types outside every rule."""
        return await self.get_token_price(self._registry.token_for(coin_type))

    async def price_for_symbol(self, symbol: str) -> Decimal:
        return await self.get_token_price(self._registry.token_by_symbol(symbol))

    async def _fetch_market_price(self, token: TokenConfig) -> Decimal:
        try:
            price = await asyncio.wait_for(
                self._coingecko.get_usd_price(token.market_id),
                timeout=self._price_timeout,
            )
        except TimeoutError as e:
            raise SourceUnavailable(f"{token.symbol} price timed out") from e
        if price is None:
            raise SourceUnavailable(f"No {token.symbol} price from market API")
        return price

    async def _derive_pool_price(self, token: TokenConfig) -> Decimal:
        # Registry validation guarantees the reference pool pairs token with a stablecoin
        ref = self._registry.by_key(token.reference_pool)
        reserves = await self.get_reserves(ref)

        if ref.token0 == token:
            token_reserve, stable_reserve = reserves.reserve0, reserves.reserve1
            stable = ref.token1
        else:
            token_reserve, stable_reserve = reserves.reserve1, reserves.reserve0
            stable = ref.token0

        token_units = to_units(token_reserve, token.decimals)
        if token_units <= 0:
            raise SourceUnavailable(f"{ref.name}: empty {token.symbol} reserve")
        price = to_units(stable_reserve, stable.decimals) / token_units
        logger.debug(f"[ORACLE] {token.symbol} = ${price:.8f} via {ref.name}")
        return price
