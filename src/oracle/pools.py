"""Tracked pools and token pricing rules, resolved once at startup.

Every coin type the oracle may meet is mapped to a TokenConfig with an
explicit PriceRule. The registry validates that pool-derived prices only
reference a pool pairing the token with the stablecoin, which keeps the
price dependency graph one level deep.
"""

import re
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from src.oracle.exceptions import ConfigError, UnknownPool, UnknownToken

if TYPE_CHECKING:
    from config.settings import Settings

LP_DECIMALS = 9

_HEX_PREFIX = re.compile(r"0x(?=[0-9a-fA-F])")
_LEADING_ZEROS = re.compile(r"\b0+([0-9a-fA-F]+)\b")


def normalize_type(type_tag: str) -> str:
    """Canonical form of a Move type tag for comparison.

    ``0x0000…02::sui::SUI`` and ``0x2::sui::SUI`` both become ``2::sui::SUI``.
    """
    tag = "".join(type_tag.split())
    tag = _HEX_PREFIX.sub("", tag)
    return _LEADING_ZEROS.sub(r"\1", tag)


class PriceRule(str, Enum):
    STABLE = "stable"  # fixed $1, never cached or fetched
    MARKET = "market"  # external price API, constant fallback
    POOL_DERIVED = "pool_derived"  # reserve ratio against the stablecoin


@dataclass(frozen=True)
class TokenConfig:
    key: str
    symbol: str
    coin_type: str
    decimals: int
    rule: PriceRule
    market_id: str = ""
    fallback_usd: float = 0.0
    reference_pool: str = ""  # pool key, POOL_DERIVED only


@dataclass(frozen=True)
class PoolConfig:
    key: str
    id: str  # pair object id
    name: str
    lp_type: str
    token0: TokenConfig
    token1: TokenConfig

    @property
    def tokens(self) -> tuple[TokenConfig, TokenConfig]:
        return (self.token0, self.token1)


class PoolRegistry:
    """Lookup of tracked pools by (normalized) LP type and of tokens by coin type."""

    def __init__(self, pools: list[PoolConfig]) -> None:
        self._by_key: dict[str, PoolConfig] = {}
        self._by_lp_type: dict[str, PoolConfig] = {}
        self._tokens: dict[str, TokenConfig] = {}

        for pool in pools:
            if pool.key in self._by_key:
                raise ConfigError(f"Duplicate pool key {pool.key}")
            lp_norm = normalize_type(pool.lp_type)
            if lp_norm in self._by_lp_type:
                raise ConfigError(f"Pools {pool.key} and {self._by_lp_type[lp_norm].key} share an LP type")
            self._by_key[pool.key] = pool
            self._by_lp_type[lp_norm] = pool
            for token in pool.tokens:
                self._tokens[normalize_type(token.coin_type)] = token

        self._validate()

    def _validate(self) -> None:
        for token in self._tokens.values():
            if token.rule is PriceRule.MARKET and not token.market_id:
                raise ConfigError(f"{token.symbol}: market price rule needs a market id")
            if token.rule is not PriceRule.POOL_DERIVED:
                continue

            ref = self._by_key.get(token.reference_pool)
            if ref is None:
                raise ConfigError(
                    f"{token.symbol}: reference pool {token.reference_pool!r} is not tracked"
                )
            if token not in ref.tokens:
                raise ConfigError(f"{token.symbol}: reference pool {ref.key} does not hold it")
            other = ref.token1 if ref.token0 == token else ref.token0
            # Anything but a stable pair would need another derived price -> cycle risk
            if other.rule is not PriceRule.STABLE:
                raise ConfigError(
                    f"{token.symbol}: reference pool {ref.key} must pair it with a stablecoin"
                )

    def __iter__(self) -> Iterator[PoolConfig]:
        return iter(self._by_key.values())

    def __len__(self) -> int:
        return len(self._by_key)

    def resolve(self, pool_type: str) -> PoolConfig | None:
        return self._by_lp_type.get(normalize_type(pool_type))

    def is_tracked(self, pool_type: str) -> bool:
        return self.resolve(pool_type) is not None

    def get(self, pool_type: str) -> PoolConfig:
        pool = self.resolve(pool_type)
        if pool is None:
            raise UnknownPool(f"Unknown pool type: {pool_type}")
        return pool

    def by_key(self, key: str) -> PoolConfig:
        try:
            return self._by_key[key]
        except KeyError:
            raise UnknownPool(f"Unknown pool key: {key}") from None

    def token_for(self, coin_type: str) -> TokenConfig:
        token = self._tokens.get(normalize_type(coin_type))
        if token is None:
            raise UnknownToken(f"Unknown token type: {coin_type}")
        return token

    def token_by_symbol(self, symbol: str) -> TokenConfig:
        wanted = symbol.upper()
        for token in self._tokens.values():
            if token.symbol.upper() == wanted:
                return token
        raise UnknownToken(f"Unknown token symbol: {symbol}")

    @property
    def tokens(self) -> list[TokenConfig]:
        return list(self._tokens.values())


def lp_type_for(package_id: str, token0: TokenConfig, token1: TokenConfig) -> str:
    return f"{package_id}::pair::LPCoin<{token0.coin_type},{token1.coin_type}>"


def build_registry(settings: "Settings") -> PoolRegistry:
    """Tracked pools from configuration. BTC/VICTORY is added only when configured."""
    sui = TokenConfig(
        key="SUI",
        symbol="SUI",
        coin_type=settings.sui_type,
        decimals=9,
        rule=PriceRule.MARKET,
        market_id="sui",
        fallback_usd=settings.sui_fallback_usd,
    )
    usdc = TokenConfig(
        key="USDC",
        symbol="USDC",
        coin_type=settings.usdc_type,
        decimals=6,
        rule=PriceRule.STABLE,
    )
    victory = TokenConfig(
        key="VICTORY",
        symbol="VICTORY",
        coin_type=settings.victory_type,
        decimals=9,
        rule=PriceRule.POOL_DERIVED,
        reference_pool="VICTORY_USDC",
    )

    missing = [
        name
        for name, value in (
            ("PACKAGE_ID", settings.package_id),
            ("USDC_TYPE", settings.usdc_type),
            ("VICTORY_TYPE", settings.victory_type),
            ("VICTORY_SUI_PAIR", settings.victory_sui_pair),
            ("VICTORY_USDC_PAIR", settings.victory_usdc_pair),
        )
        if not value
    ]
    if missing:
        raise ConfigError(f"Missing pool configuration: {', '.join(missing)}")

    pools = [
        PoolConfig(
            key="VICTORY_SUI",
            id=settings.victory_sui_pair,
            name="Victory/SUI",
            lp_type=lp_type_for(settings.package_id, sui, victory),
            token0=sui,
            token1=victory,
        ),
        PoolConfig(
            key="VICTORY_USDC",
            id=settings.victory_usdc_pair,
            name="Victory/USDC",
            lp_type=lp_type_for(settings.package_id, victory, usdc),
            token0=victory,
            token1=usdc,
        ),
    ]

    if settings.btc_victory_pair and settings.wbtc_type:
        wbtc = TokenConfig(
            key="WBTC",
            symbol="BTC",
            coin_type=settings.wbtc_type,
            decimals=8,
            rule=PriceRule.MARKET,
            market_id="bitcoin",
            fallback_usd=settings.btc_fallback_usd,
        )
        pools.append(
            PoolConfig(
                key="BTC_VICTORY",
                id=settings.btc_victory_pair,
                name="BTC/Victory",
                lp_type=lp_type_for(settings.package_id, wbtc, victory),
                token0=wbtc,
                token1=victory,
            )
        )

    return PoolRegistry(pools)
