"""CoinGecko simple-price client for tokens with an external market."""

from decimal import Decimal, InvalidOperation

import httpx
from loguru import logger


class CoinGeckoClient:
    """Spot USD price lookup by CoinGecko asset id.

    Every call is bounded by ``timeout``; any failure returns None and the
    caller applies its own fallback constant.
    """

    def __init__(
        self,
        base_url: str = "https://api.coingecko.com/api/v3/simple/price",
        *,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def get_usd_price(self, asset_id: str) -> Decimal | None:
        try:
            resp = await self._client.get(
                self._base_url, params={"ids": asset_id, "vs_currencies": "usd"}
            )
        except httpx.HTTPError as e:
            logger.debug(f"[COINGECKO] {asset_id}: {type(e).__name__}: {e}")
            return None

        if resp.status_code != 200:
            logger.debug(f"[COINGECKO] HTTP {resp.status_code} for {asset_id}")
            return None

        try:
            usd = resp.json().get(asset_id, {}).get("usd")
        except ValueError:
            logger.debug(f"[COINGECKO] Non-JSON body for {asset_id}")
            return None
        if usd is None:
            return None

        try:
            price = Decimal(str(usd))
        except InvalidOperation:
            return None
        if price <= 0:
            return None

        logger.debug(f"[COINGECKO] {asset_id} = ${price}")
        return price
