"""Sui JSON-RPC client: farm events and pair object reserves.

Only two methods are needed:
- suix_queryEvents: newest Staked events for the farm package
- sui_getObject: reserve0 / reserve1 / total_supply of a pair
"""

import asyncio
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from src.parsers.sui.exceptions import SuiRpcError, SuiUnavailableError
from src.parsers.sui.models import PoolReserves, StakedEvent
from src.utils.rate_limiter import RateLimiter

MAX_RETRIES = 2
RETRY_DELAYS = [0.5, 2.0]


class SuiClient:
    """Async HTTP client for a Sui fullnode."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout: float = 10.0,
        max_rps: float = 0.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._request_id = 0
        self._rate_limiter = RateLimiter(max_rps)

    async def close(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, params: list[Any]) -> Any:
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }

        last_error = ""
        for attempt in range(MAX_RETRIES + 1):
            await self._rate_limiter.acquire()
            try:
                resp = await self._client.post(self._rpc_url, json=payload)
            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_error = f"{type(e).__name__}: {e}"
                if attempt < MAX_RETRIES:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    logger.debug(f"[SUI] {method} {type(e).__name__}, retry in {delay}s")
                    await asyncio.sleep(delay)
                    continue
                break

            if resp.status_code == 429 or resp.status_code >= 500:
                last_error = f"HTTP {resp.status_code}"
                if attempt < MAX_RETRIES:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    logger.debug(f"[SUI] {method} {last_error}, retry in {delay}s")
                    await asyncio.sleep(delay)
                    continue
                break
            if resp.status_code != 200:
                raise SuiUnavailableError(f"{method}: HTTP {resp.status_code}")

            try:
                data = resp.json()
            except ValueError as e:
                raise SuiUnavailableError(f"{method}: invalid JSON response: {e}") from e
            if data.get("error"):
                raise SuiRpcError(f"{method}: {data['error']}")
            return data.get("result")

        raise SuiUnavailableError(
            f"{method} failed after {MAX_RETRIES + 1} attempts: {last_error}"
        )

    async def query_events(
        self, event_type: str, *, limit: int = 50, descending: bool = True
    ) -> list[StakedEvent]:
        """Fetch the most recent events of a Move event type.

        Records that do not parse as Staked events are skipped.
        """
        result = await self._call(
            "suix_queryEvents",
            [{"MoveEventType": event_type}, None, limit, descending],
        )
        events: list[StakedEvent] = []
        for raw in (result or {}).get("data", []):
            try:
                events.append(StakedEvent.model_validate(raw))
            except ValidationError as e:
                digest = (raw.get("id") or {}).get("txDigest", "?")
                logger.debug(f"[SUI] Unparseable event {digest}: {e.error_count()} errors")
        return events

    async def get_pool_reserves(self, object_id: str) -> PoolReserves:
        """Read reserve fields of a pair object."""
        result = await self._call(
            "sui_getObject", [object_id, {"showContent": True}]
        )
        content = ((result or {}).get("data") or {}).get("content") or {}
        if content.get("dataType") != "moveObject":
            raise SuiRpcError(f"Object {object_id} has no Move content")

        fields = content.get("fields") or {}
        try:
            return PoolReserves(
                reserve0=fields["reserve0"],
                reserve1=fields["reserve1"],
                total_supply=fields["total_supply"],
            )
        except (KeyError, ValidationError) as e:
            raise SuiRpcError(f"Object {object_id} missing reserve fields: {e}") from e
