"""Pydantic models for Sui JSON-RPC responses (events + pair objects)."""

from typing import Any

from pydantic import BaseModel, field_validator


class SuiEventId(BaseModel):
    txDigest: str
    eventSeq: str = "0"


class StakedPayload(BaseModel):
    """parsedJson of a farm::Staked event."""

    staker: str
    pool_type: str
    amount: int
    timestamp: int = 0

    @field_validator("pool_type", mode="before")
    @classmethod
    def _unwrap_type_name(cls, v: Any) -> Any:
        # TypeName is serialized either as a bare string or {"name": "..."}
        if isinstance(v, dict):
            return v.get("name", "")
        return v


class StakedEvent(BaseModel):
    """One farm::Staked event as returned by suix_queryEvents."""

    id: SuiEventId
    timestampMs: int = 0
    type: str = ""
    parsedJson: StakedPayload

    @property
    def tx_digest(self) -> str:
        return self.id.txDigest

    @property
    def pool_type(self) -> str:
        return self.parsedJson.pool_type

    @property
    def staker(self) -> str:
        return self.parsedJson.staker

    @property
    def amount(self) -> int:
        return self.parsedJson.amount

    @property
    def timestamp_ms(self) -> int:
        return self.timestampMs

    @property
    def event_timestamp(self) -> int:
        """Timestamp field of the payload, unit as set by the farm module."""
        return self.parsedJson.timestamp


class PoolReserves(BaseModel):
    """Reserve snapshot of a pair object. Eventually consistent."""

    reserve0: int
    reserve1: int
    total_supply: int
