"""Deposit history and competition records."""

from datetime import datetime, timedelta
from decimal import Decimal

from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.competition import (
    STATUS_ACTIVE,
    STATUS_ENDED,
    Competition,
    Deposit,
    LeaderboardEntry,
)


async def add_deposit(
    session: AsyncSession,
    *,
    wallet: str,
    pool_name: str,
    pool_type: str,
    lp_amount: int,
    usd_value: Decimal,
    timestamp: int,
    tx_digest: str,
    competition_id: str,
) -> bool:
    """Append a deposit. Returns False if the digest was already recorded."""
    stmt = (
        pg_insert(Deposit)
        .values(
            wallet=wallet.lower(),
            pool_name=pool_name,
            pool_type=pool_type,
            lp_amount=Decimal(lp_amount),
            usd_value=usd_value,
            timestamp=timestamp,
            tx_digest=tx_digest,
            competition_id=competition_id,
        )
        .on_conflict_do_nothing(index_elements=["tx_digest"])
        .returning(Deposit.id)
    )
    result = await session.execute(stmt)
    inserted = result.scalar_one_or_none() is not None
    if not inserted:
        logger.warning(f"[DEPOSIT] {tx_digest} already recorded, skipping")
    return inserted


async def get_wallet_deposits(
    session: AsyncSession, wallet: str, limit: int = 10
) -> list[Deposit]:
    """Most recent deposits of a wallet across all competitions."""
    stmt = (
        select(Deposit)
        .where(Deposit.wallet == wallet.lower())
        .order_by(Deposit.timestamp.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_current_competition(session: AsyncSession) -> Competition | None:
    stmt = select(Competition).where(Competition.status == STATUS_ACTIVE).limit(1)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_competition(
    session: AsyncSession, start_time: datetime, duration: timedelta
) -> Competition:
    competition = Competition(
        competition_id=f"comp_{int(start_time.timestamp() * 1000)}",
        status=STATUS_ACTIVE,
        start_time=start_time,
        end_time=start_time + duration,
    )
    session.add(competition)
    await session.flush()
    return competition


async def end_competition(
    session: AsyncSession, competition_id: str, winners: list[dict]
) -> None:
    await session.execute(
        update(Competition)
        .where(Competition.competition_id == competition_id)
        .values(status=STATUS_ENDED, winners=winners)
    )


async def clear_leaderboard(session: AsyncSession, competition_id: str) -> int:
    """Drop ranking entries of a competition. Deposit history is kept."""
    result = await session.execute(
        delete(LeaderboardEntry).where(LeaderboardEntry.competition_id == competition_id)
    )
    return result.rowcount or 0
