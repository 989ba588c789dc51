"""Per-competition running totals and ranks.

Rank = 1 + number of other entries in the competition with a strictly
greater total, so equal totals share the same rank number.
"""

from datetime import UTC, datetime
from decimal import Decimal

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.models.competition import LeaderboardDeposit, LeaderboardEntry


async def apply_deposit(
    session: AsyncSession,
    *,
    wallet: str,
    competition_id: str,
    usd_value: Decimal,
    pool_name: str,
    tx_digest: str,
) -> int:
    """Add a valued deposit to the wallet's total and return its new rank.

    The increment is a single INSERT ... ON CONFLICT DO UPDATE, so concurrent
    writers on the same (wallet, competition) never lose an update.
    """
    wallet = wallet.lower()
    now = datetime.now(UTC).replace(tzinfo=None)
    stmt = pg_insert(LeaderboardEntry).values(
        wallet=wallet,
        competition_id=competition_id,
        total_usd=usd_value,
        last_updated=now,
    )
    stmt = stmt.on_conflict_do_update(
        constraint="uq_leaderboard_wallet_comp",
        set_={
            "total_usd": LeaderboardEntry.total_usd + stmt.excluded.total_usd,
            "last_updated": stmt.excluded.last_updated,
        },
    ).returning(LeaderboardEntry.id, LeaderboardEntry.total_usd)

    row = (await session.execute(stmt)).one()
    entry_id, total_usd = row.id, row.total_usd

    session.add(
        LeaderboardDeposit(
            entry_id=entry_id,
            pool_name=pool_name,
            usd_value=usd_value,
            tx_digest=tx_digest,
        )
    )
    await session.flush()

    rank = await compute_rank(session, competition_id, total_usd)
    logger.info(
        f"[LB] {wallet[:10]} +${usd_value:,.2f} → ${total_usd:,.2f} (rank #{rank})"
    )
    return rank


async def compute_rank(
    session: AsyncSession, competition_id: str, total_usd: Decimal
) -> int:
    stmt = select(func.count(LeaderboardEntry.id)).where(
        LeaderboardEntry.competition_id == competition_id,
        LeaderboardEntry.total_usd > total_usd,
    )
    ahead = (await session.execute(stmt)).scalar_one()
    return ahead + 1


async def get_top(
    session: AsyncSession, competition_id: str, limit: int = 5
) -> list[LeaderboardEntry]:
    stmt = (
        select(LeaderboardEntry)
        .where(LeaderboardEntry.competition_id == competition_id)
        .order_by(LeaderboardEntry.total_usd.desc(), LeaderboardEntry.last_updated)
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_entry(
    session: AsyncSession, wallet: str, competition_id: str
) -> LeaderboardEntry | None:
    stmt = (
        select(LeaderboardEntry)
        .options(selectinload(LeaderboardEntry.deposits))
        .where(
            LeaderboardEntry.wallet == wallet.lower(),
            LeaderboardEntry.competition_id == competition_id,
        )
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
