"""Competition lifecycle: start, end detection, winner payout export, reset.

Background loops:
- competition_watch_loop: ends the active competition once now >= end_time
- daily_leaderboard_loop: posts the standings once a day (UTC hour)
"""

import asyncio
import csv
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.leaderboard.exceptions import CompetitionActive
from src.leaderboard.persistence import (
    clear_leaderboard,
    create_competition,
    end_competition,
    get_current_competition,
)
from src.leaderboard.ranker import get_top
from src.models.competition import Competition, LeaderboardEntry

if TYPE_CHECKING:
    from src.bot.notifier import DepositNotifier

# Prize per final rank, in VICTORY
PRIZES: dict[int, int] = {
    1: 200000,
    2: 75000,
    3: 50000,
    4: 20000,
    5: 10000,
}

CSV_HEADER = ["Rank", "Wallet", "Total_USD", "Prize_Victory"]


@dataclass
class Winner:
    rank: int
    wallet: str
    total_usd: float
    prize: int


def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def competition_duration(
    *, days: int, test_mode: bool = False, test_minutes: int = 10
) -> timedelta:
    if test_mode:
        return timedelta(minutes=test_minutes)
    return timedelta(days=days)


def is_competition_over(competition: Competition, now: datetime) -> bool:
    return now >= competition.end_time


def build_winners(entries: list[LeaderboardEntry]) -> list[Winner]:
    """Top entries (already sorted by total desc) → prize rows."""
    return [
        Winner(
            rank=idx,
            wallet=entry.wallet,
            total_usd=float(entry.total_usd),
            prize=PRIZES.get(idx, 0),
        )
        for idx, entry in enumerate(entries[: len(PRIZES)], start=1)
    ]


def export_winners_csv(competition_id: str, winners: list[Winner], export_dir: str) -> Path:
    path = Path(export_dir) / f"winners_{competition_id}.csv"
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh)
        writer.writerow(CSV_HEADER)
        for w in winners:
            writer.writerow([w.rank, w.wallet, f"{w.total_usd:.2f}", w.prize])
    logger.info(f"[COMP] Winners CSV exported: {path}")
    return path


async def start_new_competition(
    session: AsyncSession, *, duration: timedelta, now: datetime | None = None
) -> Competition:
    """Open a competition starting now. Raises CompetitionActive if one is running."""
    existing = await get_current_competition(session)
    if existing is not None:
        raise CompetitionActive(
            f"Competition {existing.competition_id} already active until {existing.end_time:%Y-%m-%d %H:%M}"
        )
    competition = await create_competition(session, now or utcnow(), duration)
    logger.info(
        f"[COMP] Started {competition.competition_id} "
        f"({competition.start_time:%Y-%m-%d %H:%M} → {competition.end_time:%Y-%m-%d %H:%M})"
    )
    return competition


async def finalize_competition(
    session: AsyncSession,
    competition: Competition,
    *,
    notifier: "DepositNotifier | None",
    export_dir: str,
) -> list[Winner]:
    """End a competition: record winners, clear standings, export + announce.

    Commits the session. Deposit history is kept.
    """
    competition_id = competition.competition_id
    top = await get_top(session, competition_id, limit=len(PRIZES))
    winners = build_winners(top)

    await end_competition(session, competition_id, [asdict(w) for w in winners])
    await clear_leaderboard(session, competition_id)
    await session.commit()
    logger.info(f"[COMP] {competition_id} ended with {len(winners)} winners")

    csv_path = export_winners_csv(competition_id, winners, export_dir)
    if notifier is not None:
        await notifier.send_winner_announcement(winners)
        await notifier.send_document(
            csv_path, caption=f"Winners CSV for competition {competition_id}"
        )
    return winners


async def manual_reset_leaderboard(session: AsyncSession) -> str | None:
    """Clear standings and end the active competition without winners.

    Returns the reset competition id, or None if nothing was active.
    """
    competition = await get_current_competition(session)
    if competition is None:
        return None
    removed = await clear_leaderboard(session, competition.competition_id)
    await end_competition(session, competition.competition_id, [])
    await session.commit()
    logger.warning(
        f"[COMP] Manual reset of {competition.competition_id} ({removed} entries removed)"
    )
    return competition.competition_id


async def check_competition_end(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    notifier: "DepositNotifier | None",
    export_dir: str,
    now: datetime | None = None,
) -> list[Winner] | None:
    async with session_factory() as session:
        competition = await get_current_competition(session)
        if competition is None or not is_competition_over(competition, now or utcnow()):
            return None
        logger.info(f"[COMP] {competition.competition_id} reached end time, finalizing")
        return await finalize_competition(
            session, competition, notifier=notifier, export_dir=export_dir
        )


def seconds_until_daily(now: datetime, hour: int) -> float:
    """Seconds from ``now`` until the next ``hour``:00 (same clock as ``now``)."""
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


async def _sleep_or_stop(stop: asyncio.Event, seconds: float) -> bool:
    """Sleep up to ``seconds``. Returns True if stop was requested."""
    try:
        await asyncio.wait_for(stop.wait(), timeout=seconds)
    except TimeoutError:
        return False
    return True


async def competition_watch_loop(
    session_factory: async_sessionmaker[AsyncSession],
    stop: asyncio.Event,
    *,
    notifier: "DepositNotifier | None",
    export_dir: str,
    interval_sec: float = 3600,
) -> None:
    while not await _sleep_or_stop(stop, interval_sec):
        try:
            await check_competition_end(
                session_factory, notifier=notifier, export_dir=export_dir
            )
        except Exception as e:
            logger.error(f"[COMP] End check failed: {e}")


async def daily_leaderboard_loop(
    session_factory: async_sessionmaker[AsyncSession],
    stop: asyncio.Event,
    *,
    notifier: "DepositNotifier",
    next_delay: Callable[[], float],
) -> None:
    """Post the standings whenever ``next_delay()`` seconds elapse."""
    while not await _sleep_or_stop(stop, next_delay()):
        try:
            async with session_factory() as session:
                competition = await get_current_competition(session)
                if competition is None:
                    continue
                top = await get_top(session, competition.competition_id, limit=10)
            await notifier.send_leaderboard(competition, top)
        except Exception as e:
            logger.error(f"[COMP] Daily leaderboard failed: {e}")
