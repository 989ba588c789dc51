"""Format deposits, standings and winners into Telegram HTML messages."""

import html
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

from src.leaderboard.persistence import get_current_competition, get_wallet_deposits
from src.leaderboard.ranker import compute_rank, get_entry, get_top
from src.models.competition import Competition, LeaderboardEntry

if TYPE_CHECKING:
    from src.bot.notifier import DepositAlert
    from src.leaderboard.competition import Winner

EXPLORER_TX_URL = "https://suiscan.xyz/mainnet/tx/"
MEDALS = {1: "🥇", 2: "🥈", 3: "🥉"}


def short_wallet(wallet: str) -> str:
    return f"{wallet[:6]}…{wallet[-4:]}" if len(wallet) > 12 else wallet


def format_usd(value: Decimal | float) -> str:
    return f"${float(value):,.2f}"


def format_lp_amount(lp_amount: int) -> str:
    return f"{Decimal(lp_amount) / Decimal(10**9):.4f}"


def _rank_label(rank: int) -> str:
    return MEDALS.get(rank, f"#{rank}")


def format_deposit_alert(alert: "DepositAlert") -> str:
    ts = datetime.fromtimestamp(alert.timestamp / 1000, tz=UTC)
    lines = [
        "🔥 <b>NEW DEPOSIT</b>",
        "",
        f"Pool: <b>{html.escape(alert.pool_name)}</b>",
        f"Wallet: <code>{html.escape(short_wallet(alert.wallet))}</code>",
        f"LP: {format_lp_amount(alert.lp_amount)}",
        f"Value: <b>{format_usd(alert.usd_value)}</b>",
    ]
    if alert.rank is not None:
        lines.append(f"Rank: <b>{_rank_label(alert.rank)}</b>")
    lines.append(f"Time: {ts:%Y-%m-%d %H:%M:%S} UTC")
    lines.append(f'<a href="{EXPLORER_TX_URL}{html.escape(alert.tx_digest)}">View transaction</a>')
    return "\n".join(lines)


def format_standings(
    competition: Competition, entries: list[LeaderboardEntry], now: datetime | None = None
) -> str:
    now = now or datetime.now(UTC).replace(tzinfo=None)
    remaining = competition.end_time - now
    if remaining.total_seconds() > 0:
        hours = int(remaining.total_seconds() // 3600)
        ends = f"Ends in {hours // 24}d {hours % 24}h"
    else:
        ends = "Ending now"

    lines = ["🏆 <b>LEADERBOARD</b>", f"<i>{ends}</i>", ""]
    if not entries:
        lines.append("No deposits yet. Be the first!")
        return "\n".join(lines)

    # Equal totals share a rank number
    rank = 0
    previous: Decimal | None = None
    for idx, entry in enumerate(entries, start=1):
        if entry.total_usd != previous:
            rank = idx
            previous = entry.total_usd
        lines.append(
            f"{_rank_label(rank)} <code>{html.escape(short_wallet(entry.wallet))}</code> "
            f"- <b>{format_usd(entry.total_usd)}</b>"
        )
    return "\n".join(lines)


async def format_leaderboard(session: AsyncSession, limit: int = 10) -> str:
    competition = await get_current_competition(session)
    if competition is None:
        return "<b>No active competition</b>"
    entries = await get_top(session, competition.competition_id, limit=limit)
    return format_standings(competition, entries)


async def format_deposit_history(session: AsyncSession, wallet: str, limit: int = 10) -> str:
    deposits = await get_wallet_deposits(session, wallet, limit=limit)
    safe_wallet = html.escape(short_wallet(wallet))
    if not deposits:
        return f"No deposits found for <code>{safe_wallet}</code>"

    lines = [f"📋 <b>Deposits for</b> <code>{safe_wallet}</code>", ""]
    for dep in deposits:
        ts = datetime.fromtimestamp(dep.timestamp / 1000, tz=UTC)
        lines.append(
            f"• {ts:%m-%d %H:%M} {html.escape(dep.pool_name)}: <b>{format_usd(dep.usd_value)}</b>"
        )

    competition = await get_current_competition(session)
    if competition is not None:
        entry = await get_entry(session, wallet, competition.competition_id)
        if entry is not None:
            rank = await compute_rank(session, competition.competition_id, entry.total_usd)
            lines.append("")
            lines.append(
                f"Competition total: <b>{format_usd(entry.total_usd)}</b> "
                f"(rank {_rank_label(rank)}, {len(entry.deposits)} deposits)"
            )
    return "\n".join(lines)


def format_winner_announcement(winners: list["Winner"]) -> str:
    lines = ["🎉 <b>COMPETITION ENDED</b>", ""]
    if not winners:
        lines.append("No qualifying deposits this round.")
        return "\n".join(lines)
    for w in winners:
        lines.append(
            f"{_rank_label(w.rank)} <code>{html.escape(short_wallet(w.wallet))}</code> "
            f"- {format_usd(w.total_usd)} → <b>{w.prize:,} VICTORY</b>"
        )
    lines.append("")
    lines.append("Winners CSV exported for reward distribution.")
    return "\n".join(lines)


def format_prices(prices: list[tuple[str, Decimal | None]]) -> str:
    lines = ["💱 <b>TOKEN PRICES</b>", ""]
    for symbol, price in prices:
        shown = "unavailable" if price is None else f"${price:,.6f}".rstrip("0").rstrip(".")
        lines.append(f"{html.escape(symbol)}: <b>{shown}</b>")
    return "\n".join(lines)
