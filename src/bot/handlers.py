"""Telegram bot command handlers.

Public: /lb, /deposits <wallet>, /prices
Admin:  /start, /resetlb, /addstake <wallet> <pool> <usd>
"""

import html
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from aiogram import Router
from aiogram.filters import BaseFilter, Command, CommandObject
from aiogram.types import Message
from loguru import logger

from src.bot.formatters import format_deposit_history, format_leaderboard, format_prices
from src.db.database import async_session_factory
from src.leaderboard.competition import (
    competition_duration,
    manual_reset_leaderboard,
    start_new_competition,
)
from src.leaderboard.exceptions import CompetitionActive
from src.leaderboard.persistence import get_current_competition
from src.leaderboard.ranker import apply_deposit
from src.oracle.exceptions import OracleError

if TYPE_CHECKING:
    from src.oracle.oracle import PriceOracle

router = Router()

MAX_ADDRESS_LEN = 80
MANUAL_DIGEST = "manual_entry"


class AdminFilter(BaseFilter):
    """Only allow messages from configured admin user ids."""

    async def __call__(self, message: Message) -> bool:
        from config.settings import settings

        return message.from_user is not None and message.from_user.id in settings.admin_ids


def is_valid_wallet(wallet: str) -> bool:
    return wallet.startswith("0x") and 10 <= len(wallet) <= MAX_ADDRESS_LEN


@router.message(Command("lb"))
async def cmd_leaderboard(message: Message) -> None:
    try:
        async with async_session_factory() as session:
            text = await format_leaderboard(session)
    except Exception as e:
        logger.error(f"[BOT] /lb failed: {e}")
        await message.answer("❌ Error fetching leaderboard")
        return
    await message.answer(text, parse_mode="HTML", disable_web_page_preview=True)


@router.message(Command("deposits"))
async def cmd_deposits(message: Message, command: CommandObject) -> None:
    wallet = (command.args or "").strip()
    if not wallet:
        await message.answer(
            "📋 <b>Usage:</b> /deposits &lt;wallet_address&gt;", parse_mode="HTML"
        )
        return
    if not is_valid_wallet(wallet):
        await message.answer("❌ Invalid wallet address format")
        return

    try:
        async with async_session_factory() as session:
            text = await format_deposit_history(session, wallet)
    except Exception as e:
        logger.error(f"[BOT] /deposits failed: {e}")
        await message.answer("❌ Error fetching deposit history")
        return
    await message.answer(text, parse_mode="HTML", disable_web_page_preview=True)


@router.message(Command("prices"))
async def cmd_prices(message: Message, oracle: "PriceOracle | None" = None) -> None:
    """Current USD price of every token in the tracked pools."""
    if oracle is None:
        await message.answer("❌ Price oracle not available")
        return

    prices = []
    for token in oracle.registry.tokens:
        try:
            prices.append((token.symbol, await oracle.price_for_symbol(token.symbol)))
        except OracleError as e:
            logger.warning(f"[BOT] /prices {token.symbol}: {e}")
            prices.append((token.symbol, None))
    await message.answer(format_prices(prices), parse_mode="HTML")


@router.message(Command("start"), AdminFilter())
async def cmd_start(message: Message) -> None:
    from config.settings import settings

    duration = competition_duration(
        days=settings.competition_duration_days,
        test_mode=settings.test_mode,
        test_minutes=settings.test_competition_minutes,
    )
    try:
        async with async_session_factory() as session:
            competition = await start_new_competition(session, duration=duration)
            await session.commit()
    except CompetitionActive as e:
        await message.answer(f"❌ {e}")
        return
    except Exception as e:
        logger.error(f"[BOT] /start failed: {e}")
        await message.answer("❌ Error starting competition")
        return

    await message.answer(
        "🏁 <b>Competition Started!</b>\n\n"
        f"ID: <code>{competition.competition_id}</code>\n"
        f"Start: {competition.start_time:%Y-%m-%d %H:%M} UTC\n"
        f"End: {competition.end_time:%Y-%m-%d %H:%M} UTC\n\n"
        "Good luck! 🚀",
        parse_mode="HTML",
    )


@router.message(Command("resetlb"), AdminFilter())
async def cmd_reset(message: Message) -> None:
    try:
        async with async_session_factory() as session:
            competition_id = await manual_reset_leaderboard(session)
    except Exception as e:
        logger.error(f"[BOT] /resetlb failed: {e}")
        await message.answer("❌ Error resetting leaderboard")
        return

    if competition_id is None:
        await message.answer("❌ No active competition to reset")
    else:
        await message.answer(f"✅ Leaderboard reset for competition {competition_id}")


@router.message(Command("addstake"), AdminFilter())
async def cmd_add_stake(message: Message, command: CommandObject) -> None:
    """Manual leaderboard credit, e.g. for a deposit the poller missed."""
    parts = (command.args or "").split()
    if len(parts) != 3:
        await message.answer(
            "Usage: /addstake &lt;wallet&gt; &lt;pool&gt; &lt;usd_value&gt;", parse_mode="HTML"
        )
        return

    wallet, pool, usd_str = parts
    try:
        usd_value = Decimal(usd_str)
    except InvalidOperation:
        await message.answer("❌ Invalid USD value")
        return
    if not usd_value.is_finite() or usd_value <= 0:
        await message.answer("❌ Invalid USD value")
        return
    if not is_valid_wallet(wallet):
        await message.answer("❌ Invalid wallet address format")
        return

    try:
        async with async_session_factory() as session:
            competition = await get_current_competition(session)
            if competition is None:
                await message.answer("❌ No active competition")
                return
            rank = await apply_deposit(
                session,
                wallet=wallet,
                competition_id=competition.competition_id,
                usd_value=usd_value,
                pool_name=pool,
                tx_digest=MANUAL_DIGEST,
            )
            await session.commit()
    except Exception as e:
        logger.error(f"[BOT] /addstake failed: {e}")
        await message.answer("❌ Error adding stake")
        return

    logger.info(f"[BOT] Manual stake {wallet[:10]} {pool} ${usd_value} → rank #{rank}")
    await message.answer(
        "✅ Manually added stake:\n"
        f"Wallet: <code>{html.escape(wallet)}</code>\n"
        f"Pool: {html.escape(pool)}\n"
        f"USD: ${usd_value:,.2f}\n"
        f"Rank: #{rank}",
        parse_mode="HTML",
    )


@router.message(Command("start", "resetlb", "addstake"))
async def cmd_admin_denied(message: Message) -> None:
    """Reached only when AdminFilter rejected one of the admin commands."""
    await message.answer("❌ Admin only command")
