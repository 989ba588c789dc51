"""Telegram bot lifecycle (aiogram 3.x polling mode).

Runs as an asyncio task next to the stake poller. Skipped entirely when
no bot token is configured; alerts are then only logged.
"""

from aiogram import Bot, Dispatcher
from loguru import logger

_bot_instance: Bot | None = None
_dp_instance: Dispatcher | None = None


def get_bot() -> Bot:
    """Get or create the aiogram Bot singleton."""
    global _bot_instance
    if _bot_instance is None:
        from config.settings import settings

        if not settings.telegram_bot_token:
            raise RuntimeError("TELEGRAM_BOT_TOKEN not configured")
        _bot_instance = Bot(token=settings.telegram_bot_token)
    return _bot_instance


def get_dispatcher() -> Dispatcher:
    """Get or create the Dispatcher with command handlers registered."""
    global _dp_instance
    if _dp_instance is None:
        from src.bot.handlers import router

        _dp_instance = Dispatcher()
        _dp_instance.include_router(router)
    return _dp_instance


async def run_bot() -> None:
    """Poll Telegram for commands until cancelled."""
    try:
        bot = get_bot()
        dp = get_dispatcher()
        logger.info("[BOT] Starting Telegram bot (polling mode)")
        await dp.start_polling(bot, close_bot_session=False, handle_signals=False)
    except RuntimeError as e:
        logger.warning(f"[BOT] Cannot start: {e}")
    except Exception as e:
        logger.error(f"[BOT] Fatal error: {e}")


async def stop_bot() -> None:
    global _bot_instance
    if _bot_instance:
        await _bot_instance.session.close()
        _bot_instance = None
