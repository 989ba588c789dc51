"""Main worker: wires the oracle, poller, leaderboard and bot together.

Runs parallel async tasks:
1. Stake poller: farm::Staked events every poll_interval_sec
2. Telegram bot: command polling (only when a token is configured)
3. Competition watch: ends the active competition at end_time
4. Daily leaderboard: standings post at daily_update_hour UTC
5. Stats reporter: periodic logging of pipeline counters
"""

import asyncio

from loguru import logger

from config.settings import Settings, settings
from src.bot.notifier import DepositNotifier
from src.db.database import async_session_factory, init_models
from src.db.redis import get_redis
from src.ingest.dedup import SeenSet
from src.ingest.handler import DepositProcessor
from src.ingest.poller import StakePoller
from src.leaderboard.competition import (
    competition_watch_loop,
    daily_leaderboard_loop,
    seconds_until_daily,
    utcnow,
)
from src.oracle.cache import PriceCache
from src.oracle.oracle import PriceOracle
from src.oracle.pools import build_registry
from src.parsers.coingecko.client import CoinGeckoClient
from src.parsers.sui.client import SuiClient

STATS_INTERVAL_SEC = 300
TEST_MODE_CHECK_INTERVAL_SEC = 60


def daily_delay_for(cfg: Settings):
    """Seconds until the next standings post, as a zero-arg callable."""
    if cfg.test_mode:
        return lambda: cfg.test_daily_update_minutes * 60
    return lambda: seconds_until_daily(utcnow(), cfg.daily_update_hour)


async def _stats_loop(
    stop: asyncio.Event,
    poller: StakePoller,
    processor: DepositProcessor,
    notifier: DepositNotifier,
) -> None:
    while True:
        try:
            await asyncio.wait_for(stop.wait(), timeout=STATS_INTERVAL_SEC)
            return
        except TimeoutError:
            pass
        logger.info(
            f"[STATS] poller={poller.stats} | deposits={processor.stats} | "
            f"telegram={notifier.stats}"
        )


async def run_app(stop: asyncio.Event) -> None:
    """Run every background task until ``stop`` is set."""
    registry = build_registry(settings)
    logger.info(f"[WORKER] Tracking {len(registry)} pools: " + ", ".join(p.name for p in registry))

    await init_models()

    sui = SuiClient(settings.sui_rpc_url, max_rps=settings.sui_max_rps)
    coingecko = CoinGeckoClient(settings.coingecko_url, timeout=settings.price_timeout_sec)
    oracle = PriceOracle(
        sui=sui,
        coingecko=coingecko,
        cache=PriceCache(await get_redis()),
        registry=registry,
        reserve_ttl_sec=settings.reserve_cache_ttl_sec,
        price_ttl_sec=settings.price_cache_ttl_sec,
        price_timeout_sec=settings.price_timeout_sec,
    )

    bot = None
    if settings.telegram_bot_token:
        from src.bot.bot import get_bot

        bot = get_bot()
    else:
        logger.warning("[WORKER] TELEGRAM_BOT_TOKEN not set, alerts are log-only")
    notifier = DepositNotifier(bot, settings.telegram_chat_id)

    processor = DepositProcessor(
        oracle=oracle,
        session_factory=async_session_factory,
        notifier=notifier,
        min_deposit_usd=settings.min_deposit_usd,
    )
    poller = StakePoller(
        sui=sui,
        registry=registry,
        on_stake=processor,
        event_type=settings.staked_event_type,
        fetch_limit=settings.event_fetch_limit,
        interval_sec=settings.poll_interval_sec,
        seen=SeenSet(cap=settings.seen_cap, keep=settings.seen_keep),
        start_time_ms=settings.bot_start_time_ms,
    )

    check_interval = settings.competition_check_interval_sec
    if settings.test_mode:
        check_interval = min(check_interval, TEST_MODE_CHECK_INTERVAL_SEC)
        logger.warning(
            f"[WORKER] TEST MODE: {settings.test_competition_minutes}min competitions, "
            f"standings every {settings.test_daily_update_minutes}min"
        )

    tasks = [
        asyncio.create_task(poller.run(), name="poller"),
        asyncio.create_task(
            competition_watch_loop(
                async_session_factory,
                stop,
                notifier=notifier,
                export_dir=settings.export_dir,
                interval_sec=check_interval,
            ),
            name="competition_watch",
        ),
        asyncio.create_task(
            daily_leaderboard_loop(
                async_session_factory,
                stop,
                notifier=notifier,
                next_delay=daily_delay_for(settings),
            ),
            name="daily_leaderboard",
        ),
        asyncio.create_task(_stats_loop(stop, poller, processor, notifier), name="stats"),
    ]
    if bot is not None:
        from src.bot.bot import get_dispatcher, run_bot

        get_dispatcher()["oracle"] = oracle
        tasks.append(asyncio.create_task(run_bot(), name="bot"))

    try:
        await stop.wait()
    finally:
        poller.stop()
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for task, result in zip(tasks, results):
            if isinstance(result, Exception):
                logger.error(f"[WORKER] Task {task.get_name()} failed: {result}")
        await sui.close()
        await coingecko.close()
        logger.info(f"[WORKER] Final stats: poller={poller.stats} deposits={processor.stats}")
