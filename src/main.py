"""Entry point for the stake leaderboard bot."""

import asyncio
import signal

from loguru import logger

from src.bot.bot import stop_bot
from src.db.database import dispose_engine
from src.db.redis import close_redis
from src.utils.logger import setup_logger
from src.worker import run_app


def log_worker_exit(task: asyncio.Task) -> None:
    """Log why the worker task finished before a shutdown signal."""
    if task.cancelled():
        logger.warning("Worker cancelled")
    elif task.exception() is not None:
        logger.error(f"Worker exited: {task.exception()}")
    else:
        logger.info("Worker finished")


async def main() -> None:
    setup_logger(level="INFO")
    logger.info("Starting stake leaderboard bot...")

    # Graceful shutdown on SIGINT/SIGTERM
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    app_task = asyncio.create_task(run_app(shutdown_event))

    signal_task = asyncio.create_task(shutdown_event.wait())
    done, _ = await asyncio.wait(
        [app_task, signal_task], return_when=asyncio.FIRST_COMPLETED
    )
    if app_task in done:
        signal_task.cancel()
        log_worker_exit(app_task)
    else:
        # run_app returns once it has cancelled its own tasks
        await app_task

    await stop_bot()
    await close_redis()
    await dispose_engine()
    logger.info("Shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
