import os
import sys

from loguru import logger


def setup_logger(
    *, json_logs: bool = False, level: str = "INFO", log_dir: str = "logs"
) -> None:
    """Configure loguru sinks.

    Console level follows LOG_LEVEL env (default: INFO). The rotating file
    sink keeps DEBUG so dropped deposits can be reconstructed afterwards.
    """
    console_level = os.getenv("LOG_LEVEL", level).upper()
    logger.remove()

    if json_logs:
        logger.add(sys.stdout, serialize=True, level=console_level)
    else:
        logger.add(
            sys.stdout,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan> - "
                "<level>{message}</level>"
            ),
            level=console_level,
            colorize=True,
        )

    logger.add(
        f"{log_dir}/stake_bot_{{time:YYYY-MM-DD}}.log",
        rotation="20 MB",
        retention="14 days",
        compression="gz",
        level="DEBUG",
        serialize=json_logs,
    )
