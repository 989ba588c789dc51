"""Outbound Telegram messages: deposit alerts, standings, winners.

Delivery failures are logged and swallowed; nothing here may abort the
deposit pipeline.
"""

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from src.bot.formatters import (
    format_deposit_alert,
    format_standings,
    format_winner_announcement,
)

if TYPE_CHECKING:
    from aiogram import Bot

    from src.leaderboard.competition import Winner
    from src.models.competition import Competition, LeaderboardEntry


@dataclass
class DepositAlert:
    """One processed deposit, as announced to the chat."""

    wallet: str
    pool_name: str
    lp_amount: int
    usd_value: Decimal
    timestamp: int  # ms
    tx_digest: str
    rank: int | None = None


class DepositNotifier:
    """Sends HTML messages to the competition chat through an aiogram Bot."""

    def __init__(self, bot: "Bot | None", chat_id: str | int) -> None:
        self._bot = bot
        self._chat_id = chat_id
        self._total_sent = 0
        self._total_failed = 0

    async def _send_text(self, text: str) -> bool:
        if self._bot is None or not self._chat_id:
            logger.debug("[NOTIFY] Telegram not configured, message dropped")
            return False
        try:
            await self._bot.send_message(
                chat_id=self._chat_id,
                text=text,
                parse_mode="HTML",
                disable_web_page_preview=True,
            )
        except Exception as e:
            self._total_failed += 1
            logger.warning(f"[NOTIFY] Telegram send failed: {e}")
            return False
        self._total_sent += 1
        return True

    async def send_deposit_alert(self, alert: DepositAlert) -> bool:
        return await self._send_text(format_deposit_alert(alert))

    async def send_leaderboard(
        self, competition: "Competition", entries: list["LeaderboardEntry"]
    ) -> bool:
        return await self._send_text(format_standings(competition, entries))

    async def send_winner_announcement(self, winners: list["Winner"]) -> bool:
        return await self._send_text(format_winner_announcement(winners))

    async def send_document(self, path: Path, caption: str = "") -> bool:
        if self._bot is None or not self._chat_id:
            return False
        from aiogram.types import FSInputFile

        try:
            await self._bot.send_document(
                chat_id=self._chat_id,
                document=FSInputFile(path),
                caption=caption,
            )
        except Exception as e:
            self._total_failed += 1
            logger.warning(f"[NOTIFY] Document upload failed ({path.name}): {e}")
            return False
        self._total_sent += 1
        return True

    @property
    def stats(self) -> dict[str, int]:
        return {"sent": self._total_sent, "failed": self._total_failed}
