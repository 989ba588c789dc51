"""Downstream of the poller: valuate → record → rank → notify.

Failures are terminal for the single event (the digest is already seen):
- OracleError: configuration mismatch or dead source, deposit dropped
- PersistenceFailure: DB write failed, deposit lost for ranking purposes
Notification failures never affect what was persisted.
"""

from decimal import Decimal
from typing import TYPE_CHECKING

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.bot.notifier import DepositAlert
from src.ingest.poller import StakeEvent
from src.leaderboard.exceptions import PersistenceFailure
from src.leaderboard.persistence import add_deposit, get_current_competition
from src.leaderboard.ranker import apply_deposit
from src.models.competition import TRACKING_ONLY
from src.oracle.exceptions import OracleError, SourceUnavailable

if TYPE_CHECKING:
    from src.bot.notifier import DepositNotifier
    from src.oracle.oracle import PriceOracle


class DepositProcessor:
    """Stake handler passed to StakePoller as ``on_stake``."""

    def __init__(
        self,
        *,
        oracle: "PriceOracle",
        session_factory: async_sessionmaker[AsyncSession],
        notifier: "DepositNotifier | None" = None,
        min_deposit_usd: float = 1.0,
    ) -> None:
        self._oracle = oracle
        self._session_factory = session_factory
        self._notifier = notifier
        self._min_usd = Decimal(str(min_deposit_usd))

        self._valued = 0
        self._below_min = 0
        self._ranked = 0
        self._history_only = 0
        self._valuation_errors = 0
        self._persistence_errors = 0
        self._duplicates = 0

    async def __call__(self, event: StakeEvent) -> DepositAlert | None:
        return await self.process(event)

    async def process(self, event: StakeEvent) -> DepositAlert | None:
        """Handle one new stake. Returns the alert sent, or None if skipped."""
        try:
            usd_value = await self._oracle.valuate(event.pool_type, event.lp_amount)
        except SourceUnavailable as e:
            self._valuation_errors += 1
            logger.warning(f"[DEPOSIT] {event.tx_digest} dropped, source unavailable: {e}")
            return None
        except OracleError as e:
            self._valuation_errors += 1
            logger.error(f"[DEPOSIT] {event.tx_digest} dropped, config mismatch: {e}")
            return None
        self._valued += 1

        if usd_value < self._min_usd:
            self._below_min += 1
            logger.info(
                f"[DEPOSIT] Skipping small deposit ${usd_value:.2f} "
                f"(< ${self._min_usd}) {event.tx_digest[:12]}"
            )
            return None

        try:
            inserted, rank = await self._persist(event, usd_value)
        except PersistenceFailure as e:
            self._persistence_errors += 1
            logger.error(f"[DEPOSIT] {event.tx_digest} lost: {e}")
            return None
        if not inserted:
            self._duplicates += 1
            logger.info(f"[DEPOSIT] {event.tx_digest[:12]} already recorded, not announced")
            return None

        alert = DepositAlert(
            wallet=event.staker,
            pool_name=event.pool_name,
            lp_amount=event.lp_amount,
            usd_value=usd_value,
            timestamp=event.timestamp,
            tx_digest=event.tx_digest,
            rank=rank,
        )
        logger.info(
            f"[DEPOSIT] {event.pool_name} ${usd_value:,.2f} "
            f"rank={'#' + str(rank) if rank else 'N/A'} {event.tx_digest[:12]}"
        )
        if self._notifier is not None:
            await self._notifier.send_deposit_alert(alert)
        return alert

    async def _persist(
        self, event: StakeEvent, usd_value: Decimal
    ) -> tuple[bool, int | None]:
        """Record the deposit and, if a competition is active, rank it.

        Returns (inserted, rank). A digest already in the deposits table
        comes back as (False, None) and touches nothing.
        """
        try:
            async with self._session_factory() as session:
                competition = await get_current_competition(session)
                competition_id = competition.competition_id if competition else TRACKING_ONLY

                inserted = await add_deposit(
                    session,
                    wallet=event.staker,
                    pool_name=event.pool_name,
                    pool_type=event.pool_type,
                    lp_amount=event.lp_amount,
                    usd_value=usd_value,
                    timestamp=event.timestamp,
                    tx_digest=event.tx_digest,
                    competition_id=competition_id,
                )

                if not inserted:
                    return False, None

                rank: int | None = None
                if competition is not None:
                    rank = await apply_deposit(
                        session,
                        wallet=event.staker,
                        competition_id=competition_id,
                        usd_value=usd_value,
                        pool_name=event.pool_name,
                        tx_digest=event.tx_digest,
                    )
                    self._ranked += 1
                else:
                    self._history_only += 1

                await session.commit()
                return True, rank
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceFailure(str(e)) from e

    @property
    def stats(self) -> dict[str, int]:
        return {
            "valued": self._valued,
            "below_min": self._below_min,
            "ranked": self._ranked,
            "history_only": self._history_only,
            "valuation_errors": self._valuation_errors,
            "persistence_errors": self._persistence_errors,
            "duplicates": self._duplicates,
        }
