"""Staked event poller: turns the replaying event feed into exactly-new deposits.

Each cycle fetches the newest N farm::Staked events, walks them oldest-first
and forwards an event downstream only if:
  1. its digest was never seen (marked seen immediately, before processing)
  2. it was emitted after this process started
  3. its pool type is one of the tracked pools (normalized comparison)

Events are handed to ``on_stake`` one at a time in timestamp order. One
failing event never blocks the rest of the batch; a failed fetch aborts only
the current cycle and leaves the seen set untouched.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from src.ingest.dedup import EventClass, SeenSet, classify

if TYPE_CHECKING:
    from src.oracle.pools import PoolRegistry
    from src.parsers.sui.client import SuiClient
    from src.parsers.sui.models import StakedEvent


@dataclass
class StakeEvent:
    """New deposit into a tracked pool, handed to the valuation pipeline."""

    staker: str
    pool_type: str
    pool_name: str
    lp_amount: int
    timestamp: int  # ms
    tx_digest: str


@dataclass
class PollStats:
    """Outcome of one poll cycle."""

    fetched: int = 0
    new: int = 0
    processed: int = 0
    already_seen: int = 0
    pre_existing: int = 0
    untracked: int = 0
    errors: int = 0


StakeHandler = Callable[[StakeEvent], Awaitable[object]]


class StakePoller:
    """Single poller instance owning the seen set and the start timestamp."""

    def __init__(
        self,
        *,
        sui: "SuiClient",
        registry: "PoolRegistry",
        on_stake: StakeHandler,
        event_type: str,
        fetch_limit: int = 50,
        interval_sec: float = 5.0,
        seen: SeenSet | None = None,
        start_time_ms: int | None = None,
    ) -> None:
        self._sui = sui
        self._registry = registry
        self._on_stake = on_stake
        self._event_type = event_type
        self._fetch_limit = fetch_limit
        self._interval = interval_sec
        self._seen = seen if seen is not None else SeenSet()
        self._start_time_ms = (
            start_time_ms if start_time_ms is not None else int(time.time() * 1000)
        )
        self._polling = False
        self._stop = asyncio.Event()

        # Cumulative stats
        self._cycles = 0
        self._skipped_cycles = 0
        self._fetch_errors = 0
        self._total_new = 0
        self._total_processed = 0
        self._total_duplicates = 0
        self._total_pre_existing = 0
        self._total_untracked = 0
        self._total_errors = 0

    @property
    def seen(self) -> SeenSet:
        return self._seen

    @property
    def start_time_ms(self) -> int:
        return self._start_time_ms

    async def initialize(self) -> int:
        """Mark the current tail of tracked-pool events seen without emitting them.

        Establishes a high-water mark so a restart does not re-announce
        deposits handled by a previous run. Returns how many were marked.
        """
        logger.info(
            f"[POLL] Loading last {self._fetch_limit} Staked events "
            f"(start time {self._start_time_ms})"
        )
        try:
            events = await self._sui.query_events(
                self._event_type, limit=self._fetch_limit, descending=True
            )
        except Exception as e:
            logger.error(f"[POLL] Initial fetch failed, starting with empty seen set: {e}")
            return 0

        marked = 0
        for event in events:
            if self._registry.is_tracked(event.pool_type) and self._seen.add(event.tx_digest):
                marked += 1

        logger.info(f"[POLL] Marked {marked}/{len(events)} existing events as seen")
        return marked

    async def poll_once(self) -> PollStats | None:
        """Run one cycle. Returns None if another cycle is still in flight."""
        if self._polling:
            self._skipped_cycles += 1
            logger.debug("[POLL] Previous cycle still running, skipping")
            return None

        self._polling = True
        try:
            return await self._poll()
        finally:
            self._polling = False

    async def _poll(self) -> PollStats | None:
        self._cycles += 1
        try:
            events = await self._sui.query_events(
                self._event_type, limit=self._fetch_limit, descending=True
            )
        except Exception as e:
            self._fetch_errors += 1
            logger.warning(f"[POLL] Fetch failed, retrying next tick: {e}")
            return None

        stats = PollStats(fetched=len(events))
        if not events:
            return stats

        fresh: list["StakedEvent"] = []
        for event in reversed(events):  # newest-first → oldest-first
            verdict = classify(
                self._seen, event.tx_digest, event.timestamp_ms, self._start_time_ms
            )
            if verdict is EventClass.DUPLICATE:
                stats.already_seen += 1
                continue
            stats.new += 1
            if verdict is EventClass.PRE_EXISTING:
                stats.pre_existing += 1
                continue
            fresh.append(event)

        fresh.sort(key=lambda e: e.timestamp_ms)
        for event in fresh:
            pool = self._registry.resolve(event.pool_type)
            if pool is None:
                stats.untracked += 1
                logger.debug(f"[POLL] Untracked pool {event.pool_type} ({event.tx_digest[:12]})")
                continue

            stake = StakeEvent(
                staker=event.staker,
                pool_type=event.pool_type,
                pool_name=pool.name,
                lp_amount=event.amount,
                timestamp=event.timestamp_ms,
                tx_digest=event.tx_digest,
            )
            logger.info(
                f"[POLL] New deposit {stake.tx_digest[:12]} "
                f"{_short(stake.staker)} {pool.name} lp={stake.lp_amount}"
            )
            try:
                await self._on_stake(stake)
                stats.processed += 1
            except Exception as e:
                stats.errors += 1
                logger.exception(f"[POLL] Handler failed for {stake.tx_digest}: {e}")

        dropped = self._seen.prune()
        if dropped:
            logger.info(f"[POLL] Pruned seen set: dropped {dropped}, kept {len(self._seen)}")

        self._record(stats)
        if stats.new or stats.already_seen:
            logger.debug(
                f"[POLL] New: {stats.new} | Processed: {stats.processed} | "
                f"Already seen: {stats.already_seen} | Old: {stats.pre_existing} | "
                f"Tracked: {len(self._seen)}"
            )
        return stats

    def _record(self, stats: PollStats) -> None:
        self._total_new += stats.new
        self._total_processed += stats.processed
        self._total_duplicates += stats.already_seen
        self._total_pre_existing += stats.pre_existing
        self._total_untracked += stats.untracked
        self._total_errors += stats.errors

    async def run(self) -> None:
        """initialize(), then poll every interval until stop() is called."""
        await self.initialize()
        logger.info(
            f"[POLL] Active, every {self._interval}s, tracking: "
            + ", ".join(pool.name for pool in self._registry)
        )
        while not self._stop.is_set():
            await self.poll_once()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except TimeoutError:
                pass
        logger.info("[POLL] Stopped")

    def stop(self) -> None:
        self._stop.set()

    @property
    def stats(self) -> dict[str, int]:
        return {
            "cycles": self._cycles,
            "skipped_cycles": self._skipped_cycles,
            "fetch_errors": self._fetch_errors,
            "new": self._total_new,
            "processed": self._total_processed,
            "duplicates": self._total_duplicates,
            "pre_existing": self._total_pre_existing,
            "untracked": self._total_untracked,
            "errors": self._total_errors,
            "tracked": len(self._seen),
        }


def _short(address: str) -> str:
    return f"{address[:6]}...{address[-4:]}" if len(address) > 12 else address
