"""Tests for StakePoller: startup suppression, dedup, pool filter, ordering.

Covers:
- initialize() marks only tracked-pool digests and emits nothing
- events at/before process start are never emitted
- zero-padded pool types without 0x still match the tracked pools
- emission in ascending timestamp order, one handler call per digest
- one failing handler call does not block the rest of the batch
- a failed fetch leaves the seen set untouched
- overlapping cycles are skipped
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from src.ingest.dedup import SeenSet
from src.ingest.poller import StakeEvent, StakePoller
from src.parsers.sui.exceptions import SuiUnavailableError
from src.parsers.sui.models import StakedEvent

START = 1_700_000_000_000


def _pad(hex_word: str) -> str:
    return hex_word.rjust(64, "0")


# Chain form: no 0x, every address padded to 32 bytes
SUI_LP = (
    f"{_pad('fa')}::pair::LPCoin<{_pad('2')}::sui::SUI,{_pad('beef')}::victory::VICTORY>"
)
USDC_LP = (
    f"{_pad('fa')}::pair::LPCoin<{_pad('beef')}::victory::VICTORY,{_pad('cafe')}::usdc::USDC>"
)
OTHER_LP = f"{_pad('fa')}::pair::LPCoin<{_pad('2')}::sui::SUI,{_pad('dead')}::meme::MEME>"


def _event(
    digest: str,
    ts: int,
    *,
    pool_type: str = SUI_LP,
    staker: str = "0xstaker0001",
    amount: int = 10**9,
) -> StakedEvent:
    return StakedEvent.model_validate(
        {
            "id": {"txDigest": digest, "eventSeq": "0"},
            "timestampMs": str(ts),
            "type": "0xfa::farm::Staked",
            "parsedJson": {
                "staker": staker,
                "pool_type": {"name": pool_type},
                "amount": str(amount),
                "timestamp": str(ts // 1000),
            },
        }
    )


def _make_poller(registry, events=None, on_stake=None, **kwargs) -> StakePoller:
    sui = SimpleNamespace(query_events=AsyncMock(return_value=events or []))
    return StakePoller(
        sui=sui,
        registry=registry,
        on_stake=on_stake or AsyncMock(),
        event_type="0xfa::farm::Staked",
        start_time_ms=START,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_initialize_marks_tracked_only(registry):
    handler = AsyncMock()
    poller = _make_poller(
        registry,
        events=[_event("a", START - 10), _event("b", START - 20, pool_type=OTHER_LP)],
        on_stake=handler,
    )

    marked = await poller.initialize()

    assert marked == 1
    assert "a" in poller.seen
    assert "b" not in poller.seen
    handler.assert_not_awaited()


@pytest.mark.asyncio
async def test_initialize_survives_fetch_failure(registry):
    poller = _make_poller(registry)
    poller._sui.query_events.side_effect = SuiUnavailableError("down")
    assert await poller.initialize() == 0
    assert len(poller.seen) == 0


@pytest.mark.asyncio
async def test_startup_suppression(registry):
    """A new digest emitted before process start is marked but not emitted."""
    handler = AsyncMock()
    poller = _make_poller(
        registry,
        events=[_event("late", START + 5), _event("early", START), _event("older", START - 1)],
        on_stake=handler,
    )

    stats = await poller.poll_once()

    assert stats.new == 3
    assert stats.pre_existing == 2
    assert stats.processed == 1
    handler.assert_awaited_once()
    assert handler.await_args.args[0].tx_digest == "late"
    assert {"late", "early", "older"} <= set(poller.seen.snapshot())


@pytest.mark.asyncio
async def test_zero_padded_pool_type_resolves(registry):
    handler = AsyncMock()
    poller = _make_poller(
        registry,
        events=[_event("d1", START + 1, pool_type=USDC_LP, amount=2_500_000_000)],
        on_stake=handler,
    )

    await poller.poll_once()

    stake: StakeEvent = handler.await_args.args[0]
    assert stake.pool_name == "Victory/USDC"
    assert stake.lp_amount == 2_500_000_000
    assert stake.timestamp == START + 1
    assert stake.pool_type == USDC_LP


@pytest.mark.asyncio
async def test_untracked_pool_filtered_but_seen(registry):
    handler = AsyncMock()
    poller = _make_poller(
        registry, events=[_event("x", START + 1, pool_type=OTHER_LP)], on_stake=handler
    )

    stats = await poller.poll_once()

    assert stats.untracked == 1
    handler.assert_not_awaited()
    assert "x" in poller.seen


@pytest.mark.asyncio
async def test_emits_in_timestamp_order(registry):
    order: list[str] = []

    async def handler(stake: StakeEvent) -> None:
        order.append(stake.tx_digest)

    # RPC returns newest first
    events = [_event("c", START + 30), _event("a", START + 10), _event("b", START + 20)]
    poller = _make_poller(registry, events=events, on_stake=handler)

    await poller.poll_once()

    assert order == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_replayed_events_emitted_once(registry):
    handler = AsyncMock()
    events = [_event("b", START + 2), _event("a", START + 1)]
    poller = _make_poller(registry, events=events, on_stake=handler)

    await poller.poll_once()
    second = await poller.poll_once()

    assert handler.await_count == 2
    assert second.already_seen == 2
    assert second.new == 0


@pytest.mark.asyncio
async def test_handler_failure_isolated(registry):
    calls: list[str] = []

    async def handler(stake: StakeEvent) -> None:
        calls.append(stake.tx_digest)
        if stake.tx_digest == "a":
            raise RuntimeError("boom")

    events = [_event("b", START + 2), _event("a", START + 1)]
    poller = _make_poller(registry, events=events, on_stake=handler)

    stats = await poller.poll_once()

    assert calls == ["a", "b"]
    assert stats.errors == 1
    assert stats.processed == 1
    # failed event stays seen: at-most-once
    assert "a" in poller.seen
    assert poller.stats["errors"] == 1


@pytest.mark.asyncio
async def test_fetch_failure_leaves_state(registry):
    poller = _make_poller(registry)
    poller.seen.add("existing")
    poller._sui.query_events.side_effect = SuiUnavailableError("HTTP 503")

    assert await poller.poll_once() is None
    assert poller.seen.snapshot() == ["existing"]
    assert poller.stats["fetch_errors"] == 1


@pytest.mark.asyncio
async def test_overlapping_cycle_skipped(registry):
    gate = asyncio.Event()
    entered = asyncio.Event()

    async def slow_handler(stake: StakeEvent) -> None:
        entered.set()
        await gate.wait()

    poller = _make_poller(registry, events=[_event("a", START + 1)], on_stake=slow_handler)

    first = asyncio.create_task(poller.poll_once())
    await entered.wait()
    assert await poller.poll_once() is None

    gate.set()
    stats = await first
    assert stats.processed == 1
    assert poller.stats["skipped_cycles"] == 1
    assert poller._sui.query_events.await_count == 1


@pytest.mark.asyncio
async def test_seen_set_pruned_after_cycle(registry):
    events = [_event(f"d{i}", START + i) for i in range(6, 0, -1)]
    poller = _make_poller(registry, events=events, seen=SeenSet(cap=4, keep=2))

    await poller.poll_once()

    assert poller.seen.snapshot() == ["d5", "d6"]


@pytest.mark.asyncio
async def test_run_stops(registry):
    poller = _make_poller(registry, interval_sec=0.01)
    task = asyncio.create_task(poller.run())
    await asyncio.sleep(0.05)
    poller.stop()
    await asyncio.wait_for(task, timeout=1)
    assert poller.stats["cycles"] >= 1
