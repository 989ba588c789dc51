"""Tests for competition timing, winners, CSV export and the background loops."""

import asyncio
import csv
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.leaderboard.competition import (
    CSV_HEADER,
    PRIZES,
    build_winners,
    check_competition_end,
    competition_duration,
    daily_leaderboard_loop,
    export_winners_csv,
    is_competition_over,
    manual_reset_leaderboard,
    seconds_until_daily,
)

MODULE = "src.leaderboard.competition"
T0 = datetime(2026, 3, 1, 12, 0, 0)


def _entries(*totals: str) -> list[SimpleNamespace]:
    return [
        SimpleNamespace(wallet=f"0xwallet{i:04d}", total_usd=Decimal(t))
        for i, t in enumerate(totals, start=1)
    ]


def _factory(session):
    @asynccontextmanager
    async def factory():
        yield session

    return factory


def test_duration_normal_and_test_mode():
    assert competition_duration(days=7) == timedelta(days=7)
    assert competition_duration(days=7, test_mode=True, test_minutes=10) == timedelta(minutes=10)


def test_is_competition_over_boundary():
    comp = SimpleNamespace(end_time=T0)
    assert not is_competition_over(comp, T0 - timedelta(seconds=1))
    assert is_competition_over(comp, T0)


def test_build_winners_top_five_with_prizes():
    winners = build_winners(_entries("900", "800", "700", "600", "500", "400"))

    assert [w.rank for w in winners] == [1, 2, 3, 4, 5]
    assert [w.prize for w in winners] == [PRIZES[r] for r in range(1, 6)]
    assert winners[0].wallet == "0xwallet0001"
    assert winners[0].total_usd == 900.0


def test_build_winners_fewer_entries():
    assert len(build_winners(_entries("10", "5"))) == 2
    assert build_winners([]) == []


def test_export_winners_csv(tmp_path):
    winners = build_winners(_entries("1234.5", "99"))

    path = export_winners_csv("comp_1", winners, str(tmp_path / "exports"))

    with path.open(newline="") as fh:
        rows = list(csv.reader(fh))
    assert path.name == "winners_comp_1.csv"
    assert rows[0] == CSV_HEADER
    assert rows[1] == ["1", "0xwallet0001", "1234.50", str(PRIZES[1])]
    assert rows[2] == ["2", "0xwallet0002", "99.00", str(PRIZES[2])]


def test_seconds_until_daily():
    assert seconds_until_daily(datetime(2026, 3, 1, 23, 0, 0), 0) == 3600
    # exactly at the hour → next day
    assert seconds_until_daily(datetime(2026, 3, 1, 0, 0, 0), 0) == 86400
    assert seconds_until_daily(datetime(2026, 3, 1, 6, 30, 0), 9) == 2.5 * 3600


@pytest.mark.asyncio
async def test_check_competition_end_not_due():
    comp = SimpleNamespace(competition_id="comp_1", end_time=T0)
    with (
        patch(f"{MODULE}.get_current_competition", AsyncMock(return_value=comp)),
        patch(f"{MODULE}.finalize_competition", AsyncMock()) as finalize,
    ):
        result = await check_competition_end(
            _factory(MagicMock()), notifier=None, export_dir="x", now=T0 - timedelta(minutes=1)
        )
    assert result is None
    finalize.assert_not_awaited()


@pytest.mark.asyncio
async def test_check_competition_end_finalizes(tmp_path):
    comp = SimpleNamespace(competition_id="comp_1", end_time=T0)
    session = MagicMock(commit=AsyncMock())
    notifier = SimpleNamespace(
        send_winner_announcement=AsyncMock(), send_document=AsyncMock()
    )

    with (
        patch(f"{MODULE}.get_current_competition", AsyncMock(return_value=comp)),
        patch(f"{MODULE}.get_top", AsyncMock(return_value=_entries("50", "20"))),
        patch(f"{MODULE}.end_competition", AsyncMock()) as end,
        patch(f"{MODULE}.clear_leaderboard", AsyncMock(return_value=2)) as clear,
    ):
        winners = await check_competition_end(
            _factory(session), notifier=notifier, export_dir=str(tmp_path), now=T0
        )

    assert [w.wallet for w in winners] == ["0xwallet0001", "0xwallet0002"]
    assert end.await_args.args[2][0]["prize"] == PRIZES[1]
    clear.assert_awaited_once_with(session, "comp_1")
    session.commit.assert_awaited_once()
    notifier.send_winner_announcement.assert_awaited_once_with(winners)
    notifier.send_document.assert_awaited_once()
    assert (tmp_path / "winners_comp_1.csv").exists()


@pytest.mark.asyncio
async def test_manual_reset_without_competition():
    with patch(f"{MODULE}.get_current_competition", AsyncMock(return_value=None)):
        assert await manual_reset_leaderboard(MagicMock()) is None


@pytest.mark.asyncio
async def test_manual_reset_ends_without_winners():
    comp = SimpleNamespace(competition_id="comp_9")
    session = MagicMock(commit=AsyncMock())
    with (
        patch(f"{MODULE}.get_current_competition", AsyncMock(return_value=comp)),
        patch(f"{MODULE}.clear_leaderboard", AsyncMock(return_value=4)),
        patch(f"{MODULE}.end_competition", AsyncMock()) as end,
    ):
        assert await manual_reset_leaderboard(session) == "comp_9"
    end.assert_awaited_once_with(session, "comp_9", [])
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_daily_loop_posts_and_stops():
    comp = SimpleNamespace(competition_id="comp_1")
    top = _entries("10")
    stop = asyncio.Event()
    notifier = SimpleNamespace(send_leaderboard=AsyncMock(side_effect=lambda c, e: stop.set()))

    with (
        patch(f"{MODULE}.get_current_competition", AsyncMock(return_value=comp)),
        patch(f"{MODULE}.get_top", AsyncMock(return_value=top)),
    ):
        await asyncio.wait_for(
            daily_leaderboard_loop(
                _factory(MagicMock()), stop, notifier=notifier, next_delay=lambda: 0.01
            ),
            timeout=1,
        )

    notifier.send_leaderboard.assert_awaited_once_with(comp, top)
