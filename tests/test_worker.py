"""Tests for worker scheduling helpers."""

from types import SimpleNamespace

from src.worker import daily_delay_for


def test_daily_delay_test_mode():
    cfg = SimpleNamespace(test_mode=True, test_daily_update_minutes=2, daily_update_hour=0)
    assert daily_delay_for(cfg)() == 120


def test_daily_delay_normal_is_within_a_day():
    cfg = SimpleNamespace(test_mode=False, test_daily_update_minutes=2, daily_update_hour=0)
    delay = daily_delay_for(cfg)()
    assert 0 < delay <= 86400
