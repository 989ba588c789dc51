"""Tests for entry-point shutdown handling."""

import asyncio

import pytest

from src.main import log_worker_exit


async def _fail() -> None:
    raise RuntimeError("db down")


@pytest.mark.asyncio
async def test_cancelled_worker_logged_without_raising():
    task = asyncio.create_task(asyncio.sleep(3600))
    await asyncio.sleep(0)
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)

    assert task.cancelled()
    log_worker_exit(task)


@pytest.mark.asyncio
async def test_failed_worker_logged():
    task = asyncio.create_task(_fail())
    await asyncio.gather(task, return_exceptions=True)

    log_worker_exit(task)
    assert isinstance(task.exception(), RuntimeError)
