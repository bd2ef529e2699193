"""Tests for the status poller."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from agentmirror.connection.poller import DEFAULT_POLL_INTERVAL, StatusPoller
from tests.utils import wait_for_condition


class TestStatusPoller:
    @pytest.mark.asyncio
    async def test_ticks_until_stopped(self) -> None:
        refresh = AsyncMock()
        poller = StatusPoller(refresh, interval=0.01)
        poller.start()
        try:
            await wait_for_condition(lambda: poller.ticks >= 3)
        finally:
            poller.stop()

        assert not poller.running
        calls = refresh.await_count
        await asyncio.sleep(0.05)
        assert refresh.await_count == calls

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_polling(self) -> None:
        """A failing refresh is counted and the next tick still runs."""
        refresh = AsyncMock(side_effect=RuntimeError("server gone"))
        poller = StatusPoller(refresh, interval=0.01)
        poller.start()
        try:
            await wait_for_condition(lambda: poller.failures >= 2)
        finally:
            poller.stop()
        assert poller.ticks == 0

    @pytest.mark.asyncio
    async def test_gate_skips_ticks(self) -> None:
        refresh = AsyncMock()
        poller = StatusPoller(refresh, interval=0.01, should_poll=lambda: False)
        poller.start()
        await asyncio.sleep(0.05)
        poller.stop()

        refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_loop(self) -> None:
        poller = StatusPoller(AsyncMock(), interval=0.01)
        poller.start()
        task = poller._task
        poller.start()
        assert poller._task is task
        poller.stop()

    def test_stop_before_start(self) -> None:
        poller = StatusPoller(AsyncMock())
        poller.stop()
        assert not poller.running
        assert poller.interval == DEFAULT_POLL_INTERVAL
