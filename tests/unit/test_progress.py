"""
Tests for cancellation and periodic tasks.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ensemble.progress import CancellationToken, CancelledException, PeriodicTask


class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_initial_state(self):
        """Token starts not cancelled."""
        token = CancellationToken()

        assert not token.is_cancelled

    def test_cancel(self):
        token = CancellationToken()
        token.cancel()

        assert token.is_cancelled

    def test_check_raises_when_cancelled(self):
        token = CancellationToken()
        token.check()

        token.cancel()
        with pytest.raises(CancelledException):
            token.check()

    @pytest.mark.asyncio
    async def test_wait_times_out(self):
        token = CancellationToken()

        assert await token.wait_for_cancellation(0.01) is False

    @pytest.mark.asyncio
    async def test_wait_returns_on_cancel(self):
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.01, token.cancel)

        assert await token.wait_for_cancellation(5.0) is True


class ManualClock:
    """Sleep replacement that cancels the token after a fixed number of sleeps."""

    def __init__(self, token: CancellationToken, stop_after: int):
        self.token = token
        self.stop_after = stop_after
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if len(self.sleeps) > self.stop_after:
            self.token.cancel()
        await asyncio.sleep(0)


class TestPeriodicTask:
    """Tests for PeriodicTask driven by an injected sleep."""

    @pytest.mark.asyncio
    async def test_ticks_until_cancelled(self):
        token = CancellationToken()
        clock = ManualClock(token, stop_after=3)
        calls = []
        task = PeriodicTask(lambda: calls.append(1), 30.0, sleep=clock.sleep)

        ticks = await task.run(token)

        assert ticks == 3
        assert len(calls) == 3
        assert clock.sleeps == [30.0] * 4

    @pytest.mark.asyncio
    async def test_awaits_coroutine_callback(self):
        token = CancellationToken()
        clock = ManualClock(token, stop_after=2)
        calls = []

        async def callback():
            calls.append(1)

        await PeriodicTask(callback, 1.0, sleep=clock.sleep).run(token)

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_failing_callback_keeps_running(self):
        token = CancellationToken()
        clock = ManualClock(token, stop_after=2)

        def callback():
            raise RuntimeError("refresh failed")

        task = PeriodicTask(callback, 1.0, sleep=clock.sleep)

        assert await task.run(token) == 2
        assert task.ticks == 2

    @pytest.mark.asyncio
    async def test_already_cancelled_never_ticks(self):
        token = CancellationToken()
        token.cancel()

        assert await PeriodicTask(lambda: None, 1.0).run(token) == 0

    @pytest.mark.asyncio
    async def test_default_wait_stops_promptly(self):
        """Without an injected sleep, cancel interrupts the interval wait."""
        token = CancellationToken()
        task = PeriodicTask(lambda: None, 60.0, name="test-task")

        running = task.start(token)
        await asyncio.sleep(0.01)
        token.cancel()

        assert await asyncio.wait_for(running, 1.0) == 0
