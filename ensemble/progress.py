"""
Cancellation and periodic background work.

Provides a cancellation token shared between a long-lived task and its
owner, and a periodic task whose sleep function is injectable so tests
can drive it without real waiting.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Token for checking and requesting cancellation.

    Async-safe within one event loop.
    """

    def __init__(self) -> None:
        """Initialize cancellation token."""
        self._cancelled = False
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._cancelled = True
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._cancelled

    def check(self) -> None:
        """
        Check if cancelled and raise if so.

        Raises:
            CancelledException: If cancellation was requested
        """
        if self._cancelled:
            raise CancelledException("Operation was cancelled")

    async def wait_for_cancellation(self, timeout: float | None = None) -> bool:
        """
        Wait for cancellation.

        Args:
            timeout: Maximum time to wait in seconds

        Returns:
            True if cancelled, False if timeout
        """
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False


class CancelledException(Exception):
    """Raised when an operation is cancelled."""

    pass


class PeriodicTask:
    """
    Call a function every ``interval_seconds`` until cancelled.

    The default wait returns early on cancellation. A custom ``sleep``
    replaces the wait entirely; the token is checked after every sleep.
    """

    def __init__(
        self,
        callback: Callable[[], Any],
        interval_seconds: float,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        name: str = "periodic-task",
    ):
        self.callback = callback
        self.interval_seconds = interval_seconds
        self.name = name
        self._sleep = sleep
        self._ticks = 0

    @property
    def ticks(self) -> int:
        """Number of completed callback invocations."""
        return self._ticks

    async def run(self, token: CancellationToken) -> int:
        """
        Loop until the token is cancelled.

        Returns:
            Number of ticks executed
        """
        while not token.is_cancelled:
            if self._sleep is None:
                if await token.wait_for_cancellation(self.interval_seconds):
                    break
            else:
                await self._sleep(self.interval_seconds)
                if token.is_cancelled:
                    break

            try:
                result = self.callback()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning(f"{self.name} tick failed: {e}")
            self._ticks += 1

        logger.debug(f"{self.name} stopped after {self._ticks} ticks")
        return self._ticks

    def start(self, token: CancellationToken) -> asyncio.Task[int]:
        """Schedule ``run`` on the running event loop."""
        return asyncio.create_task(self.run(token), name=self.name)


__all__ = [
    "CancellationToken",
    "CancelledException",
    "PeriodicTask",
]
