"""Fixed-interval full refresh while connected."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

_log = logging.getLogger("agentmirror.connection.poller")

# Default poll interval in seconds
DEFAULT_POLL_INTERVAL = 2.0


class StatusPoller:
    """Calls ``refresh`` every ``interval`` seconds until stopped.

    A failing refresh is logged and the loop keeps going; nobody awaits a
    tick, so there is no caller to hand the error to.
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[None]],
        interval: float = DEFAULT_POLL_INTERVAL,
        should_poll: Callable[[], bool] | None = None,
    ) -> None:
        """Initialize the poller.

        Args:
            refresh: Coroutine function performing one full refresh.
            interval: Seconds between ticks.
            should_poll: Optional gate checked before each tick.
        """
        self._refresh = refresh
        self._interval = interval
        self._should_poll = should_poll
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self.ticks = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def interval(self) -> float:
        return self._interval

    async def _poll_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)

            if not self._running:
                break
            if self._should_poll is not None and not self._should_poll():
                continue

            try:
                await self._refresh()
            except Exception as e:
                self.failures += 1
                _log.warning("Polling refresh failed: %s", e)
            else:
                self.ticks += 1

    def start(self) -> None:
        """Start polling. Must be called from within a running event loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        _log.debug("Polling started (every %.1fs)", self._interval)

    def stop(self) -> None:
        """Stop polling; a tick in flight is cancelled."""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None
        _log.debug("Polling stopped")
