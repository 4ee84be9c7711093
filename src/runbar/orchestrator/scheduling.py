"""Timer-based scheduling used by the orchestrator.

All orchestrator work happens in callbacks scheduled on one event loop, so the
run state never needs a lock. Tests substitute a virtual clock.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol


class TimerHandle(Protocol):
    """Cancellable handle of one scheduled callback."""

    def cancel(self) -> None:
        """Prevent the callback from running if it has not run yet."""


class Scheduler(Protocol):
    """Clock plus delayed callback execution."""

    def now(self) -> float:
        """Monotonic time in seconds."""

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback once after delay_seconds."""


class LoopScheduler:
    """Scheduler backed by an asyncio event loop.

    Without an explicit loop, the running loop is looked up on first use.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        return self.loop.call_later(max(0.0, delay_seconds), callback)
