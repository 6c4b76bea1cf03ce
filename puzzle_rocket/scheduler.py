"""Deferred-continuation schedulers.

Every delay in a puzzle attempt (opponent reply, reset, auto-solve step,
handoff) is a callback registered with ``call_later``; nothing blocks.

    AsyncioScheduler  -- the running asyncio loop (MCP server)
    ManualScheduler   -- a virtual clock advanced explicitly (terminal play
                         loop, tests)
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class Scheduler(Protocol):
    """Anything that can run a callback after a delay in seconds."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> object: ...


class AsyncioScheduler:
    """Scheduler backed by ``loop.call_later``.

    Args:
        loop: Event loop to use. Defaults to the loop running at the time
            of each ``call_later`` call.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay), callback)


class ManualScheduler:
    """Virtual-clock scheduler.

    Callbacks run only from ``advance`` or ``run_until_idle``. Callbacks due
    at the same time run in the order they were scheduled, and a callback
    scheduled while advancing runs in the same ``advance`` call if it falls
    due inside the window.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: list[tuple[float, int, Callable[[], None]]] = []
        self._counter = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        due = self.now + max(0.0, delay)
        heapq.heappush(self._queue, (due, next(self._counter), callback))

    @property
    def pending(self) -> int:
        """Number of callbacks not yet run."""
        return len(self._queue)

    def next_due(self) -> float | None:
        """Virtual time of the earliest pending callback, or None."""
        return self._queue[0][0] if self._queue else None

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running every callback that falls due.

        Args:
            seconds: Virtual seconds to advance. Must be >= 0.

        Returns:
            Number of callbacks run.
        """
        if seconds < 0:
            raise ValueError(f"Cannot advance by negative time: {seconds}")
        deadline = self.now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= deadline:
            due, _, callback = heapq.heappop(self._queue)
            self.now = due
            callback()
            ran += 1
        self.now = deadline
        return ran

    def run_until_idle(
        self,
        sleep: Callable[[float], None] | None = None,
        max_callbacks: int = 10_000,
    ) -> int:
        """Run pending callbacks in due order until the queue is empty.

        Args:
            sleep: Called with each gap in virtual time before the next
                callback runs (pass ``time.sleep`` to pace in real time).
            max_callbacks: Guard against callbacks that reschedule forever.

        Returns:
            Number of callbacks run.

        Raises:
            RuntimeError: If max_callbacks is exceeded.
        """
        ran = 0
        while self._queue:
            if ran >= max_callbacks:
                raise RuntimeError(f"Scheduler still busy after {max_callbacks} callbacks")
            due, _, callback = heapq.heappop(self._queue)
            gap = due - self.now
            if sleep is not None and gap > 0:
                sleep(gap)
            self.now = max(self.now, due)
            callback()
            ran += 1
        logger.debug("Scheduler idle at t=%.3f after %d callbacks", self.now, ran)
        return ran
