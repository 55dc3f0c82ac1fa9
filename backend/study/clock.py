"""Timer scheduling for timed study sessions.

The session engine never sleeps or reads the wall clock itself. It asks a
scheduler to call it back after a delay and keeps the returned handle so the
callback can be cancelled when the visible card or the phase changes.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Callable
from typing import Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def schedule(self, after_seconds: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioScheduler:
    """Schedules callbacks on an asyncio event loop via ``call_later``.

    When no loop is given, the running loop at scheduling time is used, so
    this must be called from inside a coroutine (e.g. a FastAPI handler).
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def schedule(self, after_seconds: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(after_seconds, callback)


class ManualHandle:
    """Handle returned by ManualScheduler."""

    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """A simulated clock that only moves when ``advance`` is called.

    Callbacks fire in time order (ties in scheduling order), and callbacks
    scheduled while advancing fire in the same call if they fall due before
    the target time.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: list[tuple[float, int, ManualHandle]] = []
        self._counter = itertools.count()

    def schedule(self, after_seconds: float, callback: Callable[[], None]) -> ManualHandle:
        handle = ManualHandle(self.now + after_seconds, callback)
        heapq.heappush(self._queue, (handle.when, next(self._counter), handle))
        return handle

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due callbacks. Returns how many fired."""
        target = self.now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.now = when
            handle.fired = True
            handle.callback()
            fired += 1
        self.now = target
        return fired

    @property
    def pending(self) -> int:
        """Number of scheduled callbacks that are neither cancelled nor fired."""
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)
