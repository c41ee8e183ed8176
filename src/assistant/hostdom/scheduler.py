"""Timer deferrals.

Every suspension point of the assistant is a ``call_later``: there are
no blocking waits.  :class:`AsyncioScheduler` runs callbacks on an event
loop; :class:`ManualScheduler` runs them on a virtual clock that tests
advance explicitly.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_ms: int, callback: Callback) -> TimerHandle: ...


class AsyncioScheduler:
    """Schedule callbacks on an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay_ms: int, callback: Callback) -> asyncio.TimerHandle:
        return self.loop.call_later(max(delay_ms, 0) / 1000, callback)


class _ManualHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual-clock scheduler: nothing runs until :meth:`advance` is called."""

    def __init__(self) -> None:
        self.now_ms = 0
        self._queue: list[tuple[int, int, _ManualHandle, Callback]] = []
        self._seq = itertools.count()

    def call_later(self, delay_ms: int, callback: Callback) -> _ManualHandle:
        handle = _ManualHandle()
        due = self.now_ms + max(delay_ms, 0)
        heapq.heappush(self._queue, (due, next(self._seq), handle, callback))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    def advance(self, ms: int) -> int:
        """Move the clock forward by *ms*, running every callback that falls due.

        Callbacks scheduled while advancing run too if they fall inside the
        window.  Returns the number of callbacks run.
        """
        target = self.now_ms + ms
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            self.now_ms = due
            if handle.cancelled:
                continue
            callback()
            ran += 1
        self.now_ms = target
        return ran

    def run_all(self, limit: int = 1000) -> int:
        """Run callbacks until the queue is empty (or *limit* is reached)."""
        ran = 0
        while self._queue and ran < limit:
            due, _, handle, callback = heapq.heappop(self._queue)
            self.now_ms = max(self.now_ms, due)
            if handle.cancelled:
                continue
            callback()
            ran += 1
        return ran
