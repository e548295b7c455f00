"""Cancellable schedulers for delayed work (demo simulation timers).

AsyncioScheduler runs callbacks on the event loop in real time.
VirtualScheduler keeps its own clock so tests can fast-forward deterministically:

    scheduler = VirtualScheduler()
    scheduler.call_later(0.5, step)
    scheduler.advance(1.0)   # runs step
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger("conductor.scheduler")


class ScheduledHandle(Protocol):
    def cancel(self) -> None: ...

    def cancelled(self) -> bool: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledHandle: ...

    def cancel_all(self) -> None: ...

    @property
    def pending(self) -> int: ...


class AsyncioHandle:
    """Wraps a loop ``TimerHandle``; leaves the scheduler's registry when it runs or is cancelled."""

    def __init__(self, owner: "AsyncioScheduler", callback: Callable[[], None]):
        self._owner = owner
        self._callback = callback
        self._timer: asyncio.TimerHandle | None = None

    def _run(self) -> None:
        self._owner._handles.discard(self)
        self._callback()

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._owner._handles.discard(self)

    def cancelled(self) -> bool:
        return self._timer is not None and self._timer.cancelled()


class AsyncioScheduler:
    """Schedules callbacks with ``loop.call_later`` and tracks every live handle."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop
        self._handles: set[AsyncioHandle] = set()

    def call_later(self, delay: float, callback: Callable[[], None]) -> AsyncioHandle:
        loop = self._loop or asyncio.get_running_loop()
        handle = AsyncioHandle(self, callback)
        handle._timer = loop.call_later(max(delay, 0.0), handle._run)
        self._handles.add(handle)
        return handle

    def cancel_all(self) -> None:
        for handle in list(self._handles):
            handle.cancel()
        self._handles.clear()

    @property
    def pending(self) -> int:
        return len(self._handles)


class VirtualHandle:
    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class VirtualScheduler:
    """Scheduler driven by an explicit virtual clock.

    Callbacks due at the same time run in the order they were scheduled.
    Callbacks may schedule further work; it runs within the same ``advance``
    call if it falls due before the target time.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: list[tuple[float, int, VirtualHandle]] = []
        self._counter = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> VirtualHandle:
        handle = VirtualHandle(self.now + max(delay, 0.0), callback)
        heapq.heappush(self._queue, (handle.when, next(self._counter), handle))
        return handle

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running every callback that falls due. Returns how many ran."""
        target = self.now + max(seconds, 0.0)
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            self.now = when
            if handle.cancelled():
                continue
            handle.callback()
            ran += 1
        self.now = target
        return ran

    def run_all(self) -> int:
        """Run everything currently scheduled (and anything it schedules)."""
        ran = 0
        while self._queue:
            ran += self.advance(self._queue[0][0] - self.now)
        return ran

    def cancel_all(self) -> None:
        for _, _, handle in self._queue:
            handle.cancel()
        self._queue.clear()

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if not h.cancelled())
