"""BroadcastChannel — fan-out publish/subscribe for conductor events.

Every subscriber sees every item, in publish order. Publishing to a closed
channel is a no-op. A failing subscriber is logged and does not affect the
others.

Usage:
    channel: BroadcastChannel[str] = BroadcastChannel("synthesis")
    sub = channel.subscribe(print)
    channel.publish("hello")
    sub.unsubscribe()

    async for item in channel.stream():
        ...
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any, Generic, TypeVar

logger = logging.getLogger("conductor.channels")

T = TypeVar("T")

_CLOSED = object()


class Subscription:
    """Handle returned by ``BroadcastChannel.subscribe``."""

    def __init__(self, channel: "BroadcastChannel[Any]", callback: Callable[[Any], Any]):
        self._channel = channel
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._channel._remove(self)


class BroadcastChannel(Generic[T]):
    """Multi-consumer channel for one event category."""

    def __init__(self, name: str = "channel"):
        self.name = name
        self._subscriptions: list[Subscription] = []
        self._queues: list[asyncio.Queue] = []
        self._pending: set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions) + len(self._queues)

    def subscribe(self, callback: Callable[[T], Any]) -> Subscription:
        """Register a plain or async callback. Subscribing to a closed channel yields an inactive handle."""
        sub = Subscription(self, callback)
        if self._closed:
            sub.active = False
            return sub
        self._subscriptions.append(sub)
        return sub

    async def stream(self) -> AsyncIterator[T]:
        """Iterate over items published from now on, until the channel closes."""
        if self._closed:
            return
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    def publish(self, item: T) -> None:
        if self._closed:
            return
        for sub in list(self._subscriptions):
            try:
                result = sub.callback(item)
                if inspect.isawaitable(result):
                    self._track(result)
            except Exception as e:
                logger.warning(f"Subscriber on '{self.name}' failed: {e}")
        for queue in list(self._queues):
            queue.put_nowait(item)

    def close(self) -> None:
        """Close the channel. Idempotent; open streams end after draining."""
        if self._closed:
            return
        self._closed = True
        for sub in self._subscriptions:
            sub.active = False
        self._subscriptions.clear()
        for queue in self._queues:
            queue.put_nowait(_CLOSED)

    def _remove(self, sub: Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    def _track(self, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Async subscriber on '{self.name}' failed: {task.exception()}")
