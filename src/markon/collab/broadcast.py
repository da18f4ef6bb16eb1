"""In-process publish/subscribe with one bounded queue per subscriber."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, List

LOGGER = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100


@dataclass(eq=False)
class Subscription:
    queue: asyncio.Queue
    topic: str | None = None
    dropped: int = 0

    async def get(self) -> Any:
        return await self.queue.get()


class Broadcaster:
    """Fan-out channel living on one event loop.

    ``publish`` never waits: a subscriber whose queue is full misses the
    message. Subscribers registered with a topic only receive messages
    published under that topic (or without one).
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self.capacity = capacity
        self._subscriptions: List[Subscription] = []

    @property
    def receiver_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, topic: str | None = None) -> Subscription:
        subscription = Subscription(asyncio.Queue(maxsize=self.capacity), topic)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def publish(self, message: Any, *, topic: str | None = None) -> int:
        """Queue ``message`` for every matching subscriber; returns deliveries."""
        delivered = 0
        for subscription in list(self._subscriptions):
            if topic is not None and subscription.topic not in (None, topic):
                continue
            try:
                subscription.queue.put_nowait(message)
            except asyncio.QueueFull:
                subscription.dropped += 1
                LOGGER.debug("Subscriber queue full, dropping message for topic %s", topic)
                continue
            delivered += 1
        return delivered


async def run_until_first_exit(*coroutines: Awaitable[Any]) -> None:
    """Run coroutines as tasks; when one finishes, cancel the rest.

    Exceptions raised by the finished task are logged, not propagated.
    """
    tasks = [asyncio.ensure_future(coroutine) for coroutine in coroutines]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    for task in done:
        if not task.cancelled() and task.exception() is not None:
            LOGGER.debug("Connection task ended with error: %r", task.exception())
