"""In-process change notifications for the SQLite-backed stores.

Each subscription owns an asyncio task and a queue, so events for one
subscription are delivered serially while different subscriptions run
concurrently. Subscribers receive an initial snapshot followed by changes.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal, Sequence

from chat_rag.core.logging import get_logger

logger = get_logger(__name__)

ChangeType = Literal["added", "modified", "removed"]


@dataclass(slots=True)
class Change:
    type: ChangeType
    item: Any


ChangeCallback = Callable[[list[Change]], Awaitable[None]]
# Maps a raw store event to the changes visible through one subscription.
Selector = Callable[[ChangeType, Any], list[Change]]


class Subscription:
    """Handle for a live query; ``unsubscribe()`` stops all further delivery."""

    def __init__(
        self,
        hub: "SubscriptionHub",
        topic: str,
        callback: ChangeCallback,
        selector: Selector,
        name: str | None = None,
    ) -> None:
        self.topic = topic
        self.name = name or topic
        self._hub = hub
        self._callback = callback
        self._selector = selector
        self._queue: asyncio.Queue[list[Change] | None] = asyncio.Queue()
        self._closed = False
        self._busy = False
        self._task = asyncio.create_task(self._run(), name=f"subscription:{self.name}")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def idle(self) -> bool:
        return self._closed or (self._queue.empty() and not self._busy)

    def deliver_snapshot(self, changes: Sequence[Change]) -> None:
        if changes and not self._closed:
            self._queue.put_nowait(list(changes))

    def notify(self, change_type: ChangeType, item: Any) -> None:
        if self._closed:
            return
        changes = self._selector(change_type, item)
        if changes:
            self._queue.put_nowait(changes)

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._hub.remove(self)
        self._queue.put_nowait(None)

    async def wait_idle(self) -> None:
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            changes = await self._queue.get()
            try:
                if changes is None or self._closed:
                    self._drain()
                    return
                self._busy = True
                await self._callback(changes)
            except Exception:
                logger.exception("Subscription %s callback failed", self.name)
            finally:
                self._busy = False
                self._queue.task_done()

    def _drain(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()


class SubscriptionHub:
    """Routes store writes to the subscriptions registered for a topic."""

    def __init__(self) -> None:
        self._topics: dict[str, list[Subscription]] = defaultdict(list)

    def subscribe(
        self,
        topic: str,
        callback: ChangeCallback,
        selector: Selector,
        snapshot: Sequence[Change] = (),
        name: str | None = None,
    ) -> Subscription:
        subscription = Subscription(self, topic, callback, selector, name=name)
        self._topics[topic].append(subscription)
        subscription.deliver_snapshot(snapshot)
        return subscription

    def publish(self, topic: str, change_type: ChangeType, item: Any) -> None:
        for subscription in list(self._topics.get(topic, ())):
            subscription.notify(change_type, item)

    def remove(self, subscription: Subscription) -> None:
        subscribers = self._topics.get(subscription.topic)
        if subscribers and subscription in subscribers:
            subscribers.remove(subscription)
            if not subscribers:
                del self._topics[subscription.topic]

    def subscriptions(self) -> list[Subscription]:
        return [sub for subs in self._topics.values() for sub in subs]

    async def wait_idle(self) -> None:
        """Wait until every open subscription has handled its pending events."""
        while True:
            pending = self.subscriptions()
            await asyncio.gather(*(sub.wait_idle() for sub in pending))
            if all(sub.idle for sub in self.subscriptions()):
                return

    def close(self) -> None:
        for subscription in self.subscriptions():
            subscription.unsubscribe()


__all__ = ["Change", "ChangeCallback", "Subscription", "SubscriptionHub"]
