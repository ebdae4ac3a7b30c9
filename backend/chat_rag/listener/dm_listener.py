"""DM listener: answers direct messages sent to the AI participant."""

from __future__ import annotations

from enum import Enum
from functools import partial
from typing import Any, Callable

from chat_rag.core.logging import get_logger
from chat_rag.core.metrics import ACTIVE_CHANNEL_LISTENERS, LISTENER_REPLIES
from chat_rag.models.entities import ChatMessage, DMChannel
from chat_rag.retrieval.rag import RAGService
from chat_rag.stores.messages import SQLiteMessageStore
from chat_rag.stores.subscriptions import Change, Subscription
from chat_rag.utils.time import now_ms

logger = get_logger(__name__)

APOLOGY_MESSAGE = "I'm sorry, I encountered an error processing your message. Please try again."


class ListenerState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    LISTENING = "listening"


class DMListener:
    """Watch DM channels that include the AI user and reply to new messages.

    One message subscription is kept per channel in
    ``active_channel_listeners``. ``stop()`` releases every subscription and
    can be followed by another ``start()``.
    """

    def __init__(
        self,
        messages: SQLiteMessageStore,
        rag: RAGService,
        ai_user_id: str,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.messages = messages
        self.rag = rag
        self.ai_user_id = ai_user_id
        self.clock = clock
        self.state = ListenerState.STOPPED
        self.start_time: int | None = None
        self.active_channel_listeners: dict[str, Subscription] = {}
        self._channel_subscription: Subscription | None = None
        self._generation = 0

    @property
    def is_listening(self) -> bool:
        return self.state is ListenerState.LISTENING

    def status(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "start_time": self.start_time,
            "active_channels": sorted(self.active_channel_listeners),
        }

    async def start(self) -> None:
        if self.state is not ListenerState.STOPPED:
            logger.info("DM listener already %s", self.state.value)
            return
        self.state = ListenerState.STARTING
        self._generation += 1
        self.start_time = self.clock()
        logger.info("Starting DM listener", extra={"ctx_start_time": self.start_time})
        try:
            self._channel_subscription = await self.messages.subscribe_to_channel_set(
                self.ai_user_id,
                partial(self._on_channel_changes, self._generation),
            )
        except Exception:
            logger.exception("Error starting DM listener")
            self.state = ListenerState.STOPPED
            raise
        self.state = ListenerState.LISTENING
        logger.info("DM listener started")

    def stop(self) -> None:
        if self._channel_subscription is not None:
            self._channel_subscription.unsubscribe()
            self._channel_subscription = None
        for subscription in self.active_channel_listeners.values():
            subscription.unsubscribe()
        self.active_channel_listeners.clear()
        ACTIVE_CHANNEL_LISTENERS.set(0)
        if self.state is not ListenerState.STOPPED:
            logger.info("DM listener stopped")
        self.state = ListenerState.STOPPED

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self.state is not ListenerState.STOPPED

    async def _on_channel_changes(self, generation: int, changes: list[Change]) -> None:
        for change in changes:
            if change.type not in ("added", "modified"):
                continue
            channel: DMChannel = change.item
            if not self._is_current(generation) or channel.id in self.active_channel_listeners:
                continue
            await self._listen_to_channel(generation, channel.id)

    async def _listen_to_channel(self, generation: int, channel_id: str) -> None:
        logger.info("Setting up message listener for channel %s", channel_id)
        try:
            subscription = await self.messages.subscribe_to_channel_messages(
                channel_id,
                after=self.start_time or 0,
                callback=self._on_message_changes,
                limit=1,
            )
        except Exception:
            logger.exception("Error listening to channel %s", channel_id)
            return
        if not self._is_current(generation) or channel_id in self.active_channel_listeners:
            subscription.unsubscribe()
            return
        self.active_channel_listeners[channel_id] = subscription
        ACTIVE_CHANNEL_LISTENERS.set(len(self.active_channel_listeners))

    async def _on_message_changes(self, changes: list[Change]) -> None:
        for change in changes:
            if change.type == "added":
                await self.handle_new_message(change.item)

    async def handle_new_message(self, message: ChatMessage) -> None:
        if message.user_id == self.ai_user_id:
            logger.debug("Skipping message %s from the AI user", message.id)
            return
        channel_id = message.channel_id
        await self._set_typing(channel_id, True)
        try:
            result = await self.rag.process_query(message.content)
            await self._send(channel_id, result.response)
            LISTENER_REPLIES.labels(outcome="answered").inc()
        except Exception:
            logger.exception("Error handling message %s", message.id)
            LISTENER_REPLIES.labels(outcome="apology").inc()
            try:
                await self._send(channel_id, APOLOGY_MESSAGE)
            except Exception:
                logger.exception("Error sending apology to channel %s", channel_id)
        finally:
            await self._set_typing(channel_id, False)

    async def _send(self, channel_id: str, content: str) -> str:
        return await self.messages.create_message(channel_id, self.ai_user_id, content)

    async def _set_typing(self, channel_id: str, is_typing: bool) -> None:
        try:
            await self.messages.set_typing(channel_id, self.ai_user_id, is_typing)
        except Exception:
            logger.exception("Error updating typing indicator for channel %s", channel_id)


__all__ = ["DMListener", "ListenerState", "APOLOGY_MESSAGE"]
