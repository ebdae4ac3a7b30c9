"""Batch job that vectorizes the chat history."""

from __future__ import annotations

import asyncio
import time
from typing import Any, AsyncIterator

from chat_rag.core.config import Settings
from chat_rag.core.logging import get_logger
from chat_rag.core.metrics import INGEST_DURATION, INGESTED_MESSAGES
from chat_rag.ingest.embeddings import EmbeddingClient
from chat_rag.ingest.types import BatchFailure, BatchResult
from chat_rag.models.entities import ChatMessage
from chat_rag.retrieval.vector_index import MESSAGE_KIND, VectorIndexClient
from chat_rag.stores.messages import SQLiteMessageStore

logger = get_logger(__name__)

PROGRESS_EVERY = 10


def message_metadata(message: ChatMessage, thread_id: str | None = None) -> dict[str, Any]:
    return {
        "kind": MESSAGE_KIND,
        "messageId": message.id,
        "userId": message.user_id,
        "channelId": message.channel_id,
        "timestamp": message.created_at,
        "threadId": thread_id,
    }


class MessageIngestJob:
    """Embed every message and thread reply, one at a time.

    Failures on individual messages are logged and recorded; the job always
    runs to the end of the history.
    """

    def __init__(
        self,
        settings: Settings,
        messages: SQLiteMessageStore,
        embeddings: EmbeddingClient,
        index: VectorIndexClient,
    ) -> None:
        self.settings = settings
        self.messages = messages
        self.embeddings = embeddings
        self.index = index

    async def iter_messages(self) -> AsyncIterator[tuple[ChatMessage, str | None]]:
        """Yield top-level messages in creation order, each followed by its replies."""
        for message in await self.messages.list_all_messages():
            yield message, None
            for reply in await self.messages.list_thread_replies(message.id):
                yield reply, message.id

    async def ingest_all_messages(self) -> BatchResult:
        started = time.perf_counter()
        result = BatchResult()
        async for message, thread_id in self.iter_messages():
            result.attempted += 1
            if not message.content or not message.content.strip():
                result.skipped += 1
                INGESTED_MESSAGES.labels(outcome="skipped").inc()
                continue
            try:
                vector = await self.embeddings.embed(message.content)
                await self.index.upsert(message.id, vector, message_metadata(message, thread_id))
            except Exception as exc:
                logger.exception("Error processing message %s", message.id)
                result.failures.append(BatchFailure(id=message.id, reason=str(exc)))
                INGESTED_MESSAGES.labels(outcome="failed").inc()
            else:
                result.succeeded += 1
                INGESTED_MESSAGES.labels(outcome="succeeded").inc()
                if result.succeeded % PROGRESS_EVERY == 0:
                    logger.info("Processed %s messages", result.succeeded)
            if self.settings.ingest_delay_seconds > 0:
                await asyncio.sleep(self.settings.ingest_delay_seconds)

        INGEST_DURATION.labels(source="messages").observe(time.perf_counter() - started)
        logger.info(
            "Finished processing messages",
            extra={
                "ctx_attempted": result.attempted,
                "ctx_succeeded": result.succeeded,
                "ctx_skipped": result.skipped,
                "ctx_failed": len(result.failures),
            },
        )
        return result


__all__ = ["MessageIngestJob", "message_metadata"]
