"""Query answering over the chat history and uploaded documents."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from chat_rag.core.config import Settings
from chat_rag.core.errors import InvalidQuery, RAGProcessingError
from chat_rag.core.logging import get_logger
from chat_rag.core.metrics import QUERY_COUNT, QUERY_LATENCY
from chat_rag.ingest.chunker import chunk_text
from chat_rag.ingest.embeddings import EmbeddingClient
from chat_rag.retrieval.llm import LanguageModel
from chat_rag.retrieval.vector_index import DOCUMENT_KIND, MESSAGE_KIND, RetrievalMatch, VectorIndexClient
from chat_rag.stores.documents import SQLiteDocumentStore
from chat_rag.stores.messages import SQLiteMessageStore

logger = get_logger(__name__)

NO_MATCHES_RESPONSE = "I couldn't find any relevant messages in the history."
BELOW_THRESHOLD_RESPONSE = "I couldn't find any messages that were relevant enough to your query."
EMPTY_COMPLETION_RESPONSE = "Sorry, I couldn't generate a response."

SYSTEM_PROMPT = (
    "You are a helpful AI assistant that answers questions about a team's chat history and shared documents.\n"
    "Answer using only the provided context.\n"
    "If you're not sure about something, say so.\n"
    "If you reference specific messages, include their timestamps.\n"
    "Keep a friendly and professional tone, format the answer clearly, "
    "and focus on the most relevant information."
)


@dataclass(slots=True)
class SourceMessage:
    message_id: str
    content: str
    timestamp: int
    sender: str
    channel_id: str | None
    score: float


@dataclass(slots=True)
class SourceDocumentRef:
    document_id: str
    file_name: str
    chunk_index: int
    total_chunks: int
    score: float


@dataclass(slots=True)
class RAGResponse:
    response: str
    source_messages: list[SourceMessage] = field(default_factory=list)
    source_documents: list[SourceDocumentRef] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def format_timestamp(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


class RAGService:
    """Embed the query, retrieve matches, assemble context, ask the model."""

    def __init__(
        self,
        settings: Settings,
        embeddings: EmbeddingClient,
        index: VectorIndexClient,
        messages: SQLiteMessageStore,
        documents: SQLiteDocumentStore,
        llm: LanguageModel,
    ) -> None:
        self.settings = settings
        self.embeddings = embeddings
        self.index = index
        self.messages = messages
        self.documents = documents
        self.llm = llm

    async def process_query(self, query: Any) -> RAGResponse:
        if not isinstance(query, str) or not query.strip():
            raise InvalidQuery("Query must be a non-empty string")
        started = time.perf_counter()
        try:
            response, outcome = await self._answer(query)
        except Exception as exc:
            QUERY_COUNT.labels(outcome="error").inc()
            logger.exception("RAG processing error")
            raise RAGProcessingError("Failed to process query") from exc
        QUERY_COUNT.labels(outcome=outcome).inc()
        QUERY_LATENCY.observe(time.perf_counter() - started)
        return response

    async def _answer(self, query: str) -> tuple[RAGResponse, str]:
        vector = await self.embeddings.embed(query)
        matches = await self.index.query(vector, top_k=self.settings.top_k, include_metadata=True)
        if not matches:
            return RAGResponse(response=NO_MATCHES_RESPONSE), "no_matches"

        relevant = [match for match in matches if match.score > self.settings.similarity_threshold]
        if not relevant:
            return RAGResponse(response=BELOW_THRESHOLD_RESPONSE), "below_threshold"

        message_matches = [match for match in relevant if match.kind == MESSAGE_KIND]
        document_matches = [match for match in relevant if match.kind == DOCUMENT_KIND]
        message_lines, source_messages = await self._message_context(message_matches)
        document_blocks, source_documents = await self._document_context(document_matches)

        blocks = []
        if message_lines:
            blocks.append("\n".join(message_lines))
        if document_blocks:
            blocks.append("\n\n".join(document_blocks))
        context = "\n\n".join(blocks)
        logger.debug(
            "Assembled context",
            extra={"ctx_messages": len(source_messages), "ctx_documents": len(source_documents)},
        )

        completion = await self.llm.complete(
            SYSTEM_PROMPT,
            f"Here is the relevant context:\n{context}\n\nUser's question: {query}",
            self.settings.max_tokens,
            self.settings.temperature,
        )
        return (
            RAGResponse(
                response=completion or EMPTY_COMPLETION_RESPONSE,
                source_messages=source_messages,
                source_documents=source_documents,
            ),
            "answered",
        )

    async def _message_context(self, matches: list[RetrievalMatch]) -> tuple[list[str], list[SourceMessage]]:
        if not matches:
            return [], []
        ids = [match.meta("messageId", "message_id", match.id) for match in matches]
        found = await self.messages.get_messages(ids)
        resolved = []
        for message_id, match in zip(ids, matches):
            message = found.get(message_id)
            if message is None:
                continue
            timestamp = match.meta("timestamp", default=message.created_at)
            resolved.append((int(timestamp), message, match))
        resolved.sort(key=lambda item: item[0])

        names = await self.messages.get_user_names({message.user_id for _, message, _ in resolved})
        lines: list[str] = []
        sources: list[SourceMessage] = []
        for timestamp, message, match in resolved:
            sender = names.get(message.user_id) or message.user_id
            lines.append(f"[Chat Message - {format_timestamp(timestamp)}] User {sender}: {message.content}")
            sources.append(
                SourceMessage(
                    message_id=message.id,
                    content=message.content,
                    timestamp=timestamp,
                    sender=sender,
                    channel_id=message.channel_id,
                    score=match.score,
                )
            )
        return lines, sources

    async def _document_context(
        self, matches: list[RetrievalMatch]
    ) -> tuple[list[str], list[SourceDocumentRef]]:
        if not matches:
            return [], []
        parent_ids = [match.meta("parentId", "parent_id") for match in matches]
        parents = await self.documents.get_documents([pid for pid in parent_ids if pid])
        resolved = [
            (int(match.meta("chunkIndex", "chunk_index", 0)), parents[pid], match)
            for pid, match in zip(parent_ids, matches)
            if pid in parents
        ]
        resolved.sort(key=lambda item: item[0])

        chunk_cache: dict[str, list[str]] = {}
        blocks: list[str] = []
        sources: list[SourceDocumentRef] = []
        for chunk_index, document, match in resolved:
            if document.id not in chunk_cache:
                text = document.text_content or ""
                chunk_cache[document.id] = chunk_text(text, self.settings.chunk_max_len) if text else []
            chunks = chunk_cache[document.id]
            if not 0 <= chunk_index < len(chunks):
                logger.warning("No stored text for chunk %s of document %s", chunk_index, document.id)
                continue
            chunk = chunks[chunk_index]
            total = int(match.meta("totalChunks", "total_chunks", len(chunks)))
            file_name = match.meta("fileName", "file_name", document.file_name)
            blocks.append(f"[Document: {file_name} - Part {chunk_index + 1}/{total}]\n{chunk}")
            sources.append(
                SourceDocumentRef(
                    document_id=document.id,
                    file_name=file_name,
                    chunk_index=chunk_index,
                    total_chunks=total,
                    score=match.score,
                )
            )
        return blocks, sources


__all__ = [
    "RAGService",
    "RAGResponse",
    "SourceMessage",
    "SourceDocumentRef",
    "NO_MATCHES_RESPONSE",
    "BELOW_THRESHOLD_RESPONSE",
    "EMPTY_COMPLETION_RESPONSE",
]
