"""Document ingestion: fetch, extract, chunk, embed and upsert."""

from __future__ import annotations

import time
from typing import Any

from chat_rag.core.config import Settings
from chat_rag.core.errors import DocumentNotFound, IngestionFailed
from chat_rag.core.logging import get_logger
from chat_rag.core.metrics import INGEST_DURATION, INGESTED_CHUNKS
from chat_rag.ingest.chunker import chunk_text
from chat_rag.ingest.embeddings import EmbeddingClient
from chat_rag.ingest.extract import extract_text
from chat_rag.ingest.types import IngestResult
from chat_rag.models.entities import SourceDocument
from chat_rag.retrieval.vector_index import DOCUMENT_KIND, VectorIndexClient
from chat_rag.stores.documents import SQLiteDocumentStore
from chat_rag.stores.object_storage import ObjectStorage
from chat_rag.utils.time import now_ms

logger = get_logger(__name__)


def chunk_record_id(document_id: str, chunk_index: int) -> str:
    return f"{document_id}-chunk-{chunk_index}"


def document_chunk_metadata(document: SourceDocument, chunk_index: int, total_chunks: int, chunk: str) -> dict[str, Any]:
    return {
        "kind": DOCUMENT_KIND,
        "type": DOCUMENT_KIND,
        "parentId": document.id,
        "workspaceId": document.workspace_id,
        "channelId": document.channel_id,
        "fileName": document.file_name,
        "chunkIndex": chunk_index,
        "totalChunks": total_chunks,
        "chunkLength": len(chunk),
    }


class DocumentIngestPipeline:
    """Coordinate storage, extraction, chunking, embeddings and the index."""

    def __init__(
        self,
        settings: Settings,
        documents: SQLiteDocumentStore,
        storage: ObjectStorage,
        embeddings: EmbeddingClient,
        index: VectorIndexClient,
    ) -> None:
        self.settings = settings
        self.documents = documents
        self.storage = storage
        self.embeddings = embeddings
        self.index = index

    async def ingest_by_id(self, document_id: str) -> IngestResult:
        document = await self.documents.get_document(document_id)
        if document is None:
            raise DocumentNotFound(document_id)
        return await self.ingest(document)

    async def ingest(self, document: SourceDocument) -> IngestResult:
        started = time.perf_counter()
        logger.info(
            "Processing document %s",
            document.id,
            extra={"ctx_file_name": document.file_name, "ctx_file_type": document.file_type},
        )
        raw = await self.storage.fetch_bytes(document.storage_url)
        text = await extract_text(raw, document.file_type, min_length=self.settings.min_text_length)
        chunks = chunk_text(text, self.settings.chunk_max_len)
        total = len(chunks)
        logger.info("Split document %s into %s chunks", document.id, total)

        processed = 0
        for index, chunk in enumerate(chunks):
            if len(chunk) < self.settings.min_chunk_length:
                logger.warning("Skipping chunk %s of %s: too short (%s characters)", index, document.id, len(chunk))
                continue
            try:
                vector = await self.embeddings.embed(chunk)
                await self.index.upsert(
                    chunk_record_id(document.id, index),
                    vector,
                    document_chunk_metadata(document, index, total, chunk),
                )
            except Exception as exc:
                logger.exception("Failed to ingest chunk %s of document %s", index, document.id)
                # Chunks already upserted stay in the index; queries read their text from text_content.
                try:
                    await self.documents.update_document(
                        document.id,
                        text_content=text,
                        text_length=len(text),
                        vectorized=False,
                        total_chunks=total,
                        processed_chunks=processed,
                    )
                except Exception:
                    logger.exception("Failed to record progress for document %s", document.id)
                raise IngestionFailed(document.id, index, exc) from exc
            processed += 1
            INGESTED_CHUNKS.inc()

        await self.documents.update_document(
            document.id,
            text_content=text,
            text_length=len(text),
            vectorized=processed > 0,
            vectorized_at=now_ms(),
            total_chunks=total,
            processed_chunks=processed,
        )
        INGEST_DURATION.labels(source="document").observe(time.perf_counter() - started)
        logger.info("Document %s processed: %s/%s chunks", document.id, processed, total)
        return IngestResult(
            document_id=document.id,
            processed_chunks=processed,
            total_chunks=total,
            text_length=len(text),
        )


__all__ = ["DocumentIngestPipeline", "chunk_record_id", "document_chunk_metadata"]
