"""Service wiring and shared FastAPI dependencies."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from chat_rag.core.config import Settings
from chat_rag.core.logging import get_logger
from chat_rag.db.sqlite import SQLiteDatabase
from chat_rag.ingest.documents import DocumentIngestPipeline
from chat_rag.ingest.embeddings import EmbeddingClient
from chat_rag.ingest.messages import MessageIngestJob
from chat_rag.listener.dm_listener import DMListener
from chat_rag.retrieval.llm import LanguageModel, OpenAIChatModel
from chat_rag.retrieval.rag import RAGService
from chat_rag.retrieval.vector_index import VectorIndexClient, build_vector_index
from chat_rag.stores.documents import SQLiteDocumentStore
from chat_rag.stores.messages import SQLiteMessageStore
from chat_rag.stores.object_storage import ObjectStorage
from chat_rag.stores.subscriptions import SubscriptionHub

logger = get_logger(__name__)


@dataclass(slots=True)
class ServiceContainer:
    """Process-wide service instances, created once at application start-up."""

    settings: Settings
    db: SQLiteDatabase
    hub: SubscriptionHub
    messages: SQLiteMessageStore
    documents: SQLiteDocumentStore
    storage: ObjectStorage
    embeddings: EmbeddingClient
    index: VectorIndexClient
    llm: LanguageModel
    rag: RAGService
    document_pipeline: DocumentIngestPipeline
    message_job: MessageIngestJob
    listener: DMListener

    async def close(self) -> None:
        self.listener.stop()
        self.hub.close()
        await self.storage.close()
        await self.embeddings.close()
        close_llm = getattr(self.llm, "close", None)
        if close_llm is not None:
            await close_llm()
        self.db.close()


def build_services(
    settings: Settings,
    *,
    embeddings: EmbeddingClient | None = None,
    index: VectorIndexClient | None = None,
    llm: LanguageModel | None = None,
) -> ServiceContainer:
    db = SQLiteDatabase(settings.db_path)
    db.ensure_schema()
    hub = SubscriptionHub()
    messages = SQLiteMessageStore(db, hub)
    documents = SQLiteDocumentStore(db)
    storage = ObjectStorage(timeout=settings.storage_timeout)
    embeddings = embeddings or EmbeddingClient(
        backend=settings.embedding_backend,
        model_name=settings.embedding_model,
        dim=settings.embedding_dim,
        api_key=settings.openai_api_key,
    )
    index = index or build_vector_index(
        settings.vector_backend,
        dim=settings.embedding_dim,
        api_key=settings.pinecone_api_key,
        index_name=settings.pinecone_index,
    )
    llm = llm or OpenAIChatModel(settings.chat_model, api_key=settings.openai_api_key)
    rag = RAGService(settings, embeddings, index, messages, documents, llm)
    logger.info(
        "Services built",
        extra={
            "ctx_db_path": settings.db_path,
            "ctx_embedding_backend": settings.embedding_backend,
            "ctx_vector_backend": settings.vector_backend,
        },
    )
    return ServiceContainer(
        settings=settings,
        db=db,
        hub=hub,
        messages=messages,
        documents=documents,
        storage=storage,
        embeddings=embeddings,
        index=index,
        llm=llm,
        rag=rag,
        document_pipeline=DocumentIngestPipeline(settings, documents, storage, embeddings, index),
        message_job=MessageIngestJob(settings, messages, embeddings, index),
        listener=DMListener(messages, rag, settings.ai_user_id),
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_rag_service(request: Request) -> RAGService:
    return get_services(request).rag


def get_listener(request: Request) -> DMListener:
    return get_services(request).listener


def get_document_pipeline(request: Request) -> DocumentIngestPipeline:
    return get_services(request).document_pipeline


def get_message_job(request: Request) -> MessageIngestJob:
    return get_services(request).message_job


__all__ = [
    "ServiceContainer",
    "build_services",
    "get_services",
    "get_rag_service",
    "get_listener",
    "get_document_pipeline",
    "get_message_job",
]
