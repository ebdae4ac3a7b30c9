"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class QueryRequest(BaseModel):
    # Validated by the service so that non-string values map to a 400, not a 422.
    query: Any = Field(default=None, description="Free-text question about the chat history")


class SourceMessageModel(BaseModel):
    message_id: str
    content: str
    timestamp: int
    sender: str
    channel_id: str | None = None
    score: float


class SourceDocumentModel(BaseModel):
    document_id: str
    file_name: str
    chunk_index: int
    total_chunks: int
    score: float


class QueryResponse(BaseModel):
    response: str
    source_messages: list[SourceMessageModel] = Field(default_factory=list)
    source_documents: list[SourceDocumentModel] = Field(default_factory=list)


class ListenRequest(BaseModel):
    action: Any = Field(default=None, description='Either "start" or "stop"')


class ListenResponse(BaseModel):
    status: Literal["Listener started", "Listener stopped"]


class ListenerStatusResponse(BaseModel):
    state: Literal["stopped", "starting", "listening"]
    start_time: int | None = None
    active_channels: list[str] = Field(default_factory=list)


class DocumentProcessRequest(BaseModel):
    document_id: str = Field(..., min_length=1)


class DocumentProcessResponse(BaseModel):
    success: bool = True
    document_id: str
    processed_chunks: int
    total_chunks: int
    text_length: int


class BatchFailureModel(BaseModel):
    id: str
    reason: str


class MessageIngestResponse(BaseModel):
    attempted: int
    succeeded: int
    processed: int
    skipped: int
    failures: list[BatchFailureModel] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
    details: str | None = None
