"""Ingest API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from chat_rag.api.dependencies import get_document_pipeline, get_message_job
from chat_rag.ingest.documents import DocumentIngestPipeline
from chat_rag.ingest.messages import MessageIngestJob
from chat_rag.models.dto import (
    DocumentProcessRequest,
    DocumentProcessResponse,
    ErrorResponse,
    MessageIngestResponse,
)

router = APIRouter()


@router.post(
    "/documents/process",
    response_model=DocumentProcessResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Extract, chunk and vectorize an uploaded document",
)
async def process_document(
    request: DocumentProcessRequest,
    pipeline: DocumentIngestPipeline = Depends(get_document_pipeline),
) -> DocumentProcessResponse:
    result = await pipeline.ingest_by_id(request.document_id)
    return DocumentProcessResponse(**result.to_dict())


@router.post(
    "/ingest/messages",
    response_model=MessageIngestResponse,
    summary="Vectorize every chat message and thread reply",
)
async def ingest_messages(job: MessageIngestJob = Depends(get_message_job)) -> MessageIngestResponse:
    result = await job.ingest_all_messages()
    return MessageIngestResponse(**result.to_dict())
