"""Query API routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from chat_rag.api.dependencies import get_rag_service
from chat_rag.models.dto import ErrorResponse, QueryRequest, QueryResponse
from chat_rag.retrieval.rag import RAGService

router = APIRouter()


@router.post(
    "/rag",
    response_model=QueryResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Answer a question from the chat history and documents",
)
async def run_query(
    request: QueryRequest,
    service: RAGService = Depends(get_rag_service),
) -> dict[str, Any]:
    result = await service.process_query(request.query)
    return result.to_dict()
