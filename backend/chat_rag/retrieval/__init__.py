"""Retrieval orchestration components."""

from .vector_index import RetrievalMatch, VectorIndexClient, build_vector_index
from .rag import RAGResponse, RAGService

__all__ = [
    "RetrievalMatch",
    "VectorIndexClient",
    "build_vector_index",
    "RAGResponse",
    "RAGService",
]
