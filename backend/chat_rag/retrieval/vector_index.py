"""Vector index abstraction."""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol, Sequence, TypeVar

from pinecone import Pinecone
from pinecone.exceptions import NotFoundException, PineconeApiException

from chat_rag.core.errors import IndexUnavailable
from chat_rag.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

MESSAGE_KIND = "message"
DOCUMENT_KIND = "document"


@dataclass(slots=True)
class RetrievalMatch:
    id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> str | None:
        """Record kind; records written before ``kind`` existed are classified by shape."""
        kind = self.metadata.get("kind")
        if kind in (MESSAGE_KIND, DOCUMENT_KIND):
            return kind
        if self.metadata.get("type") == DOCUMENT_KIND:
            return DOCUMENT_KIND
        if "messageId" in self.metadata or "message_id" in self.metadata:
            return MESSAGE_KIND
        return None

    def meta(self, key: str, alt_key: str | None = None, default: Any = None) -> Any:
        if key in self.metadata:
            return self.metadata[key]
        if alt_key and alt_key in self.metadata:
            return self.metadata[alt_key]
        return default


class IndexBackend(Protocol):
    async def connect(self) -> None: ...

    def disconnect(self) -> None: ...

    async def upsert(self, record_id: str, vector: Sequence[float], metadata: dict[str, Any]) -> None: ...

    async def query(
        self, vector: Sequence[float], top_k: int, include_metadata: bool
    ) -> list[RetrievalMatch]: ...


class VectorIndexClient:
    """Lazily connected index client.

    A "not found" failure (``IndexUnavailable``) drops the connection,
    reconnects and retries the failed operation once; a second failure
    propagates.
    """

    def __init__(self, backend: IndexBackend) -> None:
        self.backend = backend
        self._connected = False
        self._lock = asyncio.Lock()

    async def upsert(self, record_id: str, vector: Sequence[float], metadata: dict[str, Any]) -> None:
        clean = {key: value for key, value in metadata.items() if value is not None}
        await self._with_retry("upsert", lambda: self.backend.upsert(record_id, vector, clean))

    async def query(
        self,
        vector: Sequence[float],
        top_k: int,
        include_metadata: bool = True,
    ) -> list[RetrievalMatch]:
        return await self._with_retry(
            "query", lambda: self.backend.query(vector, top_k, include_metadata)
        )

    def reset(self) -> None:
        self.backend.disconnect()
        self._connected = False

    async def _ensure_connected(self) -> None:
        if self._connected:
            return
        async with self._lock:
            if not self._connected:
                await self.backend.connect()
                self._connected = True

    async def _with_retry(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        try:
            await self._ensure_connected()
            return await call()
        except IndexUnavailable as exc:
            logger.warning("Index unavailable during %s, reconnecting: %s", operation, exc)
            self.reset()
        await self._ensure_connected()
        return await call()


class PineconeBackend:
    """Pinecone SDK backend; blocking SDK calls run in a worker thread."""

    def __init__(self, api_key: str | None, index_name: str) -> None:
        self.api_key = api_key
        self.index_name = index_name
        self._client: Pinecone | None = None
        self._index: Any = None

    async def connect(self) -> None:
        logger.info("Connecting to Pinecone index %s", self.index_name)
        self._index = await self._call(self._open_index)

    def disconnect(self) -> None:
        self._index = None

    def _open_index(self) -> Any:
        if self._client is None:
            self._client = Pinecone(api_key=self.api_key)
        index = self._client.Index(self.index_name)
        index.describe_index_stats()
        return index

    async def upsert(self, record_id: str, vector: Sequence[float], metadata: dict[str, Any]) -> None:
        index = self._require_index()
        await self._call(
            lambda: index.upsert(vectors=[{"id": record_id, "values": list(vector), "metadata": metadata}])
        )

    async def query(
        self, vector: Sequence[float], top_k: int, include_metadata: bool
    ) -> list[RetrievalMatch]:
        index = self._require_index()
        response = await self._call(
            lambda: index.query(vector=list(vector), top_k=top_k, include_metadata=include_metadata)
        )
        return [
            RetrievalMatch(id=match.id, score=float(match.score or 0.0), metadata=dict(match.metadata or {}))
            for match in response.matches
        ]

    def _require_index(self) -> Any:
        if self._index is None:
            raise IndexUnavailable(f"Pinecone index {self.index_name} is not connected")
        return self._index

    async def _call(self, func: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(func)
        except NotFoundException as exc:
            raise IndexUnavailable(f"Pinecone index {self.index_name} not found: {exc}") from exc
        except PineconeApiException as exc:
            if getattr(exc, "status", None) == 404 or "404" in str(exc):
                raise IndexUnavailable(f"Pinecone index {self.index_name} not found: {exc}") from exc
            raise


class InMemoryBackend:
    """In-process index using cosine similarity, for development and tests."""

    def __init__(self, dim: int) -> None:
        self.dim = dim
        self._records: dict[str, tuple[list[float], dict[str, Any]]] = {}

    @property
    def size(self) -> int:
        return len(self._records)

    def get(self, record_id: str) -> tuple[list[float], dict[str, Any]] | None:
        return self._records.get(record_id)

    async def connect(self) -> None:
        return None

    def disconnect(self) -> None:
        return None

    async def upsert(self, record_id: str, vector: Sequence[float], metadata: dict[str, Any]) -> None:
        if len(vector) != self.dim:
            raise ValueError("Vector dimension mismatch")
        self._records[record_id] = (list(vector), dict(metadata))

    async def query(
        self, vector: Sequence[float], top_k: int, include_metadata: bool
    ) -> list[RetrievalMatch]:
        if not self._records:
            return []
        if len(vector) != self.dim:
            raise ValueError("Query vector dimension mismatch")
        scored = [
            (record_id, _cosine(stored, vector), metadata)
            for record_id, (stored, metadata) in self._records.items()
        ]
        scored.sort(key=lambda item: item[1], reverse=True)
        return [
            RetrievalMatch(id=record_id, score=score, metadata=dict(metadata) if include_metadata else {})
            for record_id, score, metadata in scored[:top_k]
        ]


def _cosine(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def build_vector_index(backend: str, dim: int, api_key: str | None, index_name: str) -> VectorIndexClient:
    if backend == "memory":
        return VectorIndexClient(InMemoryBackend(dim))
    if backend == "pinecone":
        return VectorIndexClient(PineconeBackend(api_key, index_name))
    raise ValueError(f"Unknown vector backend: {backend}")


__all__ = [
    "RetrievalMatch",
    "VectorIndexClient",
    "PineconeBackend",
    "InMemoryBackend",
    "build_vector_index",
    "MESSAGE_KIND",
    "DOCUMENT_KIND",
]
