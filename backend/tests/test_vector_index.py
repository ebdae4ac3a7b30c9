"""Tests for the vector index client."""

from __future__ import annotations

import pytest

from chat_rag.core.errors import IndexUnavailable
from chat_rag.retrieval.vector_index import InMemoryBackend, RetrievalMatch, VectorIndexClient


class FlakyBackend(InMemoryBackend):
    """Memory backend that reports "not found" for the first ``failures`` calls."""

    def __init__(self, dim: int, failures: int = 0, error: Exception | None = None) -> None:
        super().__init__(dim)
        self.failures = failures
        self.error = error
        self.connects = 0
        self.disconnects = 0

    async def connect(self) -> None:
        self.connects += 1

    def disconnect(self) -> None:
        self.disconnects += 1

    def _maybe_fail(self) -> None:
        if self.failures > 0:
            self.failures -= 1
            raise self.error or IndexUnavailable("index not found")

    async def upsert(self, record_id, vector, metadata) -> None:
        self._maybe_fail()
        await super().upsert(record_id, vector, metadata)

    async def query(self, vector, top_k, include_metadata):
        self._maybe_fail()
        return await super().query(vector, top_k, include_metadata)


@pytest.mark.asyncio
async def test_upsert_overwrites_existing_id() -> None:
    backend = InMemoryBackend(dim=3)
    client = VectorIndexClient(backend)
    await client.upsert("m1", [1.0, 0.0, 0.0], {"kind": "message", "channel_id": "c1"})
    await client.upsert("m1", [0.0, 1.0, 0.0], {"kind": "message", "channel_id": "c2"})
    assert backend.size == 1
    vector, metadata = backend.get("m1")
    assert vector == [0.0, 1.0, 0.0]
    assert metadata["channel_id"] == "c2"


@pytest.mark.asyncio
async def test_none_metadata_values_are_dropped() -> None:
    backend = InMemoryBackend(dim=2)
    client = VectorIndexClient(backend)
    await client.upsert("m1", [1.0, 0.0], {"kind": "message", "thread_id": None})
    assert backend.get("m1")[1] == {"kind": "message"}


@pytest.mark.asyncio
async def test_query_orders_by_descending_score() -> None:
    client = VectorIndexClient(InMemoryBackend(dim=3))
    await client.upsert("a", [1.0, 0.0, 0.0], {"kind": "message"})
    await client.upsert("b", [0.0, 1.0, 0.0], {"kind": "message"})
    await client.upsert("c", [0.7, 0.7, 0.0], {"kind": "message"})
    matches = await client.query([1.0, 0.0, 0.0], top_k=2)
    assert [match.id for match in matches] == ["a", "c"]
    assert matches[0].score >= matches[1].score


@pytest.mark.asyncio
async def test_not_found_is_retried_once_after_reconnect() -> None:
    backend = FlakyBackend(dim=2, failures=1)
    client = VectorIndexClient(backend)
    await client.upsert("m1", [1.0, 0.0], {"kind": "message"})
    assert backend.size == 1
    assert backend.connects == 2
    assert backend.disconnects == 1


@pytest.mark.asyncio
async def test_query_is_retried_once_after_reconnect() -> None:
    backend = FlakyBackend(dim=2)
    client = VectorIndexClient(backend)
    await client.upsert("m1", [1.0, 0.0], {"kind": "message"})
    backend.failures = 1
    matches = await client.query([1.0, 0.0], top_k=5)
    assert [match.id for match in matches] == ["m1"]


@pytest.mark.asyncio
async def test_persistent_not_found_propagates() -> None:
    backend = FlakyBackend(dim=2, failures=2)
    client = VectorIndexClient(backend)
    with pytest.raises(IndexUnavailable):
        await client.upsert("m1", [1.0, 0.0], {"kind": "message"})
    assert backend.size == 0
    assert backend.connects == 2


@pytest.mark.asyncio
async def test_other_errors_are_not_retried() -> None:
    backend = FlakyBackend(dim=2, failures=1, error=RuntimeError("quota exceeded"))
    client = VectorIndexClient(backend)
    with pytest.raises(RuntimeError):
        await client.upsert("m1", [1.0, 0.0], {"kind": "message"})
    assert backend.connects == 1


@pytest.mark.asyncio
async def test_connection_is_lazy() -> None:
    backend = FlakyBackend(dim=2)
    client = VectorIndexClient(backend)
    assert backend.connects == 0
    await client.query([1.0, 0.0], top_k=1)
    await client.query([1.0, 0.0], top_k=1)
    assert backend.connects == 1


@pytest.mark.parametrize(
    ("metadata", "expected"),
    [
        ({"kind": "message", "messageId": "m1"}, "message"),
        ({"kind": "document", "parentId": "d1"}, "document"),
        ({"type": "document", "parentId": "d1"}, "document"),
        ({"messageId": "m1", "userId": "u1"}, "message"),
        ({"message_id": "m1", "user_id": "u1"}, "message"),
        ({"unrelated": True}, None),
    ],
)
def test_match_kind(metadata: dict, expected: str | None) -> None:
    assert RetrievalMatch(id="x", score=0.5, metadata=metadata).kind == expected


def test_meta_prefers_camel_case_and_falls_back() -> None:
    match = RetrievalMatch(id="x", score=0.5, metadata={"chunkIndex": 2, "parent_id": "d1"})
    assert match.meta("chunkIndex", "chunk_index") == 2
    assert match.meta("parentId", "parent_id") == "d1"
    assert match.meta("fileName", "file_name", "fallback.txt") == "fallback.txt"
