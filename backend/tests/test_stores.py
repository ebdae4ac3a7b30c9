"""Tests for the SQLite stores and their live queries."""

from __future__ import annotations

import pytest

from chat_rag.stores.subscriptions import Change


class Collector:
    def __init__(self) -> None:
        self.batches: list[list[Change]] = []

    async def __call__(self, changes: list[Change]) -> None:
        self.batches.append(changes)

    @property
    def events(self) -> list[tuple[str, str]]:
        return [(change.type, change.item.id) for batch in self.batches for change in batch]


@pytest.mark.asyncio
async def test_channel_set_snapshot_then_changes(services) -> None:
    store = services.messages
    existing = await store.create_dm_channel(["u-bob", "rag-ai"])
    await store.create_dm_channel(["u-bob", "u-carol"])
    collector = Collector()

    subscription = await store.subscribe_to_channel_set("rag-ai", collector)
    await services.hub.wait_idle()
    assert collector.events == [("added", existing.id)]

    created = await store.create_dm_channel(["u-dana", "rag-ai"])
    await store.set_typing(existing.id, "rag-ai", True)
    await services.hub.wait_idle()
    assert collector.events[1:] == [("added", created.id), ("modified", existing.id)]

    subscription.unsubscribe()
    await store.create_dm_channel(["u-erin", "rag-ai"])
    await services.hub.wait_idle()
    assert len(collector.events) == 3


@pytest.mark.asyncio
async def test_channel_messages_only_after_cutoff(services) -> None:
    store = services.messages
    await store.create_message("c1", "u-bob", "before", created_at=100)
    collector = Collector()

    await store.subscribe_to_channel_messages("c1", after=500, callback=collector)
    newer = await store.create_message("c1", "u-bob", "after", created_at=600)
    await store.create_message("c1", "u-bob", "backdated", created_at=550)
    await store.create_message("c2", "u-bob", "other channel", created_at=700)
    await services.hub.wait_idle()

    assert collector.events == [("added", newer)]


@pytest.mark.asyncio
async def test_typing_indicator_round_trip(services) -> None:
    store = services.messages
    channel = await store.create_dm_channel(["u-bob", "rag-ai"])
    await store.set_typing(channel.id, "rag-ai", True)
    assert (await store.get_channel(channel.id)).is_typing("rag-ai")
    await store.set_typing(channel.id, "rag-ai", False)
    assert not (await store.get_channel(channel.id)).is_typing("rag-ai")

    with pytest.raises(LookupError):
        await store.set_typing("dm_missing", "rag-ai", True)


@pytest.mark.asyncio
async def test_thread_replies_are_listed_separately(services) -> None:
    store = services.messages
    parent = await store.create_message("c1", "u-bob", "parent", created_at=10)
    await store.create_message("c1", "u-alice", "second reply", thread_parent_id=parent, created_at=30)
    await store.create_message("c1", "u-alice", "first reply", thread_parent_id=parent, created_at=20)

    assert [message.id for message in await store.list_all_messages()] == [parent]
    replies = await store.list_thread_replies(parent)
    assert [reply.content for reply in replies] == ["first reply", "second reply"]


@pytest.mark.asyncio
async def test_document_update_rejects_unknown_fields(services) -> None:
    document = await services.documents.create_document("ws1", "c1", "u1", "a.txt", "plain-text", "/tmp/a.txt")
    with pytest.raises(ValueError):
        await services.documents.update_document(document.id, file_name="b.txt")
    await services.documents.update_document(document.id, vectorized=True, total_chunks=2)
    stored = await services.documents.get_document(document.id)
    assert stored.vectorized is True
    assert stored.total_chunks == 2
