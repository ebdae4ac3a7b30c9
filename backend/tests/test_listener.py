"""Tests for the DM listener."""

from __future__ import annotations

import itertools

import pytest

from chat_rag.listener.dm_listener import APOLOGY_MESSAGE, ListenerState
from chat_rag.retrieval.rag import NO_MATCHES_RESPONSE

from conftest import AI_USER_ID


def _replies(services, channel_id: str) -> list[str]:
    rows = services.db.query(
        "SELECT content FROM messages WHERE channel_id = ? AND user_id = ? ORDER BY created_at, id",
        [channel_id, AI_USER_ID],
    )
    return [row["content"] for row in rows]


def _record_typing(services, monkeypatch) -> list[tuple[str, str, bool]]:
    calls: list[tuple[str, str, bool]] = []
    original = services.messages.set_typing

    async def recording(channel_id: str, user_id: str, is_typing: bool) -> None:
        calls.append((channel_id, user_id, is_typing))
        await original(channel_id, user_id, is_typing)

    monkeypatch.setattr(services.messages, "set_typing", recording)
    return calls


async def _started(services):
    listener = services.listener
    await listener.start()
    await services.hub.wait_idle()
    return listener


@pytest.mark.asyncio
async def test_reply_is_posted_with_typing_indicator(services, monkeypatch) -> None:
    typing = _record_typing(services, monkeypatch)
    channel = await services.messages.create_dm_channel(["u-bob", AI_USER_ID])
    listener = await _started(services)
    assert listener.status()["active_channels"] == [channel.id]

    await services.messages.create_message(
        channel.id, "u-bob", "what did we decide about the budget?", created_at=listener.start_time + 1_000
    )
    await services.hub.wait_idle()

    assert _replies(services, channel.id) == [NO_MATCHES_RESPONSE]
    assert typing == [(channel.id, AI_USER_ID, True), (channel.id, AI_USER_ID, False)]
    stored = await services.messages.get_channel(channel.id)
    assert stored.is_typing(AI_USER_ID) is False


@pytest.mark.asyncio
async def test_model_answer_is_posted(services, fake_llm) -> None:
    await services.messages.create_message("c-general", "u-alice", "budget meeting moved to friday", created_at=10)
    await services.message_job.ingest_all_messages()
    fake_llm.reply = "The budget meeting is on Friday."
    channel = await services.messages.create_dm_channel(["u-bob", AI_USER_ID])
    listener = await _started(services)

    await services.messages.create_message(
        channel.id, "u-bob", "budget meeting moved to friday", created_at=listener.start_time + 1_000
    )
    await services.hub.wait_idle()

    assert _replies(services, channel.id) == ["The budget meeting is on Friday."]


@pytest.mark.asyncio
async def test_own_messages_are_ignored(services, monkeypatch) -> None:
    typing = _record_typing(services, monkeypatch)
    channel = await services.messages.create_dm_channel(["u-bob", AI_USER_ID])
    listener = await _started(services)

    await services.messages.create_message(
        channel.id, AI_USER_ID, "hello from the assistant", created_at=listener.start_time + 1_000
    )
    await services.hub.wait_idle()

    assert _replies(services, channel.id) == ["hello from the assistant"]
    assert typing == []


@pytest.mark.asyncio
async def test_failure_posts_apology_and_clears_typing(services, monkeypatch) -> None:
    typing = _record_typing(services, monkeypatch)

    async def broken_query(query):
        raise RuntimeError("index offline")

    monkeypatch.setattr(services.rag, "process_query", broken_query)
    channel = await services.messages.create_dm_channel(["u-bob", AI_USER_ID])
    listener = await _started(services)

    await services.messages.create_message(channel.id, "u-bob", "hello?", created_at=listener.start_time + 1_000)
    await services.hub.wait_idle()

    assert _replies(services, channel.id) == [APOLOGY_MESSAGE]
    assert typing[-1] == (channel.id, AI_USER_ID, False)
    stored = await services.messages.get_channel(channel.id)
    assert stored.is_typing(AI_USER_ID) is False


@pytest.mark.asyncio
async def test_typing_failures_do_not_block_the_reply(services, monkeypatch) -> None:
    async def broken_typing(channel_id, user_id, is_typing):
        raise RuntimeError("write rejected")

    monkeypatch.setattr(services.messages, "set_typing", broken_typing)
    channel = await services.messages.create_dm_channel(["u-bob", AI_USER_ID])
    listener = await _started(services)

    await services.messages.create_message(channel.id, "u-bob", "ping", created_at=listener.start_time + 1_000)
    await services.hub.wait_idle()

    assert _replies(services, channel.id) == [NO_MATCHES_RESPONSE]


@pytest.mark.asyncio
async def test_history_before_start_is_not_replayed(services) -> None:
    channel = await services.messages.create_dm_channel(["u-bob", AI_USER_ID])
    await services.messages.create_message(channel.id, "u-bob", "old question", created_at=1)
    await _started(services)

    assert _replies(services, channel.id) == []


@pytest.mark.asyncio
async def test_channels_without_the_ai_user_are_ignored(services) -> None:
    other = await services.messages.create_dm_channel(["u-bob", "u-carol"])
    listener = await _started(services)

    await services.messages.create_message(other.id, "u-bob", "hi carol", created_at=listener.start_time + 1_000)
    await services.hub.wait_idle()

    assert listener.status()["active_channels"] == []
    assert _replies(services, other.id) == []


@pytest.mark.asyncio
async def test_channels_created_after_start_are_picked_up(services) -> None:
    listener = await _started(services)
    channel = await services.messages.create_dm_channel(["u-dana", AI_USER_ID])
    await services.hub.wait_idle()
    assert channel.id in listener.active_channel_listeners

    await services.messages.create_message(channel.id, "u-dana", "hi", created_at=listener.start_time + 1_000)
    await services.hub.wait_idle()

    assert _replies(services, channel.id) == [NO_MATCHES_RESPONSE]


@pytest.mark.asyncio
async def test_one_subscription_per_channel(services) -> None:
    channel = await services.messages.create_dm_channel(["u-bob", AI_USER_ID])
    listener = await _started(services)
    subscription = listener.active_channel_listeners[channel.id]

    await services.messages.set_typing(channel.id, "u-bob", True)
    await services.messages.set_typing(channel.id, "u-bob", False)
    await services.hub.wait_idle()

    assert listener.active_channel_listeners[channel.id] is subscription
    channel_subscriptions = [sub for sub in services.hub.subscriptions() if sub.topic == f"messages:{channel.id}"]
    assert len(channel_subscriptions) == 1


@pytest.mark.asyncio
async def test_start_twice_is_a_no_op(services) -> None:
    await services.messages.create_dm_channel(["u-bob", AI_USER_ID])
    listener = await _started(services)
    start_time = listener.start_time
    subscription_count = len(services.hub.subscriptions())

    await listener.start()
    await services.hub.wait_idle()

    assert listener.is_listening
    assert listener.start_time == start_time
    assert len(services.hub.subscriptions()) == subscription_count


@pytest.mark.asyncio
async def test_stop_is_idempotent_and_releases_subscriptions(services) -> None:
    await services.messages.create_dm_channel(["u-bob", AI_USER_ID])
    listener = await _started(services)
    assert services.hub.subscriptions()

    listener.stop()
    listener.stop()

    assert listener.state is ListenerState.STOPPED
    assert not listener.is_listening
    assert listener.active_channel_listeners == {}
    assert services.hub.subscriptions() == []


@pytest.mark.asyncio
async def test_no_replies_after_stop(services) -> None:
    channel = await services.messages.create_dm_channel(["u-bob", AI_USER_ID])
    listener = await _started(services)
    start_time = listener.start_time
    listener.stop()

    await services.messages.create_message(channel.id, "u-bob", "anyone there?", created_at=start_time + 1_000)
    await services.hub.wait_idle()

    assert _replies(services, channel.id) == []


@pytest.mark.asyncio
async def test_restart_resets_start_time(services) -> None:
    clock = itertools.count(start=1_000_000, step=1_000)
    services.listener.clock = lambda: next(clock)
    channel = await services.messages.create_dm_channel(["u-bob", AI_USER_ID])

    listener = await _started(services)
    first_start = listener.start_time
    listener.stop()
    await _started(services)

    assert listener.start_time > first_start
    assert listener.status()["state"] == "listening"
    assert listener.status()["active_channels"] == [channel.id]

    await services.messages.create_message(channel.id, "u-bob", "still there?", created_at=listener.start_time + 1)
    await services.hub.wait_idle()
    assert _replies(services, channel.id) == [NO_MATCHES_RESPONSE]
