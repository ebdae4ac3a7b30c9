"""SQLite message store: chat messages, DM channels and user profiles."""

from __future__ import annotations

import sqlite3
from typing import Any, Callable, Iterable, Sequence

import orjson

from chat_rag.core.logging import get_logger
from chat_rag.db.sqlite import SQLiteDatabase, placeholders
from chat_rag.models.entities import ChatMessage, DMChannel
from chat_rag.stores.subscriptions import Change, ChangeCallback, ChangeType, Subscription, SubscriptionHub
from chat_rag.utils.ids import new_id
from chat_rag.utils.time import now_ms

logger = get_logger(__name__)

CHANNELS_TOPIC = "dm_channels"

_MESSAGE_COLUMNS = (
    "id, channel_id, workspace_id, user_id, content, thread_parent_id, "
    "is_edited, reactions, created_at, updated_at"
)
_CHANNEL_COLUMNS = "id, member_ids, typing_users, created_at, updated_at"


def _messages_topic(channel_id: str) -> str:
    return f"messages:{channel_id}"


class SQLiteMessageStore:
    """Message store collaborator backed by :class:`SQLiteDatabase`.

    Writes publish change events on the shared :class:`SubscriptionHub`, which
    is what the DM listener's live queries consume.

    Methods are coroutines but run sqlite synchronously on the event loop
    thread.
    """

    def __init__(
        self,
        db: SQLiteDatabase,
        hub: SubscriptionHub,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.db = db
        self.hub = hub
        self.clock = clock

    # Messages ---------------------------------------------------------

    async def get_message(self, message_id: str) -> ChatMessage | None:
        row = self.db.query_one(f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE id = ?", [message_id])
        return _row_to_message(row) if row else None

    async def get_messages(self, message_ids: Sequence[str]) -> dict[str, ChatMessage]:
        """Batch point-read; ids with no backing message are simply absent."""
        ids = list(dict.fromkeys(message_ids))
        if not ids:
            return {}
        rows = self.db.query(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE id IN ({placeholders(ids)})",
            ids,
        )
        return {row["id"]: _row_to_message(row) for row in rows}

    async def list_all_messages(self) -> list[ChatMessage]:
        rows = self.db.query(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE thread_parent_id IS NULL ORDER BY created_at, id"
        )
        return [_row_to_message(row) for row in rows]

    async def list_thread_replies(self, message_id: str) -> list[ChatMessage]:
        rows = self.db.query(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE thread_parent_id = ? ORDER BY created_at, id",
            [message_id],
        )
        return [_row_to_message(row) for row in rows]

    async def create_message(
        self,
        channel_id: str,
        user_id: str,
        content: str,
        workspace_id: str | None = None,
        thread_parent_id: str | None = None,
        created_at: int | None = None,
        message_id: str | None = None,
    ) -> str:
        now = self.clock()
        message = ChatMessage(
            id=message_id or new_id("msg"),
            content=content,
            user_id=user_id,
            channel_id=channel_id,
            workspace_id=workspace_id,
            thread_parent_id=thread_parent_id,
            created_at=created_at if created_at is not None else now,
            updated_at=now,
        )
        self.db.execute(
            f"INSERT INTO messages ({_MESSAGE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, 0, '{{}}', ?, ?)",
            [
                message.id,
                message.channel_id,
                message.workspace_id,
                message.user_id,
                message.content,
                message.thread_parent_id,
                message.created_at,
                message.updated_at,
            ],
        )
        self.db.commit()
        if thread_parent_id is None:
            self.hub.publish(_messages_topic(channel_id), "added", message)
        return message.id

    async def delete_message(self, message_id: str) -> None:
        self.db.execute("DELETE FROM messages WHERE id = ?", [message_id])
        self.db.commit()

    # Users ------------------------------------------------------------

    async def upsert_user(self, user_id: str, display_name: str | None) -> None:
        self.db.execute(
            """
            INSERT INTO users (id, display_name, created_at) VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET display_name = excluded.display_name
            """,
            [user_id, display_name, self.clock()],
        )
        self.db.commit()

    async def get_user_names(self, user_ids: Iterable[str]) -> dict[str, str]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        rows = self.db.query(
            f"SELECT id, display_name FROM users WHERE id IN ({placeholders(ids)})",
            ids,
        )
        return {row["id"]: row["display_name"] for row in rows if row["display_name"]}

    # DM channels ------------------------------------------------------

    async def create_dm_channel(self, member_ids: Sequence[str], channel_id: str | None = None) -> DMChannel:
        now = self.clock()
        channel = DMChannel(
            id=channel_id or new_id("dm"),
            member_ids=list(member_ids),
            created_at=now,
            updated_at=now,
        )
        self.db.execute(
            f"INSERT INTO dm_channels ({_CHANNEL_COLUMNS}) VALUES (?, ?, '{{}}', ?, ?)",
            [channel.id, _dumps(channel.member_ids), now, now],
        )
        self.db.commit()
        self.hub.publish(CHANNELS_TOPIC, "added", channel)
        return channel

    async def get_channel(self, channel_id: str) -> DMChannel | None:
        row = self.db.query_one(f"SELECT {_CHANNEL_COLUMNS} FROM dm_channels WHERE id = ?", [channel_id])
        return _row_to_channel(row) if row else None

    async def set_typing(self, channel_id: str, user_id: str, is_typing: bool) -> None:
        channel = await self.get_channel(channel_id)
        if channel is None:
            raise LookupError(f"DM channel {channel_id} not found")
        now = self.clock()
        channel.typing_users[user_id] = now if is_typing else None
        channel.updated_at = now
        self.db.execute(
            "UPDATE dm_channels SET typing_users = ?, updated_at = ? WHERE id = ?",
            [_dumps(channel.typing_users), now, channel_id],
        )
        self.db.commit()
        self.hub.publish(CHANNELS_TOPIC, "modified", channel)

    # Live queries -----------------------------------------------------

    async def subscribe_to_channel_set(self, member_id: str, callback: ChangeCallback) -> Subscription:
        """Watch DM channels whose member list contains ``member_id``."""
        rows = self.db.query(
            f"""
            SELECT {_CHANNEL_COLUMNS} FROM dm_channels
            WHERE EXISTS (SELECT 1 FROM json_each(dm_channels.member_ids) WHERE json_each.value = ?)
            ORDER BY created_at, id
            """,
            [member_id],
        )
        initial = [_row_to_channel(row) for row in rows]
        seen = {channel.id for channel in initial}

        def select(change_type: ChangeType, channel: DMChannel) -> list[Change]:
            is_member = member_id in channel.member_ids
            if channel.id in seen:
                if is_member:
                    return [Change("modified", channel)]
                seen.discard(channel.id)
                return [Change("removed", channel)]
            if is_member:
                seen.add(channel.id)
                return [Change("added", channel)]
            return []

        return self.hub.subscribe(
            CHANNELS_TOPIC,
            callback,
            select,
            snapshot=[Change("added", channel) for channel in initial],
            name=f"channels:{member_id}",
        )

    async def subscribe_to_channel_messages(
        self,
        channel_id: str,
        after: int,
        callback: ChangeCallback,
        limit: int = 1,
    ) -> Subscription:
        """Watch the newest ``limit`` top-level messages created after ``after``.

        Only messages that enter the newest-first window are reported, so an
        insert older than the current newest message produces no event.
        """
        rows = self.db.query(
            f"""
            SELECT {_MESSAGE_COLUMNS} FROM messages
            WHERE channel_id = ? AND created_at > ? AND thread_parent_id IS NULL
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            [channel_id, after, limit],
        )
        initial = [_row_to_message(row) for row in rows]
        window = {"newest": initial[0].created_at if initial else after}

        def select(change_type: ChangeType, message: ChatMessage) -> list[Change]:
            if change_type != "added" or message.created_at <= after:
                return []
            if message.created_at < window["newest"]:
                return []
            window["newest"] = message.created_at
            return [Change("added", message)]

        return self.hub.subscribe(
            _messages_topic(channel_id),
            callback,
            select,
            snapshot=[Change("added", message) for message in initial],
            name=f"messages:{channel_id}",
        )


def _dumps(value: Any) -> str:
    return orjson.dumps(value).decode("utf-8")


def _row_to_message(row: sqlite3.Row) -> ChatMessage:
    return ChatMessage(
        id=row["id"],
        content=row["content"] or "",
        user_id=row["user_id"],
        channel_id=row["channel_id"],
        workspace_id=row["workspace_id"],
        thread_parent_id=row["thread_parent_id"],
        created_at=int(row["created_at"]),
        updated_at=int(row["updated_at"]) if row["updated_at"] is not None else None,
        is_edited=bool(row["is_edited"]),
        reactions=orjson.loads(row["reactions"]) if row["reactions"] else {},
    )


def _row_to_channel(row: sqlite3.Row) -> DMChannel:
    return DMChannel(
        id=row["id"],
        member_ids=orjson.loads(row["member_ids"]),
        typing_users=orjson.loads(row["typing_users"]) if row["typing_users"] else {},
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


__all__ = ["SQLiteMessageStore", "CHANNELS_TOPIC"]
