"""Internal dataclasses representing persisted entities."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class ChatMessage:
    id: str
    content: str
    user_id: str
    channel_id: str
    created_at: int
    workspace_id: str | None = None
    thread_parent_id: str | None = None
    updated_at: int | None = None
    is_edited: bool = False
    reactions: dict[str, list[str]] = field(default_factory=dict)


@dataclass(slots=True)
class DMChannel:
    id: str
    member_ids: list[str]
    typing_users: dict[str, int | None] = field(default_factory=dict)
    created_at: int | None = None
    updated_at: int | None = None

    def is_typing(self, user_id: str) -> bool:
        return self.typing_users.get(user_id) is not None


@dataclass(slots=True)
class SourceDocument:
    id: str
    workspace_id: str
    channel_id: str
    uploader_id: str
    file_name: str
    file_type: str
    storage_url: str
    text_content: str | None = None
    text_length: int | None = None
    vectorized: bool = False
    vectorized_at: int | None = None
    total_chunks: int = 0
    processed_chunks: int = 0
    created_at: int | None = None
    updated_at: int | None = None


__all__ = ["ChatMessage", "DMChannel", "SourceDocument"]
