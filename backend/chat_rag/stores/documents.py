"""SQLite document store for uploaded source documents."""

from __future__ import annotations

import sqlite3
from typing import Any, Callable, Sequence

from chat_rag.db.sqlite import SQLiteDatabase, placeholders
from chat_rag.models.entities import SourceDocument
from chat_rag.utils.ids import new_id
from chat_rag.utils.time import now_ms

_COLUMNS = (
    "id, workspace_id, channel_id, uploader_id, file_name, file_type, storage_url, "
    "text_content, text_length, vectorized, vectorized_at, total_chunks, processed_chunks, "
    "created_at, updated_at"
)
_UPDATABLE = frozenset(
    {
        "text_content",
        "text_length",
        "vectorized",
        "vectorized_at",
        "total_chunks",
        "processed_chunks",
    }
)


class SQLiteDocumentStore:
    """Document rows; the coroutines run sqlite synchronously on the event loop thread."""

    def __init__(self, db: SQLiteDatabase, clock: Callable[[], int] = now_ms) -> None:
        self.db = db
        self.clock = clock

    async def create_document(
        self,
        workspace_id: str,
        channel_id: str,
        uploader_id: str,
        file_name: str,
        file_type: str,
        storage_url: str,
        document_id: str | None = None,
    ) -> SourceDocument:
        now = self.clock()
        document = SourceDocument(
            id=document_id or new_id("doc"),
            workspace_id=workspace_id,
            channel_id=channel_id,
            uploader_id=uploader_id,
            file_name=file_name,
            file_type=file_type,
            storage_url=storage_url,
            created_at=now,
            updated_at=now,
        )
        self.db.execute(
            """
            INSERT INTO documents (
              id, workspace_id, channel_id, uploader_id, file_name, file_type, storage_url,
              vectorized, total_chunks, processed_chunks, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, 0, 0, 0, ?, ?)
            """,
            [
                document.id,
                workspace_id,
                channel_id,
                uploader_id,
                file_name,
                file_type,
                storage_url,
                now,
                now,
            ],
        )
        self.db.commit()
        return document

    async def get_document(self, document_id: str) -> SourceDocument | None:
        row = self.db.query_one(f"SELECT {_COLUMNS} FROM documents WHERE id = ?", [document_id])
        return _row_to_document(row) if row else None

    async def get_documents(self, document_ids: Sequence[str]) -> dict[str, SourceDocument]:
        ids = list(dict.fromkeys(document_ids))
        if not ids:
            return {}
        rows = self.db.query(f"SELECT {_COLUMNS} FROM documents WHERE id IN ({placeholders(ids)})", ids)
        return {row["id"]: _row_to_document(row) for row in rows}

    async def update_document(self, document_id: str, **fields: Any) -> None:
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update document fields: {', '.join(sorted(unknown))}")
        if not fields:
            return
        assignments = [f"{name} = ?" for name in fields]
        params: list[Any] = [int(value) if isinstance(value, bool) else value for value in fields.values()]
        assignments.append("updated_at = ?")
        params.extend([self.clock(), document_id])
        self.db.execute(f"UPDATE documents SET {', '.join(assignments)} WHERE id = ?", params)
        self.db.commit()

    async def delete_document(self, document_id: str) -> None:
        self.db.execute("DELETE FROM documents WHERE id = ?", [document_id])
        self.db.commit()


def _row_to_document(row: sqlite3.Row) -> SourceDocument:
    return SourceDocument(
        id=row["id"],
        workspace_id=row["workspace_id"],
        channel_id=row["channel_id"],
        uploader_id=row["uploader_id"],
        file_name=row["file_name"],
        file_type=row["file_type"],
        storage_url=row["storage_url"],
        text_content=row["text_content"],
        text_length=row["text_length"],
        vectorized=bool(row["vectorized"]),
        vectorized_at=row["vectorized_at"],
        total_chunks=row["total_chunks"],
        processed_chunks=row["processed_chunks"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


__all__ = ["SQLiteDocumentStore"]
