"""Exception taxonomy shared by ingestion, retrieval and the listener."""

from __future__ import annotations


class ChatRagError(Exception):
    """Base exception carrying a message that is safe to show to end users."""

    default_user_message = "Sorry, something went wrong. Please try again."

    def __init__(self, message: str, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message or self.default_user_message


class UnsupportedFileType(ChatRagError):
    def __init__(self, file_type: str | None) -> None:
        self.file_type = file_type
        super().__init__(
            f"Unsupported file type: {file_type!r}",
            "Only PDF and plain-text documents can be processed.",
        )


class ExtractionError(ChatRagError):
    """Raised when a document yields too little text to be useful."""

    def __init__(self, message: str, text_length: int = 0) -> None:
        self.text_length = text_length
        super().__init__(
            message,
            "Could not extract sufficient text from the document. It might be scanned or image-based.",
        )


class StorageFetchError(ChatRagError):
    def __init__(self, url: str, message: str) -> None:
        self.url = url
        super().__init__(f"Failed to fetch {url}: {message}", "The document could not be downloaded.")


class EmbeddingError(ChatRagError):
    default_user_message = "The embedding service is unavailable. Please try again."


class IndexUnavailable(ChatRagError):
    """The vector index reported a "not found" class failure."""

    default_user_message = "The search index is unavailable. Please try again."


class IngestionFailed(ChatRagError):
    def __init__(self, document_id: str, chunk_index: int, cause: Exception) -> None:
        self.document_id = document_id
        self.chunk_index = chunk_index
        super().__init__(
            f"Failed to ingest chunk {chunk_index} of document {document_id}: {cause}",
            "The document could not be fully processed.",
        )


class DocumentNotFound(ChatRagError):
    def __init__(self, document_id: str) -> None:
        self.document_id = document_id
        super().__init__(f"Document {document_id} not found", "Document not found.")


class RAGProcessingError(ChatRagError):
    default_user_message = "Failed to process query"


class InvalidQuery(ChatRagError):
    default_user_message = "Invalid query"


class InvalidAction(ChatRagError):
    default_user_message = 'Invalid action. Use "start" or "stop".'


__all__ = [
    "ChatRagError",
    "UnsupportedFileType",
    "ExtractionError",
    "StorageFetchError",
    "EmbeddingError",
    "IndexUnavailable",
    "IngestionFailed",
    "DocumentNotFound",
    "RAGProcessingError",
    "InvalidQuery",
    "InvalidAction",
]
