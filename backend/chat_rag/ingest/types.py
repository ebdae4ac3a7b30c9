"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class IngestResult:
    """Outcome of vectorizing one source document."""

    document_id: str
    processed_chunks: int
    total_chunks: int
    text_length: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "processed_chunks": self.processed_chunks,
            "total_chunks": self.total_chunks,
            "text_length": self.text_length,
        }


@dataclass(slots=True)
class BatchFailure:
    id: str
    reason: str


@dataclass(slots=True)
class BatchResult:
    """Aggregated statistics for the message batch job."""

    attempted: int = 0
    succeeded: int = 0
    skipped: int = 0
    failures: list[BatchFailure] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.succeeded

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "processed": self.processed,
            "skipped": self.skipped,
            "failures": [{"id": f.id, "reason": f.reason} for f in self.failures],
        }


__all__ = ["IngestResult", "BatchFailure", "BatchResult"]
