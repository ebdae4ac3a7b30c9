"""Text extraction for uploaded documents."""

from __future__ import annotations

import asyncio

import fitz

from chat_rag.core.errors import ExtractionError, UnsupportedFileType
from chat_rag.core.logging import get_logger

logger = get_logger(__name__)

PDF_TYPES = frozenset({"pdf", "application/pdf"})
TEXT_TYPES = frozenset({"plain-text", "text/plain"})
MIN_TEXT_LENGTH = 10


async def extract_text(raw: bytes, file_type: str | None, min_length: int = MIN_TEXT_LENGTH) -> str:
    """Return the document text, rejecting files that yield almost nothing."""
    kind = (file_type or "").lower()
    if kind in PDF_TYPES:
        text = await asyncio.to_thread(_pdf_text, raw)
    elif kind in TEXT_TYPES:
        text = raw.decode("utf-8", errors="replace")
    else:
        raise UnsupportedFileType(file_type)

    if len(text) < min_length:
        raise ExtractionError(
            f"Extracted only {len(text)} characters; the document might be scanned or image-based",
            text_length=len(text),
        )
    if kind in PDF_TYPES and len(text) < 100:
        logger.warning("Very little text extracted from PDF (%s characters)", len(text))
    return text


def _pdf_text(raw: bytes) -> str:
    try:
        with fitz.open(stream=raw, filetype="pdf") as doc:
            pages = [page.get_text("text", sort=True) for page in doc]
    except (RuntimeError, ValueError) as exc:
        raise ExtractionError(f"Could not read PDF: {exc}") from exc
    return "\n\n".join(pages).strip()


__all__ = ["extract_text", "PDF_TYPES", "TEXT_TYPES"]
