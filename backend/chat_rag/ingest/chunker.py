"""Chunking utilities."""

from __future__ import annotations

import re
from typing import Iterator

_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_SENTENCE_RE = re.compile(r"[^.!?]*[.!?]+|[^.!?]+$")

DEFAULT_MAX_LEN = 4000


def chunk_text(text: str, max_len: int = DEFAULT_MAX_LEN) -> list[str]:
    """Split text into chunks of at most ``max_len`` characters.

    Paragraphs (blank-line separated) are packed greedily; a paragraph that is
    itself too long is packed sentence by sentence. Sentences are never split,
    so a single sentence longer than ``max_len`` becomes its own chunk.
    """
    if max_len <= 0:
        raise ValueError("max_len must be positive")
    if len(text) <= max_len:
        return [text]

    chunks: list[str] = []
    buffer = ""
    for paragraph in _PARAGRAPH_RE.split(text):
        if len(paragraph) > max_len:
            for sentence in _iter_sentences(paragraph):
                buffer = _append(chunks, buffer, sentence, " ", max_len)
            continue
        buffer = _append(chunks, buffer, paragraph, "\n\n", max_len)
    _flush(chunks, buffer)
    return chunks


def _append(chunks: list[str], buffer: str, piece: str, separator: str, max_len: int) -> str:
    candidate = f"{buffer}{separator}{piece}" if buffer else piece
    if buffer and len(candidate.strip()) > max_len:
        _flush(chunks, buffer)
        return piece
    return candidate


def _flush(chunks: list[str], buffer: str) -> None:
    trimmed = buffer.strip()
    if trimmed:
        chunks.append(trimmed)


def _iter_sentences(paragraph: str) -> Iterator[str]:
    for match in _SENTENCE_RE.finditer(paragraph):
        sentence = match.group().strip()
        if sentence:
            yield sentence


__all__ = ["chunk_text", "DEFAULT_MAX_LEN"]
