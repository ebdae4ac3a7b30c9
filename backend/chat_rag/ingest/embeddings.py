"""Embedding utilities."""

from __future__ import annotations

import hashlib
import math
import re
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from chat_rag.core.errors import EmbeddingError
from chat_rag.core.logging import get_logger

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"\w+")


class EmbeddingClient:
    """Turn text into a dense vector, one provider call per ``embed``.

    Backends:
    - ``openai``: OpenAI embeddings API via ``AsyncOpenAI``.
    - ``hashed``: deterministic hashed bag-of-words vectors, for offline use.

    No caching is done here; retry policy belongs to the caller.
    """

    def __init__(
        self,
        backend: str = "openai",
        model_name: str = "text-embedding-3-large",
        dim: int = 3072,
        api_key: str | None = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        if backend not in ("openai", "hashed"):
            raise ValueError(f"Unknown embedding backend: {backend}")
        self.backend = backend
        self.model_name = model_name
        self._dim = dim
        self._api_key = api_key
        self._client = client

    @property
    def dim(self) -> int:
        return self._dim

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")
        if self.backend == "hashed":
            return _hashed_vector(text, self._dim)
        try:
            response = await self._get_client().embeddings.create(model=self.model_name, input=text)
        except OpenAIError as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc
        if not response.data or not response.data[0].embedding:
            raise EmbeddingError("Embedding provider returned an empty response")
        return list(response.data[0].embedding)


def _hashed_vector(text: str, dim: int) -> list[float]:
    vector = [0.0] * dim
    for token in _TOKEN_RE.findall(text.lower()):
        vector[_hash_token(token, dim)] += 1.0
    _normalize(vector)
    return vector


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = ["EmbeddingClient"]
