"""Object storage access for uploaded files."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import httpx

from chat_rag.core.errors import StorageFetchError
from chat_rag.core.logging import get_logger

logger = get_logger(__name__)


class ObjectStorage:
    """Fetch raw bytes for a storage URL.

    ``http(s)`` URLs (signed download links) go through a shared
    ``httpx.AsyncClient``; ``file://`` URLs and bare paths are read from disk.
    """

    def __init__(self, timeout: float = 30.0) -> None:
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch_bytes(self, url: str) -> bytes:
        parsed = urlparse(url)
        if parsed.scheme in ("http", "https"):
            return await self._fetch_remote(url)
        if parsed.scheme in ("", "file"):
            path = Path(unquote(parsed.path) if parsed.scheme == "file" else url).expanduser()
            try:
                return await asyncio.to_thread(path.read_bytes)
            except OSError as exc:
                raise StorageFetchError(url, str(exc)) from exc
        raise StorageFetchError(url, f"unsupported scheme {parsed.scheme!r}")

    async def _fetch_remote(self, url: str) -> bytes:
        client = await self._get_client()
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise StorageFetchError(url, str(exc)) from exc
        logger.debug("Fetched %s bytes from storage", len(response.content))
        return response.content


__all__ = ["ObjectStorage"]
