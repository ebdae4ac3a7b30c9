"""Test fixtures for chat-rag."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from chat_rag.api.dependencies import ServiceContainer, build_services  # noqa: E402
from chat_rag.core.config import Settings, get_settings  # noqa: E402

AI_USER_ID = "rag-ai"


class FakeLanguageModel:
    """Scripted stand-in for the chat model."""

    def __init__(self, reply: str | None = "Here is what I found.") -> None:
        self.reply = reply
        self.error: Exception | None = None
        self.calls: list[dict[str, Any]] = []

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int, temperature: float) -> str | None:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Isolate configuration between tests."""
    monkeypatch.setenv("CHRAG_DB_PATH", str(tmp_path / "env.db"))
    monkeypatch.delenv("CHRAG_CONFIG", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "chat.db",
        embedding_backend="hashed",
        embedding_dim=1024,
        vector_backend="memory",
        ingest_delay_seconds=0.0,
        ai_user_id=AI_USER_ID,
    )


@pytest.fixture
def fake_llm() -> FakeLanguageModel:
    return FakeLanguageModel()


@pytest_asyncio.fixture
async def services(settings: Settings, fake_llm: FakeLanguageModel):
    container = build_services(settings, llm=fake_llm)
    yield container
    await container.close()
    # Let closed subscription tasks observe their shutdown sentinel.
    await asyncio.sleep(0)


@pytest.fixture
def sync_services(settings: Settings, fake_llm: FakeLanguageModel) -> ServiceContainer:
    """Container for TestClient based tests; the app lifespan closes it."""
    return build_services(settings, llm=fake_llm)

