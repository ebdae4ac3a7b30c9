"""Language model access for answer synthesis."""

from __future__ import annotations

from typing import Optional, Protocol

from openai import AsyncOpenAI

from chat_rag.core.logging import get_logger

logger = get_logger(__name__)


class LanguageModel(Protocol):
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> str | None: ...


class OpenAIChatModel:
    """Chat completions through ``AsyncOpenAI``; returns the first choice's text."""

    def __init__(self, model_name: str, api_key: str | None = None, client: Optional[AsyncOpenAI] = None) -> None:
        self.model_name = model_name
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> str | None:
        response = await self._get_client().chat.completions.create(
            model=self.model_name,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=max_tokens,
            temperature=temperature,
        )
        if not response.choices:
            return None
        if response.usage is not None:
            logger.debug(
                "Completion usage",
                extra={
                    "ctx_model": self.model_name,
                    "ctx_prompt_tokens": response.usage.prompt_tokens,
                    "ctx_completion_tokens": response.usage.completion_tokens,
                },
            )
        return response.choices[0].message.content


__all__ = ["LanguageModel", "OpenAIChatModel"]
