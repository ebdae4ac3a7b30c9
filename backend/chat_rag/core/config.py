"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "CHRAG_"
DEFAULT_CONFIG_PATH = Path("~/.config/chat-rag/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("storage", "timeout"): "storage_timeout",
    ("embeddings", "backend"): "embedding_backend",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("openai", "api_key"): "openai_api_key",
    ("pinecone", "api_key"): "pinecone_api_key",
    ("pinecone", "index"): "pinecone_index",
    ("index", "backend"): "vector_backend",
    ("llm", "model"): "chat_model",
    ("llm", "max_tokens"): "max_tokens",
    ("llm", "temperature"): "temperature",
    ("retrieval", "top_k"): "top_k",
    ("retrieval", "similarity_threshold"): "similarity_threshold",
    ("ingest", "chunk_max_len"): "chunk_max_len",
    ("ingest", "min_chunk_length"): "min_chunk_length",
    ("ingest", "min_text_length"): "min_text_length",
    ("ingest", "delay_seconds"): "ingest_delay_seconds",
    ("listener", "ai_user_id"): "ai_user_id",
}

# Provider keys are commonly exported under their vendor names.
_VENDOR_ENV_FALLBACKS: Mapping[str, str] = {
    "OPENAI_API_KEY": "openai_api_key",
    "PINECONE_API_KEY": "pinecone_api_key",
    "PINECONE_INDEX": "pinecone_index",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".chat-rag" / "chat.db")
    storage_timeout: float = 30.0
    embedding_backend: Literal["openai", "hashed"] = "openai"
    embedding_model: str = "text-embedding-3-large"
    embedding_dim: int = 3072
    openai_api_key: str | None = None
    vector_backend: Literal["pinecone", "memory"] = "pinecone"
    pinecone_api_key: str | None = None
    pinecone_index: str = "tg-rag-project-index"
    chat_model: str = "gpt-4o-mini"
    max_tokens: int = Field(default=500, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_k: int = Field(default=15, ge=1)
    similarity_threshold: float = 0.3
    chunk_max_len: int = Field(default=4000, ge=1)
    min_chunk_length: int = 10
    min_text_length: int = 10
    ingest_delay_seconds: float = Field(default=0.1, ge=0.0)
    ai_user_id: str = "rag-ai"

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map CHRAG_ variables (and vendor key fallbacks) into Settings fields."""
    overrides: dict[str, Any] = {}
    for env_name, field_name in _VENDOR_ENV_FALLBACKS.items():
        value = os.environ.get(env_name)
        if value:
            overrides[field_name] = value
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
