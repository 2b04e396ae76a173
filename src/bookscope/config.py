"""Dataclass-driven configuration for the bookscope services."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Iterable

__all__ = [
    "DEFAULT_CACHE_TTL",
    "LLMConfig",
    "CacheConfig",
    "TextSourceConfig",
    "AnalysisConfig",
    "BookscopeConfig",
]

DEFAULT_CACHE_TTL = 60 * 60 * 24 * 7
DEFAULT_LLM_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_LLM_MODEL = "openai/gpt-oss-20b"
DEFAULT_GUTENBERG_BASE_URL = "https://www.gutenberg.org/files"
DEFAULT_USER_AGENT = "BookAnalyzer/1.0 (https://github.com/your-repo)"


def _env_str(*names: str, default: str | None = None) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


def _env_float(name: str, default: float | None = None) -> float | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:  # pragma: no cover - defensive guard
        return default


def _env_int(name: str, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:  # pragma: no cover - defensive guard
        return default


@dataclass(slots=True)
class LLMConfig:
    """Configuration for the OpenAI-compatible chat provider."""

    model: str = field(default_factory=lambda: _env_str("BOOKSCOPE_MODEL", "GROQ_MODEL", default=DEFAULT_LLM_MODEL))
    base_url: str | None = field(
        default_factory=lambda: _env_str("BOOKSCOPE_BASE_URL", "GROQ_BASE_URL", default=DEFAULT_LLM_BASE_URL)
    )
    temperature: float = field(default_factory=lambda: _env_float("GROQ_TEMPERATURE", 0.7))
    max_tokens: int | None = field(default_factory=lambda: _env_int("BOOKSCOPE_MAX_TOKENS"))
    api_key_env: str = "BOOKSCOPE_API_KEY"
    fallback_api_key_envs: tuple[str, ...] = ("GROQ_API_KEY", "OPENAI_API_KEY")

    def resolve_api_key(self, override: str | None = None) -> str | None:
        if override:
            return override
        env_candidates: Iterable[str | None] = (self.api_key_env, *self.fallback_api_key_envs)
        for name in env_candidates:
            if not name:
                continue
            value = os.getenv(name)
            if value:
                return value
        return None

    def provider_kwargs(
        self,
        *,
        model: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, object | None]:
        return {
            "model": model or self.model,
            "base_url": base_url or self.base_url,
            "api_key": api_key if api_key is not None else self.resolve_api_key(),
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": self.max_tokens if max_tokens is None else max_tokens,
        }


@dataclass(slots=True)
class CacheConfig:
    """Connection details and expiry policy for the key-value cache."""

    url: str | None = field(default_factory=lambda: _env_str("UPSTASH_REDIS_REST_URL"))
    token: str | None = field(default_factory=lambda: _env_str("UPSTASH_REDIS_REST_TOKEN"))
    default_ttl: int = field(default_factory=lambda: _env_int("BOOKSCOPE_CACHE_TTL", DEFAULT_CACHE_TTL) or DEFAULT_CACHE_TTL)
    request_timeout: float = 5.0

    @property
    def is_remote(self) -> bool:
        return bool(self.url and self.token)


@dataclass(slots=True)
class TextSourceConfig:
    """Settings for fetching book text from Project Gutenberg."""

    base_url: str = field(default_factory=lambda: _env_str("BOOKSCOPE_GUTENBERG_URL", default=DEFAULT_GUTENBERG_BASE_URL))
    timeout: float = 10.0
    max_text_length: int = field(default_factory=lambda: _env_int("BOOKSCOPE_MAX_TEXT_LENGTH", 5000) or 5000)
    truncation_marker: str = "..."
    user_agent: str = DEFAULT_USER_AGENT

    def url_for(self, book_id: str) -> str:
        return f"{self.base_url.rstrip('/')}/{book_id}/{book_id}-0.txt"


@dataclass(slots=True)
class AnalysisConfig:
    """Knobs for the analysis pipeline.

    ``analysis_ttl`` of ``None`` stores analysis entries with the cache's
    default expiry. ``model_timeout`` of ``None`` disables the model deadline.
    """

    model_timeout: float | None = field(default_factory=lambda: _env_float("BOOKSCOPE_MODEL_TIMEOUT", 120.0))
    analysis_ttl: int | None = field(default_factory=lambda: _env_int("BOOKSCOPE_ANALYSIS_TTL"))


@dataclass(slots=True)
class BookscopeConfig:
    """Primary configuration entry point."""

    llm: LLMConfig = field(default_factory=LLMConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    text: TextSourceConfig = field(default_factory=TextSourceConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)

    def as_provider_kwargs(self, **overrides: object) -> dict[str, object | None]:
        return self.llm.provider_kwargs(**overrides)
