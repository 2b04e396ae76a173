from __future__ import annotations

import pytest

from bookscope.config import (
    DEFAULT_CACHE_TTL,
    AnalysisConfig,
    BookscopeConfig,
    CacheConfig,
    LLMConfig,
    TextSourceConfig,
)


def test_llm_config_resolve_api_key_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    cfg = LLMConfig(api_key_env="CUSTOM", fallback_api_key_envs=("GROQ_API_KEY",))

    assert cfg.resolve_api_key(override="override-key") == "override-key"

    monkeypatch.setenv("CUSTOM", "primary-key")
    assert cfg.resolve_api_key() == "primary-key"

    monkeypatch.delenv("CUSTOM")
    monkeypatch.setenv("GROQ_API_KEY", "fallback-key")
    assert cfg.resolve_api_key() == "fallback-key"


def test_llm_config_provider_kwargs_merge() -> None:
    cfg = LLMConfig(
        model="base-model",
        base_url="https://example.com",
        temperature=0.3,
        max_tokens=256,
    )
    kwargs = cfg.provider_kwargs(api_key="inline-key", temperature=0.8)

    assert kwargs["model"] == "base-model"
    assert kwargs["base_url"] == "https://example.com"
    assert kwargs["api_key"] == "inline-key"
    assert kwargs["temperature"] == 0.8
    assert kwargs["max_tokens"] == 256


def test_defaults_without_environment() -> None:
    cfg = BookscopeConfig()

    assert cfg.llm.model == "openai/gpt-oss-20b"
    assert cfg.llm.base_url == "https://api.groq.com/openai/v1"
    assert cfg.llm.temperature == 0.7
    assert cfg.cache.default_ttl == DEFAULT_CACHE_TTL == 604800
    assert cfg.cache.is_remote is False
    assert cfg.text.max_text_length == 5000
    assert cfg.analysis.model_timeout == 120.0
    assert cfg.analysis.analysis_ttl is None


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("UPSTASH_REDIS_REST_URL", "https://cache.example")
    monkeypatch.setenv("UPSTASH_REDIS_REST_TOKEN", "token")
    monkeypatch.setenv("BOOKSCOPE_CACHE_TTL", "3600")
    monkeypatch.setenv("BOOKSCOPE_MAX_TEXT_LENGTH", "200")
    monkeypatch.setenv("BOOKSCOPE_MODEL_TIMEOUT", "15")
    monkeypatch.setenv("BOOKSCOPE_ANALYSIS_TTL", "86400")
    monkeypatch.setenv("GROQ_MODEL", "llama")

    cfg = BookscopeConfig()

    assert cfg.cache.is_remote is True
    assert cfg.cache.default_ttl == 3600
    assert cfg.text.max_text_length == 200
    assert cfg.analysis == AnalysisConfig(model_timeout=15.0, analysis_ttl=86400)
    assert cfg.as_provider_kwargs()["model"] == "llama"
    assert cfg.as_provider_kwargs(model="cli")["model"] == "cli"


def test_cache_config_requires_both_credentials() -> None:
    assert CacheConfig(url="https://cache.example", token=None).is_remote is False


def test_text_source_url_template() -> None:
    cfg = TextSourceConfig(base_url="https://mirror.example/files/")

    assert cfg.url_for("1342") == "https://mirror.example/files/1342/1342-0.txt"
