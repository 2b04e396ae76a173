"""Shared fixtures for the test suite."""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Iterable, Sequence

import httpx
import pytest
from langchain_core.messages import AIMessage

from bookscope.cache import InMemoryCacheStore, KeyValueCache
from bookscope.config import TextSourceConfig
from bookscope.text_source import GutenbergTextSource

ENV_VARS = {
    "BOOKSCOPE_MODEL",
    "GROQ_MODEL",
    "BOOKSCOPE_API_KEY",
    "GROQ_API_KEY",
    "OPENAI_API_KEY",
    "BOOKSCOPE_BASE_URL",
    "GROQ_BASE_URL",
    "GROQ_TEMPERATURE",
    "BOOKSCOPE_MAX_TOKENS",
    "BOOKSCOPE_CACHE_TTL",
    "BOOKSCOPE_GUTENBERG_URL",
    "BOOKSCOPE_MAX_TEXT_LENGTH",
    "BOOKSCOPE_MODEL_TIMEOUT",
    "BOOKSCOPE_ANALYSIS_TTL",
    "UPSTASH_REDIS_REST_URL",
    "UPSTASH_REDIS_REST_TOKEN",
}


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure provider and cache environment variables do not leak between tests."""

    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class FakeChatProvider:
    """Scripted stand-in for :class:`LangChainChatProvider`."""

    def __init__(self, reply: str = "{}", *, delay: float = 0.0) -> None:
        self.reply = reply
        self.delay = delay
        self.calls: list[list[Any]] = []

    async def acomplete(self, messages: Sequence[Any], **kwargs: Any) -> str:
        self.calls.append(list(messages))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.reply


class FailingStore:
    """Cache store whose every operation raises."""

    async def get(self, key: str) -> str | None:
        raise ConnectionError("cache unreachable")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        raise ConnectionError("cache unreachable")

    async def delete(self, key: str) -> None:
        raise ConnectionError("cache unreachable")

    async def exists(self, key: str) -> int:
        raise ConnectionError("cache unreachable")


@pytest.fixture
def memory_store() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture
def cache(memory_store: InMemoryCacheStore) -> KeyValueCache:
    return KeyValueCache(memory_store)


@pytest.fixture
def fake_provider() -> FakeChatProvider:
    return FakeChatProvider()


@pytest.fixture
def gutenberg_factory(cache: KeyValueCache) -> Callable[..., tuple[GutenbergTextSource, list[httpx.Request]]]:
    """Build a text source whose HTTP traffic is served by ``handler``."""

    def _factory(
        handler: Callable[[httpx.Request], httpx.Response],
        *,
        config: TextSourceConfig | None = None,
        kv_cache: KeyValueCache | None = None,
    ) -> tuple[GutenbergTextSource, list[httpx.Request]]:
        seen: list[httpx.Request] = []

        def _recording_handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        source = GutenbergTextSource(
            kv_cache or cache,
            config or TextSourceConfig(),
            transport=httpx.MockTransport(_recording_handler),
        )
        return source, seen

    return _factory


def text_response(body: str, status_code: int = 200) -> Callable[[httpx.Request], httpx.Response]:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, text=body)

    return _handler


def raising(exc_factory: Callable[[httpx.Request], Exception]) -> Callable[[httpx.Request], httpx.Response]:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise exc_factory(request)

    return _handler


def flatten(messages: Iterable[Any]) -> str:
    return "\n".join(str(getattr(message, "content", message)) for message in messages)


@pytest.fixture
def dummy_chat_model(monkeypatch: pytest.MonkeyPatch):
    """Patch the LangChain chat client used by the provider abstraction."""

    from bookscope.llm import providers

    class DummyChatModel:
        reply: Any = "dummy reply"
        error: Exception | None = None

        def __init__(self, **kwargs: Any) -> None:
            self.kwargs = kwargs
            self.invocations: list[tuple[tuple[Any, ...], dict[str, Any]]] = []

        async def ainvoke(self, messages: Iterable[Any], **kwargs: Any) -> Any:
            self.invocations.append((tuple(messages), dict(kwargs)))
            if self.error is not None:
                raise self.error
            return AIMessage(content=self.reply)

    monkeypatch.setattr(providers, "ChatOpenAI", DummyChatModel)
    return DummyChatModel
