"""LangChain chat provider used for analysis and chat calls."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Any, List, Mapping, Sequence, Tuple

import httpx
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from ..config import DEFAULT_LLM_BASE_URL, DEFAULT_LLM_MODEL
from ..errors import ConfigurationError, RequestTimeout, UpstreamError

try:  # pragma: no cover - import guard for optional dependency
    from langchain_openai import ChatOpenAI
except ImportError:  # pragma: no cover - gracefully degrade when dependency missing
    ChatOpenAI = None  # type: ignore[assignment]

__all__ = [
    "ProviderError",
    "ProviderDependencyError",
    "ProviderSettings",
    "LangChainChatProvider",
    "build_provider",
    "to_langchain_messages",
    "message_text",
]

MessagesLike = Sequence[BaseMessage] | Sequence[Mapping[str, Any]]

DEFAULT_MODEL_ENVS: Tuple[str, ...] = ("BOOKSCOPE_MODEL", "GROQ_MODEL")
DEFAULT_API_KEY_ENVS: Tuple[str, ...] = ("BOOKSCOPE_API_KEY", "GROQ_API_KEY", "OPENAI_API_KEY")
DEFAULT_BASE_URL_ENVS: Tuple[str, ...] = ("BOOKSCOPE_BASE_URL", "GROQ_BASE_URL")
DEFAULT_TEMPERATURE_ENV = "GROQ_TEMPERATURE"
DEFAULT_MAX_TOKEN_ENV = "BOOKSCOPE_MAX_TOKENS"
DEFAULT_TEMPERATURE = 0.7

_ROLE_TO_MESSAGE = {
    "system": SystemMessage,
    "user": HumanMessage,
    "human": HumanMessage,
    "assistant": AIMessage,
    "ai": AIMessage,
}


class ProviderError(UpstreamError):
    """Raised when the chat model invocation fails."""


class ProviderDependencyError(ConfigurationError):
    """Raised when required dependencies are unavailable."""


@dataclass(slots=True)
class ProviderSettings:
    """Settings bundle for a chat provider."""

    model: str = DEFAULT_LLM_MODEL
    base_url: str | None = DEFAULT_LLM_BASE_URL
    api_key: str | None = None
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int | None = None
    timeout: float | None = None
    max_retries: int = 0

    def as_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "temperature": self.temperature,
            "max_retries": self.max_retries,
        }
        if self.base_url:
            kwargs["base_url"] = self.base_url
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.max_tokens is not None:
            kwargs["max_tokens"] = self.max_tokens
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        return kwargs


def to_langchain_messages(messages: MessagesLike) -> List[BaseMessage]:
    """Convert role-tagged mappings into LangChain message objects."""

    converted: List[BaseMessage] = []
    for message in messages:
        if isinstance(message, BaseMessage):
            converted.append(message)
            continue
        role = str(message.get("role", "user")).lower()
        message_cls = _ROLE_TO_MESSAGE.get(role)
        if message_cls is None:
            raise ValueError(f"Unsupported message role: {role!r}")
        converted.append(message_cls(content=str(message.get("content", ""))))
    return converted


def message_text(message: Any) -> str:
    """Flatten a chat model reply into plain text."""

    content = getattr(message, "content", message)
    if isinstance(content, list):
        text_chunks: List[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                text_chunks.append(str(item["text"]))
            else:
                text_chunks.append(str(item))
        return "".join(text_chunks)
    return "" if content is None else str(content)


class LangChainChatProvider:
    """Thin wrapper around ``langchain_openai.ChatOpenAI`` with safeguards."""

    def __init__(self, settings: ProviderSettings):
        if ChatOpenAI is None:
            raise ProviderDependencyError(
                "langchain-openai is required to instantiate LangChainChatProvider"
            )
        if not settings.api_key:
            raise ConfigurationError(
                "An API key is required; set BOOKSCOPE_API_KEY or GROQ_API_KEY"
            )
        self.settings = settings
        self._client = self._build_client(settings)

    def _build_client(self, settings: ProviderSettings):
        try:
            return ChatOpenAI(**settings.as_kwargs())  # type: ignore[arg-type]
        except Exception as exc:  # pragma: no cover - passthrough
            raise ConfigurationError(f"Failed to initialise chat model '{settings.model}': {exc}") from exc

    @property
    def model(self) -> str:
        return self.settings.model

    async def ainvoke(self, messages: MessagesLike, **kwargs: Any) -> Any:
        try:
            return await self._client.ainvoke(to_langchain_messages(messages), **kwargs)
        except ValueError:
            raise
        except Exception as exc:
            if _is_timeout(exc):
                raise RequestTimeout(f"Model call to '{self.settings.model}' timed out") from exc
            raise ProviderError(f"Invocation failed for model '{self.settings.model}': {exc}") from exc

    async def acomplete(self, messages: MessagesLike, **kwargs: Any) -> str:
        """Send ``messages`` and return the generated text."""

        return message_text(await self.ainvoke(messages, **kwargs))


def build_provider(
    *,
    model: str | None = None,
    model_envs: Sequence[str] | None = None,
    base_url: str | None = None,
    api_key: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    timeout: float | None = None,
    api_key_envs: Sequence[str] | None = None,
    base_url_envs: Sequence[str] | None = None,
) -> LangChainChatProvider:
    """Factory that mirrors CLI/env resolution for provider credentials."""

    model_env_value = _resolve_from_env(model_envs or DEFAULT_MODEL_ENVS)
    resolved_model = model or model_env_value or DEFAULT_LLM_MODEL
    resolved_base_url = base_url or _resolve_from_env(base_url_envs or DEFAULT_BASE_URL_ENVS) or DEFAULT_LLM_BASE_URL
    resolved_api_key = api_key or _resolve_from_env(api_key_envs or DEFAULT_API_KEY_ENVS)

    resolved_temperature = _coerce_float(
        temperature, os.getenv(DEFAULT_TEMPERATURE_ENV), default=DEFAULT_TEMPERATURE
    )
    resolved_max_tokens = _coerce_int(max_tokens, os.getenv(DEFAULT_MAX_TOKEN_ENV))

    settings = ProviderSettings(
        model=resolved_model,
        base_url=resolved_base_url,
        api_key=resolved_api_key,
        temperature=resolved_temperature,
        max_tokens=resolved_max_tokens,
        timeout=timeout,
    )
    return LangChainChatProvider(settings)


def _is_timeout(exc: BaseException) -> bool:
    """Detect client-side timeouts, which the OpenAI SDK wraps around httpx errors."""

    seen: BaseException | None = exc
    while seen is not None:
        if isinstance(seen, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)):
            return True
        seen = seen.__cause__ or seen.__context__
    return False


def _resolve_from_env(envs: Sequence[str]) -> str | None:
    for env_name in envs:
        value = os.getenv(env_name)
        if value:
            return value
    return None


def _coerce_float(explicit: float | None, env_value: str | None, *, default: float) -> float:
    if explicit is not None:
        return explicit
    if env_value is None:
        return default
    try:
        return float(env_value)
    except ValueError:  # pragma: no cover - defensive guard
        return default


def _coerce_int(explicit: int | None, env_value: str | None) -> int | None:
    if explicit is not None:
        return explicit
    if env_value is None:
        return None
    try:
        return int(env_value)
    except ValueError:  # pragma: no cover - defensive guard
        return None
