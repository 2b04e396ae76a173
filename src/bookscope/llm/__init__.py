"""LLM tooling for bookscope."""

from .providers import (
    LangChainChatProvider,
    ProviderDependencyError,
    ProviderError,
    ProviderSettings,
    build_provider,
    message_text,
    to_langchain_messages,
)

__all__ = [
    "LangChainChatProvider",
    "ProviderError",
    "ProviderDependencyError",
    "ProviderSettings",
    "build_provider",
    "message_text",
    "to_langchain_messages",
]
