"""System-prompted agents for book analysis and conversation."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Protocol, Sequence

from langchain_core.messages import BaseMessage, SystemMessage

from ..llm.providers import to_langchain_messages

__all__ = [
    "ANALYSIS_RESPONSE_SHAPE",
    "ChatAgent",
    "ChatProvider",
    "book_analysis_agent",
    "book_chat_agent",
]

ANALYSIS_RESPONSE_SHAPE: Dict[str, Any] = {
    "title": "The full title of the book as it appears in the text",
    "author": "Author's full name",
    "characters": [
        {
            "name": "Primary Character Name",
            "description": "Brief description of the character",
            "importance": "protagonist|major|supporting|minor|background",
            "moral_category": "heroic|villainous|neutral|deceptive|supportive|antagonistic",
            "relationships": [
                {
                    "target": "Name of the related character",
                    "description": "Brief description of their relationship",
                }
            ],
        }
    ],
    "plot_summary": "A concise summary of the main plot",
    "themes": ["Theme 1", "Theme 2", "Theme 3"],
    "key_events": [
        {
            "event": "Description of the key event",
            "significance": "Why this event is important to the story",
            "characters_involved": ["Primary Character Name"],
        }
    ],
}

ANALYSIS_SYSTEM_PROMPT = "\n".join(
    [
        "You are a meticulous book analyzer. Analyze the provided book text and return a "
        "machine-readable JSON object describing its characters, their relationships, themes, "
        "plot summary, and key events.",
        "",
        "Return ONLY valid JSON:",
        "- no explanatory text before or after the JSON",
        "- no markdown code fences",
        "- start your response with { and end it with }",
        "",
        "Include every character mentioned, even minor ones. Reference other characters by the "
        "exact name used in their own entry. Rate importance as one of protagonist, major, "
        "supporting, minor, background.",
        "",
        "Respond with an object of this shape:",
        json.dumps(ANALYSIS_RESPONSE_SHAPE, ensure_ascii=False, indent=2),
    ]
)

CHAT_SYSTEM_PROMPT = "\n".join(
    [
        "You are a knowledgeable book expert with a deep understanding of literature, characters, "
        "themes, and literary analysis. Answer questions about the book based on the text shared "
        "with you, and say so honestly when the text does not contain enough information.",
        "",
        "Reply in plain text only: no HTML, no markdown, no code blocks, no bullet characters.",
    ]
)


class ChatProvider(Protocol):
    """Providers that turn a message list into generated text."""

    async def acomplete(self, messages: Sequence[BaseMessage], **kwargs: Any) -> str:  # pragma: no cover - interface
        ...


class ChatAgent:
    """Prepends a fixed system prompt to every conversation."""

    def __init__(self, provider: ChatProvider, system_prompt: str) -> None:
        self._provider = provider
        self.system_prompt = system_prompt

    def build_messages(self, messages: Sequence[BaseMessage] | Sequence[Mapping[str, Any]]) -> List[BaseMessage]:
        return [SystemMessage(content=self.system_prompt), *to_langchain_messages(messages)]

    async def chat(self, messages: Sequence[BaseMessage] | Sequence[Mapping[str, Any]]) -> str:
        if not messages:
            raise ValueError("Messages are required")
        return await self._provider.acomplete(self.build_messages(messages))


def book_analysis_agent(provider: ChatProvider) -> ChatAgent:
    return ChatAgent(provider, ANALYSIS_SYSTEM_PROMPT)


def book_chat_agent(provider: ChatProvider) -> ChatAgent:
    return ChatAgent(provider, CHAT_SYSTEM_PROMPT)
