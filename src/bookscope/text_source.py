"""Project Gutenberg text source with cache read-through."""

from __future__ import annotations

import logging

import httpx

from .cache import KeyValueCache, text_cache_key
from .config import TextSourceConfig
from .errors import (
    ConnectivityError,
    DocumentNotFound,
    InvalidIdentifier,
    MalformedResponse,
    RequestTimeout,
    UpstreamError,
)

__all__ = ["GutenbergTextSource", "count_words", "truncate_text"]

logger = logging.getLogger(__name__)


def count_words(text: str) -> int:
    return len(text.split())


def truncate_text(text: str, max_length: int, marker: str = "...") -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + marker


class GutenbergTextSource:
    """Resolve book identifiers to (possibly truncated) plain text."""

    def __init__(
        self,
        cache: KeyValueCache,
        config: TextSourceConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._cache = cache
        self.config = config or TextSourceConfig()
        self._transport = transport

    async def fetch_text(self, book_id: str | None) -> str:
        if not book_id or not isinstance(book_id, str) or not book_id.strip():
            raise InvalidIdentifier("Invalid book ID provided")
        clean_id = book_id.strip()
        cache_key = text_cache_key(clean_id)

        cached = await self._cache.get(cache_key)
        if isinstance(cached, str):
            logger.debug("Text cache hit for book %s", clean_id)
            return cached

        text = await self._download(clean_id)
        truncated = truncate_text(text, self.config.max_text_length, self.config.truncation_marker)
        if len(truncated) != len(text):
            logger.info("Truncated book %s from %d to %d characters", clean_id, len(text), self.config.max_text_length)
        await self._cache.set(cache_key, truncated)
        return truncated

    async def _download(self, book_id: str) -> str:
        url = self.config.url_for(book_id)
        headers = {"User-Agent": self.config.user_agent}
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout, transport=self._transport) as client:
                response = await client.get(url, headers=headers)
        except httpx.TimeoutException as exc:
            raise RequestTimeout("Request timeout: Unable to fetch book text") from exc
        except httpx.ConnectError as exc:
            raise ConnectivityError("Network error: Unable to connect to Project Gutenberg") from exc
        except httpx.RequestError as exc:
            raise UpstreamError(f"Network error: {exc}") from exc

        if response.status_code == 404:
            raise DocumentNotFound(f"Book with ID {book_id} not found")
        if response.status_code != 200:
            raise UpstreamError(
                f"Failed to fetch book: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        body = response.content
        if not body or b"\x00" in body:
            raise MalformedResponse("Invalid response format: expected text content")
        text = response.text
        if not text.strip():
            raise MalformedResponse("Invalid response format: expected text content")
        logger.debug("Fetched %d characters for book %s", len(text), book_id)
        return text
