from __future__ import annotations

import httpx
import pytest

from bookscope.cache import KeyValueCache, text_cache_key
from bookscope.config import DEFAULT_USER_AGENT, TextSourceConfig
from bookscope.errors import (
    ConnectivityError,
    DocumentNotFound,
    InvalidIdentifier,
    MalformedResponse,
    RequestTimeout,
    UpstreamError,
)
from bookscope.text_source import count_words, truncate_text

from conftest import FailingStore, raising, text_response


@pytest.mark.asyncio
async def test_fetch_text_truncates_long_books_and_sends_fixed_headers(gutenberg_factory) -> None:
    source, seen = gutenberg_factory(text_response("A" * 60000))

    result = await source.fetch_text("1342")

    assert result == "A" * 5000 + "..."
    assert len(result) == 5003
    request = seen[0]
    assert str(request.url) == "https://www.gutenberg.org/files/1342/1342-0.txt"
    assert request.headers["User-Agent"] == DEFAULT_USER_AGENT


@pytest.mark.asyncio
async def test_fetch_text_returns_short_books_unchanged(gutenberg_factory) -> None:
    source, _ = gutenberg_factory(text_response("Short book content"))

    assert await source.fetch_text("  1342  ") == "Short book content"


@pytest.mark.asyncio
async def test_fetch_text_populates_and_reads_cache(gutenberg_factory, cache: KeyValueCache) -> None:
    source, seen = gutenberg_factory(text_response("B" * 6000))

    first = await source.fetch_text("84")
    second = await source.fetch_text(" 84")

    assert first == second == "B" * 5000 + "..."
    assert len(seen) == 1
    assert await cache.get(text_cache_key("84")) == first


@pytest.mark.asyncio
async def test_fetch_text_honours_custom_limits(gutenberg_factory) -> None:
    config = TextSourceConfig(base_url="https://mirror.example/files/", max_text_length=10, truncation_marker="…")
    source, seen = gutenberg_factory(text_response("0123456789abcdef"), config=config)

    assert await source.fetch_text("11") == "0123456789…"
    assert str(seen[0].url) == "https://mirror.example/files/11/11-0.txt"


@pytest.mark.asyncio
@pytest.mark.parametrize("book_id", ["", "   ", None])
async def test_fetch_text_rejects_blank_identifiers(gutenberg_factory, book_id) -> None:
    source, seen = gutenberg_factory(text_response("unused"))

    with pytest.raises(InvalidIdentifier):
        await source.fetch_text(book_id)
    assert seen == []


@pytest.mark.asyncio
async def test_fetch_text_maps_404_to_document_not_found(gutenberg_factory) -> None:
    source, _ = gutenberg_factory(text_response("missing", status_code=404))

    with pytest.raises(DocumentNotFound, match="Book with ID 1342 not found"):
        await source.fetch_text("1342")


@pytest.mark.asyncio
async def test_fetch_text_maps_other_statuses_to_upstream_error(gutenberg_factory) -> None:
    source, _ = gutenberg_factory(text_response("boom", status_code=503))

    with pytest.raises(UpstreamError) as exc_info:
        await source.fetch_text("1342")
    assert exc_info.value.status_code == 503
    assert "503" in str(exc_info.value)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("exc_factory", "expected"),
    [
        (lambda request: httpx.ReadTimeout("timed out", request=request), RequestTimeout),
        (lambda request: httpx.ConnectTimeout("timed out", request=request), RequestTimeout),
        (lambda request: httpx.ConnectError("name resolution failed", request=request), ConnectivityError),
        (lambda request: httpx.RemoteProtocolError("peer closed", request=request), UpstreamError),
    ],
)
async def test_fetch_text_maps_transport_failures(gutenberg_factory, exc_factory, expected) -> None:
    source, _ = gutenberg_factory(raising(exc_factory))

    with pytest.raises(expected):
        await source.fetch_text("1342")


@pytest.mark.asyncio
async def test_transport_error_message_is_carried(gutenberg_factory) -> None:
    source, _ = gutenberg_factory(raising(lambda request: httpx.RemoteProtocolError("peer closed", request=request)))

    with pytest.raises(UpstreamError, match="peer closed"):
        await source.fetch_text("1342")


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b"", b"   \n", b"\x89PNG\x00\x00binary"])
async def test_fetch_text_rejects_empty_or_binary_bodies(gutenberg_factory, body: bytes) -> None:
    source, _ = gutenberg_factory(lambda request: httpx.Response(200, content=body))

    with pytest.raises(MalformedResponse):
        await source.fetch_text("1342")


@pytest.mark.asyncio
async def test_fetch_text_works_without_a_reachable_cache(gutenberg_factory) -> None:
    source, seen = gutenberg_factory(text_response("still works"), kv_cache=KeyValueCache(FailingStore()))

    assert await source.fetch_text("5") == "still works"
    assert await source.fetch_text("5") == "still works"
    assert len(seen) == 2


def test_truncate_and_count_helpers() -> None:
    assert truncate_text("abcdef", 3) == "abc..."
    assert truncate_text("abc", 3) == "abc"
    assert count_words("  It is a truth\nuniversally\tacknowledged ") == 6
    assert count_words("") == 0
