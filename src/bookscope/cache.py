"""Best-effort key-value cache used by the text source and analysis pipeline.

Caching is an optimisation only: :class:`KeyValueCache` never raises on store
failures. Every error is logged and reported as a miss (``None``) or as a
``False`` status so callers behave exactly as if caching were disabled.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import httpx

from .config import DEFAULT_CACHE_TTL, CacheConfig
from .errors import ConfigurationError

__all__ = [
    "CacheStore",
    "InMemoryCacheStore",
    "UpstashCacheStore",
    "KeyValueCache",
    "text_cache_key",
    "analysis_cache_key",
    "build_cache",
    "cache_status",
    "clear_book",
]

logger = logging.getLogger(__name__)


def text_cache_key(book_id: str) -> str:
    return f"book:{book_id.strip()}:text"


def analysis_cache_key(book_id: str) -> str:
    return f"book:{book_id.strip()}:analysis"


class CacheStore(Protocol):
    """Minimal async contract of the remote cache store."""

    async def get(self, key: str) -> str | None:  # pragma: no cover - interface
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:  # pragma: no cover - interface
        ...

    async def delete(self, key: str) -> None:  # pragma: no cover - interface
        ...

    async def exists(self, key: str) -> int:  # pragma: no cover - interface
        ...


@dataclass(slots=True)
class _Entry:
    value: str
    expires_at: float


class InMemoryCacheStore:
    """Process-local store with expiry, used when no remote cache is configured."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, _Entry] = {}
        self._clock = clock

    def _live_entry(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> str | None:
        entry = self._live_entry(key)
        return entry.value if entry else None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def exists(self, key: str) -> int:
        return 1 if self._live_entry(key) else 0


class UpstashCacheStore:
    """Upstash Redis REST client speaking the JSON command-array protocol."""

    def __init__(
        self,
        url: str | None,
        token: str | None,
        *,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url or not token:
            raise ConfigurationError(
                "UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN environment variables are required"
            )
        self._url = url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport

    async def _command(self, *args: Any) -> Any:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(
                self._url,
                json=[str(arg) for arg in args],
                headers={"Authorization": f"Bearer {self._token}"},
            )
        response.raise_for_status()
        payload = response.json()
        if isinstance(payload, dict) and payload.get("error"):
            raise RuntimeError(f"Upstash command {args[0]} failed: {payload['error']}")
        return payload.get("result") if isinstance(payload, dict) else None

    async def get(self, key: str) -> str | None:
        result = await self._command("GET", key)
        return None if result is None else str(result)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._command("SET", key, value, "EX", ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._command("DEL", key)

    async def exists(self, key: str) -> int:
        return int(await self._command("EXISTS", key) or 0)


class KeyValueCache:
    """JSON pass-through cache that degrades every failure to a miss."""

    def __init__(self, store: CacheStore, *, default_ttl: int = DEFAULT_CACHE_TTL) -> None:
        self._store = store
        self.default_ttl = default_ttl

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._store.get(key)
        except Exception as exc:
            logger.warning("Cache get error for %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.warning("Discarding undecodable cache entry %s: %s", key, exc)
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        final_ttl = ttl or self.default_ttl
        try:
            serialised = json.dumps(value, ensure_ascii=False)
            await self._store.set(key, serialised, final_ttl)
        except Exception as exc:
            logger.warning("Cache set error for %s: %s", key, exc)
            return False
        return True

    async def delete(self, key: str) -> bool:
        try:
            await self._store.delete(key)
        except Exception as exc:
            logger.warning("Cache delete error for %s: %s", key, exc)
            return False
        return True

    async def exists(self, key: str) -> bool:
        try:
            return await self._store.exists(key) == 1
        except Exception as exc:
            logger.warning("Cache exists error for %s: %s", key, exc)
            return False


def build_cache(config: CacheConfig | None = None) -> KeyValueCache:
    """Return an Upstash-backed cache when configured, otherwise an in-memory one."""

    config = config or CacheConfig()
    store: CacheStore
    if config.is_remote:
        store = UpstashCacheStore(config.url, config.token, timeout=config.request_timeout)
    else:
        logger.info("Upstash credentials not set; using in-memory cache store.")
        store = InMemoryCacheStore()
    return KeyValueCache(store, default_ttl=config.default_ttl)


async def cache_status(cache: KeyValueCache, book_id: str) -> dict[str, bool]:
    """Report which cache tiers currently hold data for ``book_id``."""

    return {
        "bookTextCached": await cache.exists(text_cache_key(book_id)),
        "analysisCached": await cache.exists(analysis_cache_key(book_id)),
    }


async def clear_book(cache: KeyValueCache, book_id: str) -> bool:
    """Delete both cache tiers for ``book_id``."""

    text_cleared = await cache.delete(text_cache_key(book_id))
    analysis_cleared = await cache.delete(analysis_cache_key(book_id))
    return text_cleared and analysis_cleared
