"""LangGraph pipeline producing cached book analyses.

The graph mirrors the request lifecycle::

    check_cache ──hit──▶ END
         │
        miss
         ▼
    fetch_text ▶ invoke_model ▶ normalize ▶ store_result ▶ END

Errors raised by any node after the cache check abort the run and surface to
the caller unchanged. Storing the result is best effort.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TypedDict

from langgraph.graph import END, START, StateGraph
from pydantic import ValidationError

from ..cache import KeyValueCache, analysis_cache_key, build_cache, cache_status, clear_book
from ..config import AnalysisConfig, BookscopeConfig
from ..errors import InvalidIdentifier, RequestTimeout
from ..llm.providers import build_provider
from ..text_source import GutenbergTextSource, count_words
from .agents import ChatProvider, book_analysis_agent
from .normalizer import UNKNOWN_AUTHOR, ResponseNormalizer
from .schema import AnalysisResult, NormalizedAnalysis

__all__ = ["AnalysisWorkflowState", "AnalysisCacheCoordinator", "build_coordinator"]

logger = logging.getLogger(__name__)


class AnalysisWorkflowState(TypedDict, total=False):
    book_id: str
    cache_key: str
    book_text: str
    word_count: int
    raw_response: str
    analysis: NormalizedAnalysis
    result: AnalysisResult
    cache_hit: bool


def _require_identifier(book_id: Optional[str]) -> str:
    if not book_id or not isinstance(book_id, str) or not book_id.strip():
        raise InvalidIdentifier("Invalid book ID provided")
    return book_id.strip()


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class AnalysisCacheCoordinator:
    """Serve analyses from cache, computing and storing them on a miss.

    Concurrent requests for the same identifier share one in-flight run, so a
    cold cache triggers a single text fetch and model call per book.
    """

    def __init__(
        self,
        cache: KeyValueCache,
        text_source: GutenbergTextSource,
        provider: ChatProvider,
        *,
        config: Optional[AnalysisConfig] = None,
        normalizer: Optional[ResponseNormalizer] = None,
    ) -> None:
        self._cache = cache
        self._text_source = text_source
        self._agent = book_analysis_agent(provider)
        self._normalizer = normalizer or ResponseNormalizer()
        self.config = config or AnalysisConfig()
        self._inflight: Dict[str, asyncio.Task[AnalysisResult]] = {}
        self._graph = self._build_graph()

    def _build_graph(self):
        graph = StateGraph(AnalysisWorkflowState)
        graph.add_node("check_cache", self._node_check_cache)
        graph.add_node("fetch_text", self._node_fetch_text)
        graph.add_node("invoke_model", self._node_invoke_model)
        graph.add_node("normalize", self._node_normalize)
        graph.add_node("store_result", self._node_store_result)

        graph.add_edge(START, "check_cache")
        graph.add_conditional_edges(
            "check_cache",
            self._route_after_cache,
            {"hit": END, "miss": "fetch_text"},
        )
        graph.add_edge("fetch_text", "invoke_model")
        graph.add_edge("invoke_model", "normalize")
        graph.add_edge("normalize", "store_result")
        graph.add_edge("store_result", END)
        return graph.compile()

    # Public API -------------------------------------------------------------------

    async def get_analysis(self, book_id: Optional[str]) -> AnalysisResult:
        clean_id = _require_identifier(book_id)
        task = self._inflight.get(clean_id)
        if task is None:
            task = asyncio.ensure_future(self._run(clean_id))
            self._inflight[clean_id] = task
            task.add_done_callback(lambda done, key=clean_id: self._forget(key, done))
        else:
            logger.debug("Joining in-flight analysis for book %s", clean_id)
        return await asyncio.shield(task)

    async def status(self, book_id: Optional[str]) -> Dict[str, bool]:
        return await cache_status(self._cache, _require_identifier(book_id))

    async def clear(self, book_id: Optional[str]) -> bool:
        clean_id = _require_identifier(book_id)
        cleared = await clear_book(self._cache, clean_id)
        logger.info("Cleared cache for book %s", clean_id)
        return cleared

    async def _run(self, book_id: str) -> AnalysisResult:
        final_state = await self._graph.ainvoke({"book_id": book_id})
        result = final_state.get("result")
        if result is None:
            raise RuntimeError("Analysis pipeline did not produce a result.")
        return result

    def _forget(self, book_id: str, task: "asyncio.Task[AnalysisResult]") -> None:
        if self._inflight.get(book_id) is task:
            del self._inflight[book_id]
        # Callers may all have been cancelled; mark the failure as observed.
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Analysis for book %s failed: %s", book_id, task.exception())

    # LangGraph node implementations -------------------------------------------------

    @staticmethod
    def _route_after_cache(state: AnalysisWorkflowState) -> str:
        return "hit" if state.get("cache_hit") else "miss"

    async def _node_check_cache(self, state: AnalysisWorkflowState) -> AnalysisWorkflowState:
        cache_key = analysis_cache_key(state["book_id"])
        updated: AnalysisWorkflowState = dict(state)  # type: ignore[assignment]
        updated["cache_key"] = cache_key
        updated["cache_hit"] = False

        cached = await self._cache.get(cache_key)
        if isinstance(cached, dict):
            try:
                updated["result"] = AnalysisResult.from_payload(cached)
            except ValidationError as exc:
                logger.warning("Ignoring malformed cached analysis %s: %s", cache_key, exc)
            else:
                logger.debug("Analysis cache hit for book %s", state["book_id"])
                updated["cache_hit"] = True
        return updated

    async def _node_fetch_text(self, state: AnalysisWorkflowState) -> AnalysisWorkflowState:
        book_text = await self._text_source.fetch_text(state["book_id"])
        updated: AnalysisWorkflowState = dict(state)  # type: ignore[assignment]
        updated["book_text"] = book_text
        updated["word_count"] = count_words(book_text)
        return updated

    async def _node_invoke_model(self, state: AnalysisWorkflowState) -> AnalysisWorkflowState:
        call = self._agent.chat([{"role": "user", "content": state["book_text"]}])
        timeout = self.config.model_timeout
        try:
            raw_response = await asyncio.wait_for(call, timeout) if timeout else await call
        except asyncio.TimeoutError as exc:
            raise RequestTimeout(f"Model call timed out after {timeout:g}s") from exc
        updated: AnalysisWorkflowState = dict(state)  # type: ignore[assignment]
        updated["raw_response"] = raw_response
        return updated

    async def _node_normalize(self, state: AnalysisWorkflowState) -> AnalysisWorkflowState:
        analysis = self._normalizer.normalize(
            state["raw_response"],
            state["word_count"],
            default_title=f"Book ID: {state['book_id']}",
            default_author=UNKNOWN_AUTHOR,
        )
        result = AnalysisResult(
            book_id=state["book_id"],
            title=analysis.title,
            author=analysis.author,
            analysis=analysis,
            timestamp=_utc_timestamp(),
        )
        updated: AnalysisWorkflowState = dict(state)  # type: ignore[assignment]
        updated["analysis"] = analysis
        updated["result"] = result
        return updated

    async def _node_store_result(self, state: AnalysisWorkflowState) -> AnalysisWorkflowState:
        stored = await self._cache.set(
            state["cache_key"],
            state["result"].to_payload(),
            self.config.analysis_ttl,
        )
        if not stored:
            logger.warning("Analysis for book %s was not cached", state["book_id"])
        return state


def build_coordinator(config: Optional[BookscopeConfig] = None, **provider_overrides: Any) -> AnalysisCacheCoordinator:
    """Wire the cache, text source and model provider from configuration."""

    config = config or BookscopeConfig()
    cache = build_cache(config.cache)
    text_source = GutenbergTextSource(cache, config.text)
    provider = build_provider(timeout=config.analysis.model_timeout, **config.as_provider_kwargs(**provider_overrides))
    return AnalysisCacheCoordinator(cache, text_source, provider, config=config.analysis)
