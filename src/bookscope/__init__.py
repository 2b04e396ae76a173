"""Cached literary analysis of Project Gutenberg books."""

from .analysis import (
    AnalysisCacheCoordinator,
    AnalysisResult,
    NormalizedAnalysis,
    ResponseNormalizer,
    build_coordinator,
)
from .cache import KeyValueCache, analysis_cache_key, build_cache, text_cache_key
from .config import AnalysisConfig, BookscopeConfig, CacheConfig, LLMConfig, TextSourceConfig
from .errors import BookscopeError
from .text_source import GutenbergTextSource

__all__ = [
    "AnalysisCacheCoordinator",
    "AnalysisResult",
    "NormalizedAnalysis",
    "ResponseNormalizer",
    "build_coordinator",
    "KeyValueCache",
    "analysis_cache_key",
    "build_cache",
    "text_cache_key",
    "AnalysisConfig",
    "BookscopeConfig",
    "CacheConfig",
    "LLMConfig",
    "TextSourceConfig",
    "BookscopeError",
    "GutenbergTextSource",
]
