"""Book analysis pipeline components."""

from .agents import ChatAgent, ChatProvider, book_analysis_agent, book_chat_agent
from .coordinator import AnalysisCacheCoordinator, build_coordinator
from .normalizer import (
    NO_SUMMARY,
    ResponseNormalizer,
    extract_json_object,
    normalize_response,
    strip_code_fence,
)
from .schema import (
    AnalysisResult,
    CharacterRelationship,
    KeyCharacter,
    KeyEvent,
    NormalizedAnalysis,
)

__all__ = [
    "ChatAgent",
    "ChatProvider",
    "book_analysis_agent",
    "book_chat_agent",
    "AnalysisCacheCoordinator",
    "build_coordinator",
    "NO_SUMMARY",
    "ResponseNormalizer",
    "extract_json_object",
    "normalize_response",
    "strip_code_fence",
    "AnalysisResult",
    "CharacterRelationship",
    "KeyCharacter",
    "KeyEvent",
    "NormalizedAnalysis",
]
