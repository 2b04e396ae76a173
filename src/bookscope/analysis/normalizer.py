"""Recover and normalize structured analyses from raw model output.

The model is asked for a single JSON object, but replies are untrusted: they
may arrive wrapped in Markdown code fences, surrounded by prose, or with any
subset of the expected keys. :class:`ResponseNormalizer` is strict about one
thing only, finding a JSON object at all, and fills every missing field with a
type-correct default so the rendering layer never sees an absent value.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Mapping

from ..errors import UnparsableResponse
from .schema import CharacterRelationship, KeyCharacter, KeyEvent, NormalizedAnalysis

__all__ = [
    "DEFAULT_IMPORTANCE",
    "IMPORTANCE_LEVELS",
    "NO_SUMMARY",
    "UNKNOWN_AUTHOR",
    "UNKNOWN_TITLE",
    "ResponseNormalizer",
    "extract_json_object",
    "normalize_response",
    "strip_code_fence",
]

logger = logging.getLogger(__name__)

NO_SUMMARY = "No summary available"
UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_AUTHOR = "Unknown Author"
DEFAULT_STRENGTH = "moderate"
DEFAULT_MORAL_CATEGORY = "neutral"
DEFAULT_IMPORTANCE = 5.0

IMPORTANCE_LEVELS: Dict[str, float] = {
    "protagonist": 10.0,
    "major": 8.0,
    "supporting": 6.0,
    "minor": 4.0,
    "background": 2.0,
}

_FENCE_OPEN = re.compile(r"^```[\w.+-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?[ \t]*```$")


def strip_code_fence(payload: str) -> str:
    """Remove one leading and one trailing Markdown fence, if present."""

    stripped = payload.strip()
    stripped = _FENCE_OPEN.sub("", stripped, count=1)
    stripped = _FENCE_CLOSE.sub("", stripped, count=1)
    return stripped.strip()


def _scan_for_object(text: str) -> Dict[str, Any] | None:
    """Decode the first top-level ``{...}`` span that is a valid object.

    Braces nested inside a span that fails to decode are never tried on their
    own, so a truncated or malformed reply cannot yield one of its fragments.
    String state is tracked only inside a span; prose quotes are ignored.
    """

    decoder = json.JSONDecoder()
    depth = 0
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if depth == 0:
            if char != "{":
                continue
            try:
                candidate, _ = decoder.raw_decode(text, index)
            except json.JSONDecodeError:
                candidate = None
            if isinstance(candidate, dict):
                return candidate
            depth = 1
            continue
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
    return None


def extract_json_object(raw: str | None) -> Dict[str, Any]:
    """Return the first JSON object recoverable from ``raw``.

    The fence-stripped text is parsed directly when it looks like a bare
    object. Otherwise the original text is scanned for top-level ``{...}``
    spans, so trailing braces in surrounding prose cannot widen the extracted
    span and a malformed outer object is never replaced by an inner one.
    """

    if not raw or not raw.strip():
        raise UnparsableResponse("Model returned empty analysis content")

    cleaned = strip_code_fence(raw)
    if cleaned.startswith("{") and cleaned.endswith("}"):
        try:
            payload = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            logger.debug("Direct JSON parse failed, scanning for an object: %s", exc)
        else:
            if isinstance(payload, dict):
                return payload

    payload = _scan_for_object(raw)
    if payload is None:
        raise UnparsableResponse("Invalid analysis response format: no JSON object found")
    logger.info("Recovered JSON object from non-JSON model output")
    return payload


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _as_text(value: Any, default: str = "") -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def _first_text(mapping: Mapping[str, Any], keys: Iterable[str], default: str = "") -> str:
    for key in keys:
        text = _as_text(mapping.get(key))
        if text:
            return text
    return default


def _importance(value: Any) -> float:
    if isinstance(value, bool):
        return DEFAULT_IMPORTANCE
    if isinstance(value, (int, float)):
        return max(0.0, float(value))
    if isinstance(value, str):
        label = value.strip().lower()
        if label in IMPORTANCE_LEVELS:
            return IMPORTANCE_LEVELS[label]
        try:
            return max(0.0, float(label))
        except ValueError:
            return DEFAULT_IMPORTANCE
    return DEFAULT_IMPORTANCE


class ResponseNormalizer:
    """Map untrusted model JSON onto :class:`NormalizedAnalysis`."""

    def normalize(
        self,
        raw: str,
        source_word_count: int,
        *,
        default_title: str = UNKNOWN_TITLE,
        default_author: str = UNKNOWN_AUTHOR,
    ) -> NormalizedAnalysis:
        payload = extract_json_object(raw)
        characters = _as_list(payload.get("characters"))

        return NormalizedAnalysis(
            title=_as_text(payload.get("title")) or default_title,
            author=_as_text(payload.get("author")) or default_author,
            character_relationships=self._relationships(characters),
            key_characters=self._key_characters(characters),
            themes=[theme for theme in _as_list(payload.get("themes")) if isinstance(theme, str)],
            summary=_first_text(payload, ("plot_summary", "summary"), NO_SUMMARY),
            word_count=max(0, int(source_word_count)),
            key_events=self._key_events(payload),
        )

    # Field derivation -------------------------------------------------------------

    @staticmethod
    def _character_name(character: Any) -> str:
        if isinstance(character, str):
            return character
        if isinstance(character, dict):
            return _as_text(character.get("name"))
        return ""

    def _relationships(self, characters: List[Any]) -> List[CharacterRelationship]:
        relationships: List[CharacterRelationship] = []
        for character in characters:
            name = self._character_name(character)
            if not name or not isinstance(character, dict):
                continue
            for relation in _as_list(character.get("relationships")):
                if isinstance(relation, str):
                    target, description = relation, ""
                elif isinstance(relation, dict):
                    target = _first_text(relation, ("target", "name", "character"))
                    description = _first_text(relation, ("description", "nature", "relationship", "type"))
                else:
                    continue
                if not target:
                    continue
                # Strength is not derived from the text; every link is "moderate".
                relationships.append(
                    CharacterRelationship(
                        character1=name,
                        character2=target,
                        relationship=description,
                        strength=DEFAULT_STRENGTH,
                    )
                )
        return relationships

    def _key_characters(self, characters: List[Any]) -> List[KeyCharacter]:
        key_characters: List[KeyCharacter] = []
        for character in characters:
            name = self._character_name(character)
            if not name:
                continue
            if isinstance(character, str):
                key_characters.append(
                    KeyCharacter(name=name, importance=DEFAULT_IMPORTANCE, moral_category=DEFAULT_MORAL_CATEGORY)
                )
                continue
            key_characters.append(
                KeyCharacter(
                    name=name,
                    importance=_importance(character.get("importance")),
                    description=_as_text(character.get("description")),
                    moral_category=_as_text(character.get("moral_category")) or DEFAULT_MORAL_CATEGORY,
                )
            )
        return key_characters

    def _key_events(self, payload: Mapping[str, Any]) -> List[KeyEvent]:
        raw_events = payload.get("key_events")
        if raw_events is None:
            raw_events = payload.get("keyEvents")
        events: List[KeyEvent] = []
        for entry in _as_list(raw_events):
            if isinstance(entry, str):
                events.append(KeyEvent(event=entry))
            elif isinstance(entry, dict):
                involved = [name for name in _as_list(entry.get("characters_involved")) if isinstance(name, str)]
                events.append(
                    KeyEvent(
                        event=_as_text(entry.get("event")),
                        significance=_as_text(entry.get("significance")),
                        characters_involved=involved,
                    )
                )
        return events


def normalize_response(raw: str, source_word_count: int, **kwargs: Any) -> NormalizedAnalysis:
    """Module-level shortcut for :meth:`ResponseNormalizer.normalize`."""

    return ResponseNormalizer().normalize(raw, source_word_count, **kwargs)
