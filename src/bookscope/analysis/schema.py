"""Stable, UI-facing schema for normalized book analyses."""

from __future__ import annotations

from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "RelationshipStrength",
    "CharacterRelationship",
    "KeyCharacter",
    "KeyEvent",
    "NormalizedAnalysis",
    "AnalysisResult",
]

RelationshipStrength = Literal["strong", "moderate", "weak"]


class FrozenBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)


class CharacterRelationship(FrozenBaseModel):
    """Directed link between two characters, referenced by name."""

    character1: str = Field(..., description="Character declaring the relationship.")
    character2: str = Field(..., description="Name of the related character; may not match any key character.")
    relationship: str = Field(default="", description="Short description of how the characters relate.")
    strength: RelationshipStrength = Field(default="moderate")


class KeyCharacter(FrozenBaseModel):
    name: str
    importance: float = Field(default=0.0, ge=0)
    description: str = ""
    moral_category: str = "neutral"


class KeyEvent(FrozenBaseModel):
    event: str = ""
    significance: str = ""
    characters_involved: List[str] = Field(default_factory=list)


class NormalizedAnalysis(FrozenBaseModel):
    """Analysis payload the rendering layer can rely on unconditionally."""

    title: str = "Unknown Title"
    author: str = "Unknown Author"
    character_relationships: List[CharacterRelationship] = Field(
        default_factory=list, alias="characterRelationships"
    )
    key_characters: List[KeyCharacter] = Field(default_factory=list, alias="keyCharacters")
    themes: List[str] = Field(default_factory=list)
    summary: str = "No summary available"
    word_count: int = Field(default=0, ge=0, alias="wordCount")
    key_events: List[KeyEvent] = Field(default_factory=list, alias="keyEvents")


class AnalysisResult(FrozenBaseModel):
    """Persisted unit returned to callers and stored in the analysis cache."""

    book_id: str = Field(..., alias="bookId")
    title: str
    author: str
    analysis: NormalizedAnalysis
    timestamp: str = Field(..., description="ISO-8601 creation time.")

    def to_payload(self) -> Dict[str, Any]:
        """Serialize using the camelCase wire names."""

        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AnalysisResult":
        return cls.model_validate(payload)

    def to_markdown(self) -> str:
        """Render the analysis as a Markdown report."""

        analysis = self.analysis
        lines: list[str] = []
        lines.append(f"# {self.title}")
        lines.append(f"_by {self.author}_ (book {self.book_id}, {analysis.word_count} words)\n")
        lines.append(analysis.summary.strip())
        lines.append("")

        if analysis.themes:
            lines.append("## Themes")
            for theme in analysis.themes:
                lines.append(f"- {theme}")
            lines.append("")

        if analysis.key_characters:
            lines.append("## Key Characters")
            for character in analysis.key_characters:
                entry = f"- **{character.name}** ({character.moral_category}, importance {character.importance:g})"
                if character.description:
                    entry += f": {character.description}"
                lines.append(entry)
            lines.append("")

        if analysis.character_relationships:
            lines.append("## Relationships")
            for relation in analysis.character_relationships:
                line = f"- {relation.character1} → {relation.character2} [{relation.strength}]"
                if relation.relationship:
                    line += f": {relation.relationship}"
                lines.append(line)
            lines.append("")

        if analysis.key_events:
            lines.append("## Key Events")
            for event in analysis.key_events:
                lines.append(f"### {event.event}")
                if event.significance:
                    lines.append(event.significance.strip())
                if event.characters_involved:
                    lines.append(f"_Characters_: {', '.join(event.characters_involved)}")
                lines.append("")

        return "\n".join(line.rstrip() for line in lines).strip() + "\n"
