"""
Data Models

Catalog entries, resolved content, playback requests and timing marks.
Wire dictionaries use the camelCase names of the catalog and synthesis formats.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ContentSource(str, Enum):
    """Where resolved content came from, highest priority first."""

    EXTRACTED = "extracted"
    ITEM = "item"
    ASSESSMENT = "assessment"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class Card:
    """One language-specific content variant of a catalog entry."""

    catalog_type: str  # e.g. "spoken", "braille"
    language: str  # BCP47 tag, e.g. "en-US"
    content: str  # May contain <speak> markup

    def to_dict(self) -> Dict[str, Any]:
        return {
            "catalog": self.catalog_type,
            "language": self.language,
            "content": self.content,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Card":
        return cls(
            catalog_type=data.get("catalog") or data.get("catalogType") or "spoken",
            language=data.get("language", ""),
            content=data.get("content", ""),
        )


@dataclass(frozen=True)
class CatalogEntry:
    """Alternative content unit keyed by a stable identifier."""

    identifier: str
    cards: Tuple[Card, ...] = ()

    def __post_init__(self):
        # Accept any iterable of cards but store an immutable tuple
        object.__setattr__(self, "cards", tuple(self.cards))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "cards": [card.to_dict() for card in self.cards],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogEntry":
        return cls(
            identifier=data["identifier"],
            cards=tuple(Card.from_dict(c) for c in data.get("cards", [])),
        )


@dataclass(frozen=True)
class ResolvedContent:
    """Text chosen for speech and its provenance."""

    text: str
    source: ContentSource
    language: Optional[str] = None
    catalog_id: Optional[str] = None
    catalog_type: Optional[str] = None


@dataclass
class PlaybackRequest:
    """A host request to speak content."""

    text: str = ""  # Literal fallback text
    catalog_id: Optional[str] = None
    target_element: Any = None  # bs4.Tag to highlight within
    language: Optional[str] = None
    provider_options: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TimingMark:
    """Time-stamped word position from a synthesis response."""

    char_offset: int
    char_length: int
    time_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "charOffset": self.char_offset,
            "charLength": self.char_length,
            "timeMillis": round(self.time_ms, 3),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimingMark":
        return cls(
            char_offset=int(data["charOffset"]),
            char_length=int(data["charLength"]),
            time_ms=float(data["timeMillis"]),
        )


@dataclass
class SynthesisRequest:
    """Request sent to a network synthesis service."""

    text: str
    language: Optional[str] = None
    voice: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "language": self.language,
            "voice": self.voice,
            "options": dict(self.options),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SynthesisRequest":
        return cls(
            text=data["text"],
            language=data.get("language"),
            voice=data.get("voice"),
            options=dict(data.get("options") or {}),
        )


@dataclass
class SynthesisResult:
    """Audio location plus word timing returned by a synthesis service."""

    audio_resource_url: str
    timing_marks: List[TimingMark] = field(default_factory=list)
    content_type: str = "audio/mpeg"
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "audioResourceUrl": self.audio_resource_url,
            "timingMarks": [m.to_dict() for m in self.timing_marks],
            "contentType": self.content_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SynthesisResult":
        return cls(
            audio_resource_url=data["audioResourceUrl"],
            timing_marks=[TimingMark.from_dict(m) for m in data.get("timingMarks", [])],
            content_type=data.get("contentType", "audio/mpeg"),
        )
