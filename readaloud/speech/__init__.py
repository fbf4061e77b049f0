"""
Read-Aloud Speech Module

Speaks assessment content through a pluggable voice backend and highlights
each spoken word in the rendered content.
"""

from readaloud.speech.catalog_resolver import CatalogResolver, load_catalog_file
from readaloud.speech.highlight import HighlightCoordinator
from readaloud.speech.markup_scanner import ExtractionResult, MarkupScanner
from readaloud.speech.models import (
    Card,
    CatalogEntry,
    ContentSource,
    PlaybackRequest,
    ResolvedContent,
    TimingMark,
)
from readaloud.speech.orchestrator import PlaybackOrchestrator, PlaybackState
from readaloud.speech.text_alignment import BoundaryClamp, align, normalize, spoken_text
from readaloud.speech.tts_provider import SpeakOptions, TTSProvider, create_provider

__all__ = [
    "CatalogResolver",
    "load_catalog_file",
    "HighlightCoordinator",
    "ExtractionResult",
    "MarkupScanner",
    "Card",
    "CatalogEntry",
    "ContentSource",
    "PlaybackRequest",
    "ResolvedContent",
    "TimingMark",
    "PlaybackOrchestrator",
    "PlaybackState",
    "BoundaryClamp",
    "align",
    "normalize",
    "spoken_text",
    "SpeakOptions",
    "TTSProvider",
    "create_provider",
]
