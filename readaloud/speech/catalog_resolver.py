"""
Catalog Resolver Module

Two-scope store of accessibility catalog entries with deterministic lookup.

Scopes, highest priority first:
1. Extracted item entries (auto-generated from inline markup)
2. Authored item entries (cleared on item navigation)
3. Assessment entries (persist for the session)

A higher-priority hit is never overridden by a lower scope.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

import yaml

from readaloud.speech.models import Card, CatalogEntry, ContentSource, ResolvedContent
from readaloud.utils import logger


@dataclass
class CatalogStatistics:
    """Counts of registered catalogs."""

    total_catalogs: int
    assessment_catalogs: int
    item_catalogs: int
    available_types: Set[str] = field(default_factory=set)
    available_languages: Set[str] = field(default_factory=set)


class CatalogResolver:
    """
    Resolves catalog identifiers to language-specific content.

    Each instance owns its scopes; nothing is shared between instances.
    """

    def __init__(
        self,
        assessment_catalogs: Optional[Iterable[CatalogEntry]] = None,
        default_language: str = "en-US",
    ):
        """
        Initialize the resolver.

        Args:
            assessment_catalogs: Entries valid for the whole assessment
            default_language: Language used when the requested one is missing
        """
        self.default_language = default_language
        self._assessment: Dict[str, CatalogEntry] = {}
        self._item: Dict[str, CatalogEntry] = {}
        self._extracted: Dict[str, CatalogEntry] = {}
        self.add_assessment_catalogs(assessment_catalogs or [])

    def _scopes(self):
        return (
            (ContentSource.EXTRACTED, self._extracted),
            (ContentSource.ITEM, self._item),
            (ContentSource.ASSESSMENT, self._assessment),
        )

    def set_default_language(self, language: str) -> None:
        """Set the fallback language."""
        self.default_language = language

    def add_assessment_catalogs(self, entries: Iterable[CatalogEntry]) -> None:
        """Register assessment-wide entries; a duplicate id replaces the old entry."""
        for entry in entries:
            self._assessment[entry.identifier] = entry

    def add_item_catalogs(self, entries: Iterable[CatalogEntry], extracted: bool = False) -> None:
        """
        Merge entries into the current item scope.

        Args:
            entries: Catalog entries for the current item
            extracted: True for entries produced by the markup scanner
        """
        target = self._extracted if extracted else self._item
        for entry in entries:
            target[entry.identifier] = entry

    def clear_item_catalogs(self) -> None:
        """Drop every item-scope entry (called on item navigation)."""
        self._item.clear()
        self._extracted.clear()

    def has_catalog(self, catalog_id: str) -> bool:
        return any(catalog_id in scope for _, scope in self._scopes())

    def get_alternative(
        self,
        catalog_id: str,
        language: Optional[str] = None,
        allow_fallback: bool = True,
        catalog_type: str = "spoken",
    ) -> Optional[ResolvedContent]:
        """
        Get content for a catalog identifier.

        Within a scope an exact language match wins; with allow_fallback the
        default language is tried next. No other card is ever picked.

        Returns:
            ResolvedContent, or None if no scope has a matching card
        """
        for source, scope in self._scopes():
            entry = scope.get(catalog_id)
            if entry is None:
                continue
            card = self._find_card(entry, language, allow_fallback, catalog_type)
            if card is not None:
                return ResolvedContent(
                    text=card.content,
                    source=source,
                    language=card.language,
                    catalog_id=catalog_id,
                    catalog_type=card.catalog_type,
                )
        return None

    def _find_card(
        self,
        entry: CatalogEntry,
        language: Optional[str],
        allow_fallback: bool,
        catalog_type: str,
    ) -> Optional[Card]:
        cards = [c for c in entry.cards if c.catalog_type == catalog_type]
        wanted = language or self.default_language

        for card in cards:
            if card.language == wanted:
                return card

        if allow_fallback:
            for card in cards:
                if card.language == self.default_language:
                    return card

        return None

    def get_all_alternatives(self, catalog_id: str) -> List[ResolvedContent]:
        """
        List every card for an identifier.

        Item-scope cards come first; a lower scope only contributes
        (type, language) pairs not already supplied.
        """
        results: List[ResolvedContent] = []
        seen = set()
        for source, scope in self._scopes():
            entry = scope.get(catalog_id)
            if entry is None:
                continue
            for card in entry.cards:
                key = (card.catalog_type, card.language)
                if key in seen:
                    continue
                seen.add(key)
                results.append(ResolvedContent(
                    text=card.content,
                    source=source,
                    language=card.language,
                    catalog_id=catalog_id,
                    catalog_type=card.catalog_type,
                ))
        return results

    def get_all_catalog_ids(self) -> List[str]:
        ids: List[str] = []
        for _, scope in self._scopes():
            ids.extend(i for i in scope if i not in ids)
        return ids

    def has_alternative_type(self, catalog_id: str, catalog_type: str) -> bool:
        return any(a.catalog_type == catalog_type for a in self.get_all_alternatives(catalog_id))

    def get_catalogs_by_type(self, catalog_type: str) -> List[str]:
        return [
            catalog_id
            for catalog_id in self.get_all_catalog_ids()
            if self.has_alternative_type(catalog_id, catalog_type)
        ]

    def get_statistics(self) -> CatalogStatistics:
        stats = CatalogStatistics(
            total_catalogs=len(self._assessment) + len(self._item) + len(self._extracted),
            assessment_catalogs=len(self._assessment),
            item_catalogs=len(self._item) + len(self._extracted),
        )
        for _, scope in self._scopes():
            for entry in scope.values():
                for card in entry.cards:
                    stats.available_types.add(card.catalog_type)
                    if card.language:
                        stats.available_languages.add(card.language)
        return stats

    def reset(self) -> None:
        """Clear every scope."""
        self._assessment.clear()
        self._item.clear()
        self._extracted.clear()


def load_catalog_file(path: Path) -> List[CatalogEntry]:
    """
    Load catalog entries from a JSON or YAML file.

    The file holds either a list of entries or a mapping with an
    "accessibilityCatalogs" list.
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)

    if isinstance(data, dict):
        data = data.get("accessibilityCatalogs", [])

    entries = [CatalogEntry.from_dict(item) for item in data or []]
    logger.debug(f"Loaded {len(entries)} catalog entries from {path.name}")
    return entries
