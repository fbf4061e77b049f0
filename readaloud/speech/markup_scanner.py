"""
Markup Scanner Module

Extracts embedded <speak> pronunciation markup from item content and turns
each block into a spoken catalog entry.

Authors can write SSML inline for convenience. The scanner:
1. Finds every self-contained <speak> block in a content field
2. Emits a catalog entry holding the raw block and its declared language
3. Removes the block from the visible markup
4. Marks the surrounding element with data-catalog-id
"""

import copy
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple, Union

from bs4 import BeautifulSoup

from readaloud.speech.errors import MalformedMarkup
from readaloud.speech.models import Card, CatalogEntry
from readaloud.utils import logger

DEFAULT_LANGUAGE = "en-US"
SPOKEN_CATALOG = "spoken"
CATALOG_ID_ATTR = "data-catalog-id"

# Complete opening/closing/self-closing speak tags
_SPEAK_TAG = re.compile(r"<\s*(/)?\s*speak\b([^<>]*)>", re.IGNORECASE)
# Any speak tag start, terminated or not
_SPEAK_START = re.compile(r"<\s*/?\s*speak\b", re.IGNORECASE)


@dataclass
class ExtractionResult:
    """Cleaned content plus the catalog entries pulled out of it."""

    cleaned_content: Union[str, Dict[str, Any]]
    catalog_entries: List[CatalogEntry] = field(default_factory=list)


def check_markup(markup: str) -> None:
    """
    Verify that every <speak> block in markup is terminated and unnested.

    Raises:
        MalformedMarkup: On an unterminated tag, a stray closing tag,
            a nested block or a block left open.
    """
    tags = list(_SPEAK_TAG.finditer(markup))
    if len(tags) != len(_SPEAK_START.findall(markup)):
        raise MalformedMarkup("unterminated <speak> tag")

    depth = 0
    for tag in tags:
        if tag.group(1):
            depth -= 1
            if depth < 0:
                raise MalformedMarkup("closing </speak> without an opening tag")
        elif tag.group(2).rstrip().endswith("/"):
            continue
        else:
            depth += 1
            if depth > 1:
                raise MalformedMarkup("nested <speak> blocks")

    if depth != 0:
        raise MalformedMarkup("<speak> block is never closed")


class MarkupScanner:
    """
    Pulls inline pronunciation markup out of item content.

    Identifiers follow auto-{context_id}-{field}-{counter}; the counter
    restarts at 0 on every extract() call.
    """

    def __init__(self, default_language: str = DEFAULT_LANGUAGE):
        self.default_language = default_language
        self._counter = 0

    def extract(
        self,
        content: Union[str, Dict[str, Any]],
        context_id: str,
    ) -> ExtractionResult:
        """
        Extract markup blocks from a markup string or an item config.

        Args:
            content: Markup string, or item config with "markup" and "models"
            context_id: Item identifier used in generated catalog ids

        Returns:
            ExtractionResult with cleaned content and new catalog entries
        """
        self.reset()
        entries: List[CatalogEntry] = []

        if isinstance(content, str):
            cleaned = self._extract_field(content, context_id, "content", entries)
            return ExtractionResult(cleaned, entries)

        cleaned_config = copy.deepcopy(content)

        # 1. Top-level markup (passages)
        markup = content.get("markup")
        if isinstance(markup, str):
            cleaned_config["markup"] = self._extract_field(markup, context_id, "markup", entries)

        # 2. Models: prompts and choice labels
        for model in cleaned_config.get("models") or []:
            model_id = model.get("id", "model")

            prompt = model.get("prompt")
            if isinstance(prompt, str):
                model["prompt"] = self._extract_field(
                    prompt, context_id, f"prompt-{model_id}", entries
                )

            for choice in model.get("choices") or []:
                label = choice.get("label")
                if isinstance(label, str):
                    choice["label"] = self._extract_field(
                        label, context_id, f"choice-{model_id}-{choice.get('value')}", entries
                    )

        return ExtractionResult(cleaned_config, entries)

    def _extract_field(
        self,
        markup: str,
        context_id: str,
        field_name: str,
        entries: List[CatalogEntry],
    ) -> str:
        """Extract blocks from one field; malformed fields come back untouched."""
        if not markup or not markup.strip() or not _SPEAK_START.search(markup):
            return markup

        try:
            check_markup(markup)
        except MalformedMarkup as e:
            logger.warning(f"Skipping markup extraction for {context_id}/{field_name}: {e}")
            return markup

        soup = BeautifulSoup(markup, "html.parser")
        for block, language in self._find_blocks(soup):
            catalog_id = self._next_id(context_id, field_name)
            entries.append(CatalogEntry(
                identifier=catalog_id,
                cards=(Card(SPOKEN_CATALOG, language, str(block)),),
            ))

            parent = block.parent
            if parent is None or parent is soup:
                # Block sits at the top level: keep its text in a marked span
                wrapper = soup.new_tag("span")
                wrapper.string = block.get_text()
                block.replace_with(wrapper)
            else:
                block.decompose()
                wrapper = parent
            wrapper[CATALOG_ID_ATTR] = catalog_id

        logger.debug(f"Extracted markup from {context_id}/{field_name}")
        return str(soup)

    def _find_blocks(self, soup: BeautifulSoup) -> List[Tuple[Any, str]]:
        blocks = []
        for block in soup.find_all("speak"):
            language = block.get("xml:lang") or block.get("lang") or self.default_language
            blocks.append((block, language))
        return blocks

    def _next_id(self, context_id: str, field_name: str) -> str:
        catalog_id = f"auto-{context_id}-{field_name}-{self._counter}"
        self._counter += 1
        return catalog_id

    def reset(self) -> None:
        """Restart identifier numbering."""
        self._counter = 0


def extract(content: Union[str, Dict[str, Any]], context_id: str) -> ExtractionResult:
    """Convenience wrapper around MarkupScanner.extract."""
    return MarkupScanner().extract(content, context_id)
