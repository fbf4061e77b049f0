"""
Text Alignment Module

Keeps the text sent to a voice backend, the text rendered in the DOM and the
backend's word offsets in character alignment.

Both sides are normalized the same way (trim, then collapse every whitespace
run to one space). The target element's text nodes are walked in document
order to record, for every normalized character, the (text node, offset)
it came from. Boundary events in spoken-text coordinates then slice that
map into DOM ranges.
"""

import html
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, Tag
from bs4.element import (
    CData,
    Comment,
    Declaration,
    Doctype,
    NavigableString,
    ProcessingInstruction,
)

from readaloud.utils import logger

_WHITESPACE = re.compile(r"\s+")
_TAG = re.compile(r"</?[A-Za-z][^<>]*>")
_NON_RENDERED = re.compile(
    r"<!--.*?-->|<!\[CDATA\[.*?\]\]>|<[!?][^>]*>"
    r"|<(script|style|template)\b[^>]*>.*?</\1\s*>",
    re.DOTALL | re.IGNORECASE,
)

_NON_TEXT_NODES = (Comment, CData, Declaration, Doctype, ProcessingInstruction)
_NON_RENDERED_PARENTS = {"script", "style", "template"}


def normalize(text: str) -> str:
    """Trim and collapse every whitespace run to a single space."""
    return _WHITESPACE.sub(" ", text).strip()


def strip_markup(text: str) -> str:
    """Remove tags and unescape entities, leaving the text a listener hears."""
    return html.unescape(_TAG.sub("", _NON_RENDERED.sub("", text)))


def has_markup(text: str) -> bool:
    return bool(_TAG.search(text) or _NON_RENDERED.search(text))


def spoken_text(text: str) -> str:
    """The coordinate space of every boundary event: normalized plain text."""
    return normalize(strip_markup(text))


def is_text_node(node) -> bool:
    if not isinstance(node, NavigableString) or isinstance(node, _NON_TEXT_NODES):
        return False
    parent = node.parent
    return parent is None or parent.name not in _NON_RENDERED_PARENTS


def iter_text_nodes(element: Tag) -> Iterator[NavigableString]:
    """Yield the rendered text nodes under element in document order."""
    for node in element.descendants:
        if is_text_node(node):
            yield node


def element_text(element: Tag) -> str:
    return "".join(str(node) for node in iter_text_nodes(element))


def parse_fragment(markup: str) -> BeautifulSoup:
    """Parse an HTML fragment into a tree usable as a highlight target."""
    return BeautifulSoup(markup, "html.parser")


@dataclass(frozen=True, eq=False)
class TextRange:
    """DOM range between two (text node, offset) points; end is exclusive."""

    start_node: NavigableString
    start_offset: int
    end_node: NavigableString
    end_offset: int

    def text(self) -> str:
        """Return the DOM text covered by the range."""
        if self.start_node is self.end_node:
            return str(self.start_node)[self.start_offset:self.end_offset]

        parts = [str(self.start_node)[self.start_offset:]]
        for node in self.start_node.next_elements:
            if node is self.end_node:
                parts.append(str(node)[:self.end_offset])
                break
            if is_text_node(node):
                parts.append(str(node))
        return "".join(parts)

    def __repr__(self) -> str:
        return f"TextRange({self.text()!r})"


class PositionMap:
    """Per-character table from normalized offsets to DOM locations."""

    def __init__(self, entries: Sequence[Tuple[NavigableString, int]], text: str):
        self._entries = list(entries)
        self.text = text

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, offset: int) -> Tuple[NavigableString, int]:
        return self._entries[offset]

    def range_for(self, offset: int, length: int) -> Optional[TextRange]:
        """
        Build the DOM range for a span of normalized text.

        A span crossing several text nodes still yields one range.
        """
        if length <= 0 or offset < 0 or offset + length > len(self._entries):
            return None
        start_node, start_offset = self._entries[offset]
        end_node, end_offset = self._entries[offset + length - 1]
        return TextRange(start_node, start_offset, end_node, end_offset + 1)


def build_position_map(element: Tag) -> PositionMap:
    """
    Walk element's text nodes building the normalized text and its map.

    Leading and trailing whitespace is dropped; an inner whitespace run maps
    to the location of its first character.
    """
    entries: List[Tuple[NavigableString, int]] = []
    chars: List[str] = []
    pending_space: Optional[Tuple[NavigableString, int]] = None

    for node in iter_text_nodes(element):
        for i, ch in enumerate(str(node)):
            if ch.isspace():
                if entries and pending_space is None:
                    pending_space = (node, i)
                continue
            if pending_space is not None:
                entries.append(pending_space)
                chars.append(" ")
                pending_space = None
            entries.append((node, i))
            chars.append(ch)

    return PositionMap(entries, "".join(chars))


def align(spoken: str, element: Optional[Tag]) -> Optional[PositionMap]:
    """
    Build the position map for element if it lines up with spoken text.

    A length mismatch is recoverable: highlighting is disabled for the
    session and None is returned.
    """
    if element is None:
        return None

    position_map = build_position_map(element)
    if len(position_map) != len(spoken):
        logger.warning(
            f"Alignment mismatch: spoken text has {len(spoken)} chars, "
            f"DOM text has {len(position_map)}; highlighting disabled"
        )
        return None

    if position_map.text != spoken:
        logger.debug("Spoken and DOM text differ in content but not in length")
    return position_map


def locate_words(
    text: str,
    words: Sequence[str],
    start: int = 0,
) -> List[Optional[Tuple[int, int]]]:
    """
    Find each word in text by forward search.

    Words that cannot be found map to None and do not move the cursor.
    """
    positions: List[Optional[Tuple[int, int]]] = []
    cursor = start
    for word in words:
        word = normalize(word)
        index = text.find(word, cursor) if word else -1
        if index == -1:
            positions.append(None)
            continue
        positions.append((index, len(word)))
        cursor = index + len(word)
    return positions


class BoundaryClamp:
    """
    Forces boundary events into a monotonic, non-overlapping sequence.

    Each event is clipped to begin at or after the end of the previously
    applied event and to end inside the text. A zero-length event is widened
    to the word starting at its offset. Events with nothing left are dropped.
    """

    def __init__(self, text: str):
        self.text = text
        self._last_end = 0

    def apply(self, offset: int, length: int) -> Optional[Tuple[int, int]]:
        if length <= 0:
            length = self._word_length(offset)

        start = max(offset, self._last_end, 0)
        end = min(offset + length, len(self.text))
        if end <= start:
            return None

        self._last_end = end
        return start, end - start

    def _word_length(self, offset: int) -> int:
        if offset < 0 or offset >= len(self.text):
            return 0
        match = re.match(r"\S+", self.text[offset:])
        return match.end() if match else 0

    def reset(self) -> None:
        self._last_end = 0
