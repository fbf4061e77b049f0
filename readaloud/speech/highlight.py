"""
Highlight Coordinator

Holds the live word highlight for the active playback session and renders
it as HTML for previews. The source tree is never modified: rendering works
on a copy of the target element.
"""

import copy
from typing import Callable, List, Optional

from bs4 import BeautifulSoup, NavigableString, Tag

from readaloud.speech.text_alignment import TextRange, iter_text_nodes

HighlightListener = Callable[[Optional[TextRange]], None]

WORD_CLASS = "tts-word"


class HighlightCoordinator:
    """Tracks the currently spoken word range."""

    def __init__(self):
        self._current: Optional[TextRange] = None
        self._listeners: List[HighlightListener] = []

    @property
    def current(self) -> Optional[TextRange]:
        return self._current

    def subscribe(self, listener: HighlightListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: HighlightListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def highlight(self, text_range: TextRange) -> None:
        """Replace the live highlight with text_range."""
        self._current = text_range
        self._notify()

    def clear(self) -> None:
        if self._current is None:
            return
        self._current = None
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._current)

    def render(self, element: Tag) -> str:
        """
        Return element's HTML with the live word wrapped in <mark class="tts-word">.

        A word split across text nodes is wrapped piece by piece.
        """
        text_range = self._current
        if text_range is None:
            return str(element)

        originals = list(iter_text_nodes(element))
        start = _index_of(originals, text_range.start_node)
        end = _index_of(originals, text_range.end_node)
        if start is None or end is None or end < start:
            return str(element)

        clone = copy.copy(element)
        copies = list(iter_text_nodes(clone))
        factory = BeautifulSoup("", "html.parser")

        for i in range(start, end + 1):
            node = copies[i]
            text = str(node)
            begin = text_range.start_offset if i == start else 0
            finish = text_range.end_offset if i == end else len(text)
            if finish <= begin:
                continue

            mark = factory.new_tag("mark", attrs={"class": WORD_CLASS})
            mark.string = text[begin:finish]
            pieces = [NavigableString(text[:begin]), mark, NavigableString(text[finish:])]
            node.replace_with(*[p for p in pieces if p is mark or str(p)])

        return str(clone)


def _index_of(nodes: List[NavigableString], target: NavigableString) -> Optional[int]:
    # NavigableString compares by value, so match on identity
    for i, node in enumerate(nodes):
        if node is target:
            return i
    return None
