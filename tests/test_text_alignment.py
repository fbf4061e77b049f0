"""Tests for text alignment module."""

import pytest

from readaloud.speech.text_alignment import (
    BoundaryClamp,
    align,
    build_position_map,
    element_text,
    locate_words,
    normalize,
    parse_fragment,
    spoken_text,
    strip_markup,
)


@pytest.mark.parametrize("text", [
    "",
    "   ",
    "Hello,   world\n",
    "\ttabs\tand\r\nnewlines ",
    "already normal",
    "a b",
])
def test_normalize_is_idempotent(text):
    assert normalize(normalize(text)) == normalize(text)


def test_normalize_collapses_whitespace():
    assert normalize("  Hello,   world\n") == "Hello, world"


def test_strip_markup_and_entities():
    assert strip_markup("<speak>Tom &amp; <emphasis>Jerry</emphasis></speak>") == "Tom & Jerry"
    assert spoken_text("<speak>\n  Hi   <break/> there </speak>") == "Hi there"


def test_alignment_with_authoring_whitespace():
    spoken = spoken_text("Hello,   world\n")
    soup = parse_fragment("<p>Hello, world</p>")

    position_map = align(spoken, soup.p)

    assert spoken == "Hello, world"
    assert position_map is not None
    assert len(position_map) == 12
    node, offset = position_map[0]
    assert str(node)[offset] == "H"
    node, offset = position_map[11]
    assert str(node)[offset] == "d"


def test_position_map_skips_dom_whitespace():
    soup = parse_fragment("<div>\n  <p>One</p>\n  <p>two   three</p>\n</div>")
    position_map = build_position_map(soup.div)
    assert position_map.text == "One two three"


def test_align_mismatch_disables_highlighting():
    soup = parse_fragment("<p>Something else entirely</p>")
    assert align("Hello", soup.p) is None


def test_align_without_element():
    assert align("Hello", None) is None


def test_word_split_across_nodes_yields_one_range():
    soup = parse_fragment("<p>The <b>un</b><i>believable</i> end</p>")
    spoken = spoken_text(element_text(soup.p))
    position_map = align(spoken, soup.p)

    text_range = position_map.range_for(4, len("unbelievable"))

    assert text_range.text() == "unbelievable"
    assert str(text_range.start_node) == "un"
    assert str(text_range.end_node) == "believable"
    assert text_range.end_offset == len("believable")


def test_range_for_out_of_bounds():
    soup = parse_fragment("<p>Hi</p>")
    position_map = build_position_map(soup.p)
    assert position_map.range_for(1, 5) is None
    assert position_map.range_for(0, 0) is None


def test_comments_and_scripts_are_not_text():
    soup = parse_fragment("<p>Read <!-- note --><script>var x;</script>this</p>")
    assert build_position_map(soup.p).text == "Read this"


def test_spoken_text_skips_non_rendered_markup():
    markup = "<p>Hello <!-- editor note --> world<script>var x=1;</script></p>"
    soup = parse_fragment(markup)

    assert spoken_text(markup) == "Hello world"
    position_map = align(spoken_text(markup), soup.p)
    assert position_map is not None
    assert position_map.range_for(6, 5).text() == "world"


@pytest.mark.parametrize("markup", [
    '<?xml version="1.0"?><speak>Good morning</speak>',
    "<speak><![CDATA[if a < b]]>Good morning</speak>",
    "<STYLE>p { color: red; }</STYLE>Good <template><b>hidden</b></template>morning",
    "<!DOCTYPE html><p>Good morning</p>",
])
def test_strip_markup_drops_prologs_and_hidden_content(markup):
    assert spoken_text(markup) == "Good morning"


def test_locate_words_forward_search():
    text = "the cat and the hat"
    positions = locate_words(text, ["the", "cat", "missing", "the", "hat"])
    assert positions == [(0, 3), (4, 3), None, (12, 3), (16, 3)]


# --- BoundaryClamp ---

def test_clamp_out_of_order_events():
    clamp = BoundaryClamp("Hello wonderful world")
    assert clamp.apply(5, 3) == (5, 3)
    assert clamp.apply(4, 2) is None


def test_clamp_overlap_is_trimmed():
    clamp = BoundaryClamp("Hello wonderful world")
    assert clamp.apply(0, 8) == (0, 8)
    assert clamp.apply(6, 9) == (8, 7)


def test_clamp_sequence_is_monotonic():
    clamp = BoundaryClamp("one two three four")
    applied = [clamp.apply(o, l) for o, l in [(0, 3), (4, 3), (2, 4), (8, 5), (14, 10)]]
    kept = [a for a in applied if a is not None]

    ends = 0
    for offset, length in kept:
        assert offset >= ends
        assert length > 0
        ends = offset + length
    assert ends <= len("one two three four")


def test_clamp_widens_zero_length_event():
    clamp = BoundaryClamp("say hello now")
    assert clamp.apply(4, 0) == (4, 5)


def test_clamp_reset():
    clamp = BoundaryClamp("abc def")
    clamp.apply(0, 7)
    clamp.reset()
    assert clamp.apply(0, 3) == (0, 3)
