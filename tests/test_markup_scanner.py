"""Tests for markup scanner module."""

import pytest

from readaloud.speech.errors import MalformedMarkup
from readaloud.speech.markup_scanner import MarkupScanner, check_markup, extract


# --- check_markup ---

def test_check_markup_accepts_balanced_blocks():
    check_markup("<p><speak>one</speak> and <speak>two</speak></p>")


@pytest.mark.parametrize("markup", [
    "<p><speak>never closed</p>",
    "<p>stray</speak></p>",
    "<speak><speak>nested</speak></speak>",
    "<p><speak xml:lang='en-US'</p>",
])
def test_check_markup_rejects_malformed(markup):
    with pytest.raises(MalformedMarkup):
        check_markup(markup)


# --- extract: strings ---

def test_extract_without_markup_is_untouched():
    content = "<p>Plain   text\n with  spacing</p>"
    result = extract(content, "item1")
    assert result.cleaned_content == content
    assert result.catalog_entries == []


def test_extract_unterminated_block_is_byte_identical():
    content = "<p>Say <speak xml:lang=\"en-US\">tomato</p>"
    result = extract(content, "item1")
    assert result.cleaned_content == content
    assert result.catalog_entries == []


def test_extract_block_inside_element():
    content = '<p>Say <speak xml:lang="es-ES">tomate</speak> now</p>'
    result = extract(content, "item1")

    assert len(result.catalog_entries) == 1
    entry = result.catalog_entries[0]
    assert entry.identifier == "auto-item1-content-0"
    card = entry.cards[0]
    assert card.catalog_type == "spoken"
    assert card.language == "es-ES"
    assert card.content == '<speak xml:lang="es-ES">tomate</speak>'

    assert "<speak" not in result.cleaned_content
    assert 'data-catalog-id="auto-item1-content-0"' in result.cleaned_content
    assert result.cleaned_content.startswith("<p ")


def test_extract_top_level_block_is_wrapped_in_span():
    result = extract("<speak>Hello there</speak>", "q1")
    assert result.cleaned_content == '<span data-catalog-id="auto-q1-content-0">Hello there</span>'


def test_extract_language_defaults():
    scanner = MarkupScanner(default_language="fr-FR")
    result = scanner.extract(
        '<p><speak lang="de-DE">eins</speak></p><p><speak>deux</speak></p>',
        "mix",
    )
    languages = [entry.cards[0].language for entry in result.catalog_entries]
    assert languages == ["de-DE", "fr-FR"]


def test_extract_counter_restarts_per_call():
    scanner = MarkupScanner()
    first = scanner.extract("<p><speak>a</speak></p><p><speak>b</speak></p>", "x")
    second = scanner.extract("<p><speak>c</speak></p>", "x")

    assert [e.identifier for e in first.catalog_entries] == ["auto-x-content-0", "auto-x-content-1"]
    assert [e.identifier for e in second.catalog_entries] == ["auto-x-content-0"]


# --- extract: item configs ---

def test_extract_item_config_fields():
    item = {
        "markup": "<div><speak>Passage</speak> text</div>",
        "models": [
            {
                "id": "mc1",
                "prompt": "<p><speak>What is two plus two?</speak></p>",
                "choices": [
                    {"value": "a", "label": "<span><speak>four</speak></span>"},
                    {"value": "b", "label": "five"},
                ],
            }
        ],
        "other": {"keep": True},
    }
    result = extract(item, "item7")

    ids = [e.identifier for e in result.catalog_entries]
    assert ids == [
        "auto-item7-markup-0",
        "auto-item7-prompt-mc1-1",
        "auto-item7-choice-mc1-a-2",
    ]
    cleaned = result.cleaned_content
    assert cleaned["other"] == {"keep": True}
    assert cleaned["models"][0]["choices"][1]["label"] == "five"
    assert "<speak" not in cleaned["models"][0]["prompt"]


def test_extract_item_config_input_not_mutated():
    item = {"markup": "<p><speak>hi</speak></p>", "models": []}
    extract(item, "item1")
    assert item["markup"] == "<p><speak>hi</speak></p>"


def test_extract_malformed_field_skips_only_that_field():
    item = {
        "markup": "<p><speak>broken</p>",
        "models": [{"id": "m", "prompt": "<p><speak>fine</speak></p>"}],
    }
    result = extract(item, "item2")

    assert result.cleaned_content["markup"] == "<p><speak>broken</p>"
    assert [e.identifier for e in result.catalog_entries] == ["auto-item2-prompt-m-0"]
