#!/usr/bin/env python3
"""
Read-Aloud Toolkit - Main CLI

Speaks assessment content aloud with live word highlighting.

Features:
- Pronunciation markup extraction into catalog entries
- Per-language catalog resolution with item/assessment scopes
- Local system speech (pyttsx3) or neural voices (Edge TTS / HTTP endpoint)
- Word highlighting aligned to the rendered content
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

import click

from readaloud import __version__
from readaloud.speech.catalog_resolver import CatalogResolver, load_catalog_file
from readaloud.speech.errors import ReadAloudError
from readaloud.speech.markup_scanner import MarkupScanner
from readaloud.speech.models import PlaybackRequest
from readaloud.speech.orchestrator import PlaybackOrchestrator
from readaloud.speech.synthesis_cache import SynthesisCache
from readaloud.speech.synthesis_service import EDGE_VOICES, LANGUAGE_VOICES
from readaloud.speech.text_alignment import parse_fragment
from readaloud.speech.tts_provider import create_provider
from readaloud.utils import logger
from readaloud.utils.config import config

HTML_SUFFIXES = (".html", ".htm")


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", is_flag=True, help="Show debug output")
def cli(verbose: bool):
    """
    Read-Aloud Toolkit

    Speak assessment content with synchronized word highlighting.
    """
    logger.set_verbose(verbose)


@cli.command()
@click.argument("text_or_file")
@click.option("--catalog", "catalog_file", type=click.Path(exists=True), help="Catalog file (JSON or YAML)")
@click.option("--catalog-id", default=None, help="Catalog identifier to speak")
@click.option("-l", "--language", default=None, help=f"Language (default: {config.language})")
@click.option("-e", "--engine", default=None, help=f"TTS engine: edge, pyttsx3, server (default: {config.engine})")
@click.option("-v", "--voice", default=None, help="Voice name or shortcut")
@click.option("-r", "--rate", type=float, default=None, help="Speech rate multiplier")
def speak(
    text_or_file: str,
    catalog_file: Optional[str],
    catalog_id: Optional[str],
    language: Optional[str],
    engine: Optional[str],
    voice: Optional[str],
    rate: Optional[float],
):
    """
    Speak literal text or an HTML file.

    For an HTML file, inline pronunciation markup is extracted first and
    the page body is the highlight target.
    """
    failures = asyncio.run(_speak(text_or_file, catalog_file, catalog_id, language, engine, voice, rate))
    if failures:
        sys.exit(1)


async def _speak(
    text_or_file: str,
    catalog_file: Optional[str],
    catalog_id: Optional[str],
    language: Optional[str],
    engine: Optional[str],
    voice: Optional[str],
    rate: Optional[float],
) -> List[str]:
    resolver = CatalogResolver(default_language=config.default_language)
    if catalog_file:
        resolver.add_assessment_catalogs(load_catalog_file(Path(catalog_file)))

    orchestrator = PlaybackOrchestrator(resolver=resolver)
    failures: List[str] = []
    orchestrator.on("error", lambda kind, message: failures.append(kind))

    try:
        provider = create_provider(engine)
    except ReadAloudError as e:
        logger.error(str(e))
        return [e.kind]

    logger.header(f"Read aloud ({provider.provider_name})")
    if not await orchestrator.initialize(provider):
        return failures

    source = Path(text_or_file)
    request = PlaybackRequest(
        catalog_id=catalog_id,
        language=language,
        provider_options={"voice": voice, "rate": rate},
    )
    if source.suffix.lower() in HTML_SUFFIXES and source.is_file():
        logger.step(f"Loading {source.name}")
        cleaned = orchestrator.load_item(source.read_text(encoding="utf-8"), source.stem)
        soup = parse_fragment(cleaned)
        request.target_element = soup.body or soup
    else:
        request.text = text_or_file

    def show_word(offset: int, length: int) -> None:
        session = orchestrator.session
        if session is not None:
            logger.word(session.normalized_text[offset:offset + length])

    orchestrator.on("boundary", show_word)
    await orchestrator.speak(request)
    logger.console.print()

    if not failures:
        logger.success("Done")
    return failures


@cli.command()
@click.argument("input_file", type=click.Path(exists=True))
@click.option("--context-id", default=None, help="Identifier used in generated catalog ids (default: file name)")
@click.option("-o", "--output", type=click.Path(), help="Write cleaned content to this file")
def extract(input_file: str, context_id: Optional[str], output: Optional[str]):
    """
    Extract inline pronunciation markup from an HTML or JSON item file.

    Prints the generated catalog entries as JSON.
    """
    input_path = Path(input_file)
    text = input_path.read_text(encoding="utf-8")
    content = json.loads(text) if input_path.suffix.lower() == ".json" else text

    result = MarkupScanner(default_language=config.default_language).extract(
        content, context_id or input_path.stem
    )

    if output:
        output_path = Path(output)
        if isinstance(result.cleaned_content, str):
            output_path.write_text(result.cleaned_content, encoding="utf-8")
        else:
            output_path.write_text(json.dumps(result.cleaned_content, indent=2), encoding="utf-8")
        logger.success(f"Cleaned content saved to: {output_path}")

    click.echo(json.dumps([entry.to_dict() for entry in result.catalog_entries], indent=2, ensure_ascii=False))


@cli.command()
@click.argument("catalog_file", type=click.Path(exists=True))
@click.argument("catalog_id")
@click.option("-l", "--language", default=None, help="Requested language")
@click.option("--no-fallback", is_flag=True, help="Do not fall back to the default language")
@click.option("--type", "catalog_type", default=None, help=f"Card type (default: {config.catalog_type})")
def resolve(
    catalog_file: str,
    catalog_id: str,
    language: Optional[str],
    no_fallback: bool,
    catalog_type: Optional[str],
):
    """Resolve a catalog identifier and print the chosen content."""
    resolver = CatalogResolver(
        load_catalog_file(Path(catalog_file)),
        default_language=config.default_language,
    )
    resolved = resolver.get_alternative(
        catalog_id,
        language=language,
        allow_fallback=not no_fallback,
        catalog_type=catalog_type or config.catalog_type,
    )

    if resolved is None:
        logger.warning(f"No content for {catalog_id}")
        sys.exit(1)

    logger.info(f"Language: {resolved.language} ({resolved.source.value})")
    click.echo(resolved.text)


@cli.command()
def voices():
    """List Edge voice shortcuts and per-language defaults."""
    logger.header("Edge TTS Voices")

    logger.console.print("[bold]Shortcuts[/bold]")
    for name, voice_id in EDGE_VOICES.items():
        logger.console.print(f"  {name:<15} - {voice_id}")

    logger.console.print("\n[bold]Language defaults[/bold]")
    for language, voice_id in LANGUAGE_VOICES.items():
        logger.console.print(f"  {language:<15} - {voice_id}")

    logger.console.print(f"\nCurrent default: {config.voice or 'per language'}")


@cli.command("cache-clear")
def cache_clear():
    """Remove every cached synthesis result."""
    cache = SynthesisCache(config.cache_dir)
    removed = cache.clear()
    logger.success(f"Removed {removed} cached entries from {cache.cache_dir}")


if __name__ == "__main__":
    cli()
