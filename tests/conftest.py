"""Shared fixtures for read-aloud tests."""

import asyncio

import pytest

from readaloud.speech.models import Card, CatalogEntry
from readaloud.speech.tts_provider import BoundaryPrecision, ProviderCapabilities, TTSProvider


class FakeProvider(TTSProvider):
    """Provider whose utterances finish only when the test says so."""

    provider_id = "fake"
    provider_name = "Fake provider"
    capabilities = ProviderCapabilities(
        supports_ssml=False,
        word_boundary=BoundaryPrecision.EXACT,
        supports_rate=True,
        supports_pitch=False,
    )

    def __init__(self, **defaults):
        super().__init__(**defaults)
        self.spoken = []
        self.options = []
        self.stop_calls = 0
        self.pause_calls = 0
        self.resume_calls = 0
        self.fail_with = None
        self._pending = None
        self._paused = False

    async def speak(self, text, options=None):
        self.spoken.append(text)
        self.options.append(options)
        if self.fail_with is not None:
            raise self.fail_with
        self._pending = asyncio.get_running_loop().create_future()
        await self._pending

    def finish(self):
        if self._pending is not None and not self._pending.done():
            self._pending.set_result(None)

    def boundary(self, offset, length):
        self._emit_boundary(offset, length)

    def pause(self):
        self.pause_calls += 1
        self._paused = True

    def resume(self):
        self.resume_calls += 1
        self._paused = False

    def stop(self):
        self.stop_calls += 1
        self.finish()

    def is_playing(self):
        return self._pending is not None and not self._pending.done() and not self._paused

    def is_paused(self):
        return self._paused


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def sample_catalogs():
    """Catalog entries as an assessment would author them."""
    return [
        CatalogEntry("q1-prompt", [Card("spoken", "en-US", "Hello")]),
        CatalogEntry("q2-prompt", [
            Card("spoken", "en-US", "Two plus two"),
            Card("spoken", "es-ES", "Dos más dos"),
            Card("braille", "en-US", "⠞⠺⠕"),
        ]),
    ]


async def settle(times=5):
    """Let pending callbacks and tasks run."""
    for _ in range(times):
        await asyncio.sleep(0)
