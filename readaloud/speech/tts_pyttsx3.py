"""
Local Engine Provider using pyttsx3

Speaks through the operating system's speech engine and reports word
boundaries from the engine's started-word events.

The engine runs in external-loop mode: an asyncio task pumps iterate()
so events arrive on the event loop without extra threads. Word offsets
are best effort; some drivers report them late or approximately.
"""

import asyncio
from typing import Any, Dict, Optional

from readaloud.speech.errors import ProviderError, ProviderUnavailable
from readaloud.speech.text_alignment import spoken_text
from readaloud.speech.tts_provider import (
    BoundaryPrecision,
    ProviderCapabilities,
    SpeakOptions,
    TTSProvider,
)
from readaloud.utils import logger


class Pyttsx3Provider(TTSProvider):
    """
    Speech through pyttsx3 (SAPI5, NSSpeechSynthesizer, eSpeak).

    pyttsx3 cannot pause, so pause() stops the utterance after noting the
    word being spoken and resume() speaks the rest of the text from that
    word. Offsets after a resume are shifted so they still index the full
    spoken text.
    """

    provider_id = "pyttsx3"
    provider_name = "System speech (pyttsx3)"
    capabilities = ProviderCapabilities(
        supports_ssml=False,
        word_boundary=BoundaryPrecision.ESTIMATED,
        supports_rate=True,
        supports_pitch=False,
        supports_pause=True,
    )

    BASE_RATE = 200  # pyttsx3 default words per minute
    PUMP_INTERVAL = 0.01  # seconds between engine iterations

    def __init__(self, **defaults: Any):
        super().__init__(**defaults)
        self._engine = None
        self._in_loop = False
        self._pump_task: Optional[asyncio.Task] = None
        self._done: Optional[asyncio.Future] = None
        self._utterance = 0
        self._text = ""
        self._base = 0  # offset of the current utterance within _text
        self._word_start = 0
        self._playing = False
        self._paused = False

    async def initialize(self, settings: Optional[Dict[str, Any]] = None) -> None:
        await super().initialize(settings)
        self._get_engine()

    def _get_engine(self):
        """Lazy load pyttsx3 engine."""
        if self._engine is None:
            try:
                import pyttsx3
            except ImportError as e:
                logger.error("pyttsx3 not installed")
                raise ProviderUnavailable(
                    "pyttsx3 not found. Install with: pip install pyttsx3"
                ) from e

            logger.info("Loading pyttsx3 TTS engine...")
            try:
                engine = pyttsx3.init()
            except Exception as e:
                raise ProviderUnavailable(f"System speech engine unavailable: {e}") from e

            engine.connect("started-word", self._on_word)
            engine.connect("finished-utterance", self._on_finished)
            engine.connect("error", self._on_error)
            self._engine = engine
            logger.success("pyttsx3 TTS loaded")

        return self._engine

    def _apply_options(self, engine, options: SpeakOptions) -> None:
        if options.voice:
            wanted = options.voice.lower()
            for v in engine.getProperty("voices"):
                if wanted in v.id.lower() or wanted in (v.name or "").lower():
                    engine.setProperty("voice", v.id)
                    break

        if options.rate:
            engine.setProperty("rate", int(self.BASE_RATE * options.rate))

        if options.volume is not None:
            engine.setProperty("volume", max(0.0, min(1.0, float(options.volume))))

    async def speak(self, text: str, options: Optional[SpeakOptions] = None) -> None:
        self.stop()

        engine = self._get_engine()
        self._apply_options(engine, (options or SpeakOptions()).merged_over(self.defaults))

        # The engine never sees markup
        self._text = spoken_text(text)
        if not self._text:
            return

        loop = asyncio.get_running_loop()
        done = loop.create_future()
        self._done = done
        self._start_utterance(0)
        self._pump_task = loop.create_task(self._pump(done))

        try:
            await done
        finally:
            if self._done is done:
                self._release()

    def _start_utterance(self, base: int) -> None:
        self._utterance += 1
        self._base = base
        self._word_start = base
        self._playing = True
        self._paused = False

        self._engine.say(self._text[base:], f"utterance-{self._utterance}")
        if not self._in_loop:
            self._engine.startLoop(False)
            self._in_loop = True

    async def _pump(self, done: asyncio.Future) -> None:
        while not done.done():
            if self._in_loop:
                self._engine.iterate()
            await asyncio.sleep(self.PUMP_INTERVAL)

    def _is_current(self, name: Optional[str]) -> bool:
        return self._done is not None and name == f"utterance-{self._utterance}"

    def _on_word(self, name, location, length) -> None:
        if not self._is_current(name) or self._paused:
            return
        self._word_start = self._base + location
        self._emit_boundary(self._word_start, length)

    def _on_finished(self, name, completed) -> None:
        # Pausing stops the utterance; that is not completion
        if not self._is_current(name) or self._paused:
            return
        self._playing = False
        if not self._done.done():
            self._done.set_result(None)

    def _on_error(self, name, exception) -> None:
        if not self._is_current(name):
            return
        self._playing = False
        if not self._done.done():
            self._done.set_exception(ProviderError(f"Speech engine error: {exception}"))

    def pause(self) -> None:
        if self._playing and not self._paused:
            self._paused = True
            self._engine.stop()

    def resume(self) -> None:
        if self._paused and self._done is not None:
            self._start_utterance(self._word_start)

    def stop(self) -> None:
        if self._done is None:
            return
        done = self._done
        self._release()
        if not done.done():
            done.set_result(None)

    def _release(self) -> None:
        """Tear down the current utterance; late events are ignored after this."""
        self._utterance += 1
        self._done = None
        self._playing = False
        self._paused = False

        if self._pump_task is not None:
            self._pump_task.cancel()
            self._pump_task = None

        if self._engine is not None and self._in_loop:
            self._engine.stop()
            self._engine.endLoop()
            self._in_loop = False

    def is_playing(self) -> bool:
        return self._playing and not self._paused

    def is_paused(self) -> bool:
        return self._paused
