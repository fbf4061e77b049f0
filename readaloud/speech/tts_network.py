"""
Network Synthesis Client

Provider that asks a synthesis service for audio plus timing marks, plays
the audio locally and reconstructs word boundaries by polling the playback
position.

Audio libraries do not deliver reliable sub-100ms position callbacks, so a
fixed 50ms timer reads the position and advances a forward-only pointer
through the (monotonic) timing marks. The boundary callback fires only when
the pointer moves.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional

from readaloud.speech.audio_player import AudioPlayer
from readaloud.speech.errors import NetworkTimeout, ProviderUnavailable
from readaloud.speech.models import SynthesisRequest, SynthesisResult, TimingMark
from readaloud.speech.synthesis_cache import SynthesisCache, fingerprint
from readaloud.speech.synthesis_service import SynthesisService
from readaloud.speech.text_alignment import spoken_text
from readaloud.speech.tts_provider import (
    BoundaryPrecision,
    ProviderCapabilities,
    SpeakOptions,
    TTSProvider,
)
from readaloud.utils import logger

POLL_INTERVAL_MS = 50


def sanitize_marks(marks: List[TimingMark], text_length: int) -> List[TimingMark]:
    """
    Keep marks that fit the text, ordered by time with non-decreasing offsets.
    """
    cleaned: List[TimingMark] = []
    for mark in sorted(marks, key=lambda m: m.time_ms):
        if mark.char_offset < 0 or mark.char_offset >= text_length or mark.char_length <= 0:
            continue
        if cleaned and mark.char_offset < cleaned[-1].char_offset:
            continue
        length = min(mark.char_length, text_length - mark.char_offset)
        cleaned.append(TimingMark(mark.char_offset, length, mark.time_ms))
    return cleaned


class NetworkSynthesisClient(TTSProvider):
    """
    Plays network-synthesized speech with polled word boundaries.

    Responses that arrive after stop() are discarded; a failed request
    rejects speak() and nothing from it is applied.
    """

    provider_id = "network"
    provider_name = "Network synthesis"

    def __init__(
        self,
        service: SynthesisService,
        player_factory: Callable[[], Any] = AudioPlayer,
        cache: Optional[SynthesisCache] = None,
        timeout: float = 30.0,
        **defaults: Any,
    ):
        super().__init__(**defaults)
        self.service = service
        self.provider_id = service.service_id
        self.player_factory = player_factory
        self.cache = cache
        self.timeout = timeout
        self.capabilities = ProviderCapabilities(
            supports_ssml=service.supports_ssml,
            word_boundary=BoundaryPrecision.EXACT,
            supports_rate=True,
            supports_pitch=False,
            supports_pause=True,
            max_text_length=3000,
        )

        self._generation = 0
        self._stopped: Optional[asyncio.Future] = None
        self._player = None
        self._pause_requested = False
        self._poll_task: Optional[asyncio.Task] = None
        self._marks: List[TimingMark] = []
        self._pointer = -1

    async def initialize(self, settings: Optional[Dict[str, Any]] = None) -> None:
        settings = dict(settings or {})
        validate = settings.pop("validate_endpoint", False)
        await super().initialize(settings)

        if validate and not await self.service.check_available():
            raise ProviderUnavailable(f"Synthesis service '{self.service.service_id}' not available")

    def _build_request(self, text: str, options: SpeakOptions) -> SynthesisRequest:
        request_options: Dict[str, Any] = {"rate": options.rate or 1.0}
        if options.volume is not None:
            request_options["volume"] = options.volume
        return SynthesisRequest(
            text=self.prepare_text(text),
            language=options.language,
            voice=options.voice,
            options=request_options,
        )

    async def _synthesize(self, request: SynthesisRequest) -> SynthesisResult:
        key = fingerprint(self.service.service_id, request)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Synthesis cache hit {key[:12]}")
                return cached

        try:
            result = await asyncio.wait_for(self.service.synthesize(request), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise NetworkTimeout(f"Synthesis timed out after {self.timeout:.0f}s") from e

        if self.cache is not None:
            self.cache.set(key, result)
        return result

    async def speak(self, text: str, options: Optional[SpeakOptions] = None) -> None:
        self.stop()

        spoken = spoken_text(text)
        if not spoken:
            return

        self._generation += 1
        generation = self._generation
        loop = asyncio.get_running_loop()
        stopped = loop.create_future()
        self._stopped = stopped

        request = self._build_request(text, (options or SpeakOptions()).merged_over(self.defaults))

        synthesis = asyncio.ensure_future(self._synthesize(request))
        await asyncio.wait({synthesis, stopped}, return_when=asyncio.FIRST_COMPLETED)
        if generation != self._generation:
            synthesis.cancel()
            logger.debug("Discarding synthesis response for a stopped utterance")
            return
        try:
            result = synthesis.result()
            player = self.player_factory()
            await player.load(result.audio_resource_url)
        except Exception:
            if generation == self._generation:
                self.stop()
            raise
        if generation != self._generation:
            return

        self._marks = sanitize_marks(result.timing_marks, len(spoken))
        self._pointer = -1
        try:
            finished = player.play()
        except Exception:
            player.stop()
            self.stop()
            raise
        self._player = player
        if self._pause_requested:
            # Paused while the response was pending
            player.pause()
        self._pause_requested = False
        self._poll_task = loop.create_task(self._poll(generation))

        try:
            await asyncio.wait({finished, stopped}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if generation == self._generation:
                self.stop()

    async def _poll(self, generation: int) -> None:
        interval = POLL_INTERVAL_MS / 1000
        while generation == self._generation and self._player is not None:
            if not self._player.paused:
                self.advance_to(self._player.position_ms)
            await asyncio.sleep(interval)

    def advance_to(self, position_ms: float) -> None:
        """Move the mark pointer up to position_ms, firing if it moved."""
        pointer = self._pointer
        while pointer + 1 < len(self._marks) and self._marks[pointer + 1].time_ms <= position_ms:
            pointer += 1

        if pointer != self._pointer:
            self._pointer = pointer
            mark = self._marks[pointer]
            self._emit_boundary(mark.char_offset, mark.char_length)

    def pause(self) -> None:
        if self._player is None:
            if self._stopped is not None:
                self._pause_requested = True
        elif not self._player.paused:
            self._player.pause()

    def resume(self) -> None:
        self._pause_requested = False
        if self._player is not None and self._player.paused:
            self._player.resume()

    def stop(self) -> None:
        """Halt audio, clear the poll timer and orphan any pending response."""
        self._generation += 1

        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

        player, self._player = self._player, None
        if player is not None:
            player.stop()

        if self._stopped is not None and not self._stopped.done():
            self._stopped.set_result(None)
        self._stopped = None

        self._marks = []
        self._pointer = -1
        self._pause_requested = False

    def is_playing(self) -> bool:
        return self._player is not None and not self._player.paused

    def is_paused(self) -> bool:
        if self._player is None:
            return self._pause_requested
        return self._player.paused
