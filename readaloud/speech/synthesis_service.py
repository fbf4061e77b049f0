"""
Network Synthesis Services

Backends that turn text into an audio resource plus word timing marks.

- EdgeSynthesisService: Microsoft Edge neural voices via edge-tts, word
  boundaries streamed with the audio.
- HttpSynthesisService: a synthesis endpoint speaking the JSON format
  {text, language, voice, options} -> {audioResourceUrl, timingMarks}
  (see serve.py for a local implementation).

Timing mark offsets always index spoken_text(request.text).
"""

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urljoin

import edge_tts
import requests

from readaloud.speech.errors import NetworkError, NetworkTimeout
from readaloud.speech.models import SynthesisRequest, SynthesisResult, TimingMark
from readaloud.speech.synthesis_cache import fingerprint
from readaloud.speech.text_alignment import locate_words, spoken_text
from readaloud.utils import logger
from readaloud.utils.config import config

# Good voices from Edge TTS
EDGE_VOICES = {
    "male": "en-US-GuyNeural",
    "female": "en-US-JennyNeural",
    "british_male": "en-GB-RyanNeural",
    "british_female": "en-GB-SoniaNeural",
    "narrator": "en-US-DavisNeural",
}

# Default voice per language when none is requested
LANGUAGE_VOICES = {
    "en-US": "en-US-JennyNeural",
    "en-GB": "en-GB-SoniaNeural",
    "es-ES": "es-ES-ElviraNeural",
    "es-MX": "es-MX-DaliaNeural",
    "fr-FR": "fr-FR-DeniseNeural",
    "de-DE": "de-DE-KatjaNeural",
}

DEFAULT_VOICE = "en-US-JennyNeural"


def estimate_timing_marks(text: str, words_per_minute: int = 150) -> List[TimingMark]:
    """
    Estimate word timing for a service that returned none.

    Uses an average speaking rate; less accurate than real marks.
    """
    text = spoken_text(text)
    words = text.split(" ") if text else []
    ms_per_word = 60 * 1000 / words_per_minute

    marks = []
    for i, position in enumerate(locate_words(text, words)):
        if position is None:
            continue
        marks.append(TimingMark(position[0], position[1], round(i * ms_per_word)))
    return marks


class SynthesisService(ABC):
    """Turns a SynthesisRequest into audio plus timing marks."""

    service_id = "base"
    supports_ssml = False

    @abstractmethod
    async def synthesize(self, request: SynthesisRequest) -> SynthesisResult:
        ...

    async def check_available(self) -> bool:
        return True


class EdgeSynthesisService(SynthesisService):
    """
    Synthesis with Microsoft's neural voices via edge-tts.

    Audio is streamed into output_dir; each WordBoundary event becomes a
    timing mark. Edge reports the word but not its position, so words are
    placed by forward search in the spoken text.
    """

    service_id = "edge"
    supports_ssml = False
    TICKS_PER_MS = 10_000  # boundary offsets are in 100ns ticks

    def __init__(self, cache_dir: Optional[Path] = None):
        self.output_dir = Path(cache_dir or config.cache_dir)

    def _resolve_voice(self, voice: Optional[str], language: Optional[str]) -> str:
        if voice and voice.lower() in EDGE_VOICES:
            return EDGE_VOICES[voice.lower()]
        if voice:
            return voice
        return LANGUAGE_VOICES.get(language or "", DEFAULT_VOICE)

    @staticmethod
    def _percent(multiplier: float) -> str:
        """Convert a multiplier to an edge-tts percentage string."""
        # 1.0 = +0%, 0.5 = -50%, 2.0 = +100%
        return f"{int(round((multiplier - 1.0) * 100)):+d}%"

    async def synthesize(self, request: SynthesisRequest) -> SynthesisResult:
        text = spoken_text(request.text)
        voice = self._resolve_voice(request.voice, request.language)
        rate = float(request.options.get("rate") or 1.0)
        volume = request.options.get("volume")

        self.output_dir.mkdir(parents=True, exist_ok=True)
        audio_path = self.output_dir / f"{fingerprint(self.service_id, request)}.mp3"

        kwargs = {"rate": self._percent(rate), "boundary": "WordBoundary"}
        if volume is not None:
            kwargs["volume"] = self._percent(float(volume))

        words: List[str] = []
        times: List[float] = []
        try:
            communicate = edge_tts.Communicate(text, voice, **kwargs)
            with open(audio_path, "wb") as f:
                async for chunk in communicate.stream():
                    if chunk["type"] == "audio":
                        f.write(chunk["data"])
                    elif chunk["type"] == "WordBoundary":
                        words.append(chunk["text"])
                        times.append(chunk["offset"] / self.TICKS_PER_MS)
        except Exception as e:
            audio_path.unlink(missing_ok=True)
            raise NetworkError(f"Edge TTS synthesis failed: {e}") from e

        if audio_path.stat().st_size == 0:
            audio_path.unlink(missing_ok=True)
            raise NetworkError(f"Edge TTS returned no audio for: {text[:50]}...")

        marks = []
        for position, time_ms in zip(locate_words(text, words), times):
            if position is not None:
                marks.append(TimingMark(position[0], position[1], time_ms))
        if not marks:
            logger.warning("Edge TTS returned no word boundaries; estimating timing")
            marks = estimate_timing_marks(text)

        logger.debug(f"Edge synthesis: {voice}, {len(marks)} marks -> {audio_path.name}")
        return SynthesisResult(str(audio_path), marks)


class HttpSynthesisService(SynthesisService):
    """
    Client for a synthesis endpoint.

    POSTs to {endpoint}/synthesize. Requests run off the event loop so the
    loop keeps serving playback while the server works.
    """

    service_id = "server"
    supports_ssml = True

    def __init__(
        self,
        endpoint: str,
        auth_token: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.auth_token = auth_token
        self.headers = dict(headers or {})
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", **self.headers}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    async def synthesize(self, request: SynthesisRequest) -> SynthesisResult:
        return await asyncio.to_thread(self._post, request)

    def _post(self, request: SynthesisRequest) -> SynthesisResult:
        url = f"{self.endpoint}/synthesize"
        try:
            response = requests.post(
                url,
                json=request.to_dict(),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise NetworkTimeout(f"Synthesis request timed out: {url}") from e
        except requests.RequestException as e:
            raise NetworkError(f"Synthesis request failed: {e}") from e

        if not response.ok:
            raise NetworkError(f"Server returned {response.status_code}: {self._error_message(response)}")

        try:
            result = SynthesisResult.from_dict(response.json())
        except (ValueError, KeyError, TypeError) as e:
            raise NetworkError(f"Malformed synthesis response: {e}") from e

        result.audio_resource_url = urljoin(self.endpoint + "/", result.audio_resource_url)
        if not result.timing_marks:
            result.timing_marks = estimate_timing_marks(request.text)
        return result

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.reason or "unknown error"
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            return error.get("message", "unknown error")
        return str(error or data)

    async def check_available(self) -> bool:
        """Probe {endpoint}/voices with a short timeout."""
        try:
            response = await asyncio.to_thread(
                requests.get, f"{self.endpoint}/voices", headers=self._headers(), timeout=5
            )
        except requests.RequestException:
            return False
        return response.ok
