"""
TTS Provider Abstraction

Common playback contract shared by every voice backend.

Backends:
  pyttsx3  - local system speech engine, event-driven word boundaries
  edge     - Microsoft Edge neural voices, timing marks polled during playback
  server   - HTTP synthesis endpoint returning audio plus timing marks

Set TTS_ENGINE to choose the backend (default comes from settings.yaml).
There is no automatic fallback between backends: a backend that cannot
start raises ProviderUnavailable and the caller decides what to do.

Boundary offsets reported by every backend are positions in
spoken_text(text), the normalized plain text of what was spoken.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional

from readaloud.speech.errors import ProviderUnavailable
from readaloud.speech.text_alignment import has_markup, spoken_text
from readaloud.utils.config import config

BoundaryCallback = Callable[[int, int], None]


class BoundaryPrecision(str, Enum):
    """How trustworthy a backend's word offsets are."""

    EXACT = "exact"
    ESTIMATED = "estimated"
    NONE = "none"


@dataclass(frozen=True)
class ProviderCapabilities:
    """What a backend can do, so callers adapt without type checks."""

    supports_ssml: bool
    word_boundary: BoundaryPrecision
    supports_rate: bool
    supports_pitch: bool
    supports_pause: bool = True
    max_text_length: Optional[int] = None


@dataclass
class SpeakOptions:
    """Per-utterance settings; None means the provider default."""

    language: Optional[str] = None
    voice: Optional[str] = None
    rate: Optional[float] = None
    pitch: Optional[float] = None
    volume: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], language: Optional[str] = None) -> "SpeakOptions":
        return cls(
            language=data.get("language") or language,
            voice=data.get("voice"),
            rate=data.get("rate"),
            pitch=data.get("pitch"),
            volume=data.get("volume"),
        )

    def merged_over(self, defaults: "SpeakOptions") -> "SpeakOptions":
        """Fill unset fields from defaults."""
        changes = {k: v for k, v in vars(self).items() if v is not None}
        return replace(defaults, **changes)


class TTSProvider(ABC):
    """
    Playback contract for a voice backend.

    stop() is idempotent and safe from any state. After stop() returns the
    provider fires no further boundary callbacks for the stopped utterance,
    and a pending speak() resolves without error.
    """

    provider_id = "base"
    provider_name = "Base provider"
    capabilities = ProviderCapabilities(
        supports_ssml=False,
        word_boundary=BoundaryPrecision.NONE,
        supports_rate=False,
        supports_pitch=False,
    )

    def __init__(self, **defaults: Any):
        self.defaults = SpeakOptions(**defaults)
        self.on_boundary: Optional[BoundaryCallback] = None

    async def initialize(self, settings: Optional[Dict[str, Any]] = None) -> None:
        """Apply settings and acquire the backend."""
        if settings:
            self.update_settings(**settings)

    def update_settings(self, **changes: Any) -> None:
        """Change defaults; takes effect on the next speak()."""
        known = {k: v for k, v in changes.items() if hasattr(self.defaults, k)}
        self.defaults = replace(self.defaults, **known)

    def prepare_text(self, text: str) -> str:
        """Text handed to the engine: markup is stripped unless supported."""
        if has_markup(text) and not self.capabilities.supports_ssml:
            return spoken_text(text)
        return text

    def _emit_boundary(self, offset: int, length: int) -> None:
        if self.on_boundary is not None:
            self.on_boundary(offset, length)

    @abstractmethod
    async def speak(self, text: str, options: Optional[SpeakOptions] = None) -> None:
        """Speak text, resolving when playback completes or is stopped."""

    @abstractmethod
    def pause(self) -> None:
        ...

    @abstractmethod
    def resume(self) -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        ...

    @abstractmethod
    def is_playing(self) -> bool:
        ...

    @abstractmethod
    def is_paused(self) -> bool:
        ...


def create_provider(name: Optional[str] = None) -> TTSProvider:
    """
    Build the configured backend.

    Args:
        name: "pyttsx3", "edge" or "server" (default: TTS_ENGINE / settings)

    Raises:
        ProviderUnavailable: Unknown backend or its library is not installed
    """
    name = (name or config.engine).lower()
    defaults = {
        "voice": config.voice,
        "language": config.language,
        "rate": config.voice_rate,
        "volume": config.get("tts", "volume"),
    }

    try:
        if name == "pyttsx3":
            from readaloud.speech.tts_pyttsx3 import Pyttsx3Provider

            return Pyttsx3Provider(**defaults)

        if name in ("edge", "server"):
            from readaloud.speech.synthesis_cache import SynthesisCache
            from readaloud.speech.synthesis_service import (
                EdgeSynthesisService,
                HttpSynthesisService,
            )
            from readaloud.speech.tts_network import NetworkSynthesisClient

            cache = SynthesisCache(
                config.cache_dir,
                ttl_seconds=config.cache_ttl,
                max_entries=config.get("cache", "max_entries", default=500),
            )
            if name == "edge":
                service = EdgeSynthesisService(cache_dir=config.cache_dir)
            else:
                service = HttpSynthesisService(
                    endpoint=config.get("network", "endpoint"),
                    auth_token=config.get("network", "auth_token"),
                    headers=config.get("network", "headers", default={}),
                )
            return NetworkSynthesisClient(
                service,
                cache=cache,
                timeout=float(config.get("network", "timeout", default=30.0)),
                **defaults,
            )
    except ImportError as e:
        raise ProviderUnavailable(f"{name}: {e}") from e

    raise ProviderUnavailable(f"Unknown TTS engine: {name}")
