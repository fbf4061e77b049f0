"""
Playback Orchestrator

State machine composing catalog resolution, text alignment and a voice
backend behind one cancellable playback session.

States:
    idle -> resolving -> playing <-> paused -> completed | stopped | errored -> idle

Only one session is active at a time. Every session carries a generation
id; callbacks tagged with an older generation are dropped, so a newer
speak() or a stop() always wins.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from readaloud.speech.catalog_resolver import CatalogResolver
from readaloud.speech.errors import ProviderError, ProviderUnavailable, ReadAloudError, ResolutionMiss
from readaloud.speech.highlight import HighlightCoordinator
from readaloud.speech.markup_scanner import MarkupScanner
from readaloud.speech.models import CatalogEntry, ContentSource, PlaybackRequest, ResolvedContent
from readaloud.speech.text_alignment import (
    BoundaryClamp,
    PositionMap,
    TextRange,
    align,
    element_text,
    spoken_text,
)
from readaloud.speech.tts_provider import ProviderCapabilities, SpeakOptions, TTSProvider
from readaloud.utils import logger

EVENTS = ("boundary", "state_changed", "error")


class PlaybackState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    PLAYING = "playing"
    PAUSED = "paused"
    COMPLETED = "completed"
    STOPPED = "stopped"
    ERRORED = "errored"


ACTIVE_STATES = (PlaybackState.RESOLVING, PlaybackState.PLAYING, PlaybackState.PAUSED)


@dataclass
class PlaybackSession:
    """The single active playback."""

    generation_id: int
    provider: TTSProvider
    normalized_text: str = ""
    position_map: Optional[PositionMap] = None
    current_highlight: Optional[TextRange] = None
    state: PlaybackState = PlaybackState.RESOLVING
    resolved: Optional[ResolvedContent] = None
    clamp: Optional[BoundaryClamp] = None


class PlaybackOrchestrator:
    """
    Entry point for the host UI.

    Failures never escape speak(): they move the session to errored, emit an
    ``error(kind, message)`` event and return the orchestrator to idle.
    """

    def __init__(
        self,
        resolver: Optional[CatalogResolver] = None,
        highlighter: Optional[HighlightCoordinator] = None,
        visibility: Optional[Callable[[str], bool]] = None,
    ):
        """
        Args:
            resolver: Catalog store (a fresh one per orchestrator by default)
            highlighter: Receives the live word range
            visibility: Reports whether a tool's control is currently shown
        """
        self.resolver = resolver if resolver is not None else CatalogResolver()
        self.highlighter = highlighter if highlighter is not None else HighlightCoordinator()
        self.visibility = visibility
        self.scanner = MarkupScanner(default_language=self.resolver.default_language)
        self.provider: Optional[TTSProvider] = None

        self._generation = 0
        self._session: Optional[PlaybackSession] = None
        self._state = PlaybackState.IDLE
        self._listeners: Dict[str, List[Callable[..., Any]]] = {name: [] for name in EVENTS}

    # Events

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown event: {event}")
        self._listeners[event].append(callback)

    def off(self, event: str, callback: Callable[..., Any]) -> None:
        listeners = self._listeners.get(event, [])
        if callback in listeners:
            listeners.remove(callback)

    def _emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(*args)
            except Exception as e:
                logger.warning(f"{event} listener failed: {e}")

    def _set_state(self, state: PlaybackState) -> None:
        self._state = state
        if self._session is not None:
            self._session.state = state
        logger.debug(f"Playback state: {state.value}")
        self._emit("state_changed", state)

    # Read-only state

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def session(self) -> Optional[PlaybackSession]:
        return self._session

    @property
    def capabilities(self) -> Optional[ProviderCapabilities]:
        return self.provider.capabilities if self.provider is not None else None

    def is_playing(self) -> bool:
        return self._state == PlaybackState.PLAYING

    def is_paused(self) -> bool:
        return self._state == PlaybackState.PAUSED

    # Lifecycle

    async def initialize(self, provider: TTSProvider, config: Optional[Dict[str, Any]] = None) -> bool:
        """
        Attach and initialize a voice backend.

        Returns:
            True on success; False after reporting the failure as an error event
        """
        self.stop()
        self.provider = provider
        try:
            await provider.initialize(config)
        except ReadAloudError as e:
            self.provider = None
            self._report(e)
            return False
        logger.debug(f"Provider ready: {provider.provider_name}")
        return True

    def load_item(
        self,
        content: Any,
        item_id: str,
        catalogs: Optional[List[CatalogEntry]] = None,
    ) -> Any:
        """
        Switch to a new item.

        Stops playback, replaces the item scope with the item's extracted
        and authored catalogs, and returns the cleaned content to render.
        """
        self.stop()
        self.resolver.clear_item_catalogs()

        result = self.scanner.extract(content, item_id)
        self.resolver.add_item_catalogs(result.catalog_entries, extracted=True)
        if catalogs:
            self.resolver.add_item_catalogs(catalogs)

        logger.debug(f"Item {item_id}: {len(result.catalog_entries)} extracted catalogs")
        return result.cleaned_content

    def control_visible(self, tool_id: str = "textToSpeech") -> bool:
        if self.visibility is None:
            return True
        return bool(self.visibility(tool_id))

    # Playback

    async def speak(self, request: PlaybackRequest) -> None:
        """Speak a request, superseding any active session."""
        self._supersede()

        if self.provider is None:
            self._report(ProviderUnavailable("No TTS provider initialized"))
            return

        self._generation += 1
        generation = self._generation
        session = PlaybackSession(generation_id=generation, provider=self.provider)
        self._session = session
        self._set_state(PlaybackState.RESOLVING)

        try:
            resolved = self._resolve(request)
            session.resolved = resolved
            session.normalized_text = spoken_text(resolved.text)
            session.clamp = BoundaryClamp(session.normalized_text)
            if request.target_element is not None:
                session.position_map = align(session.normalized_text, request.target_element)

            options = SpeakOptions.from_dict(
                request.provider_options,
                language=resolved.language or request.language,
            )
            self.provider.on_boundary = lambda offset, length: self._on_boundary(generation, offset, length)

            self._set_state(PlaybackState.PLAYING)
            await self.provider.speak(resolved.text, options)
        except ReadAloudError as e:
            if generation == self._generation:
                self._fail(e)
            return
        except Exception as e:
            if generation == self._generation:
                self._fail(ProviderError(f"Unexpected playback failure: {e}"))
            return

        if generation == self._generation:
            self._end(PlaybackState.COMPLETED)

    def _resolve(self, request: PlaybackRequest) -> ResolvedContent:
        """Apply catalog precedence, falling back to the literal text."""
        if request.catalog_id:
            resolved = self.resolver.get_alternative(request.catalog_id, language=request.language)
            if resolved is not None:
                logger.debug(f"Resolved {request.catalog_id} from {resolved.source.value} scope")
                return resolved
            logger.warning(str(ResolutionMiss(f"No catalog content for {request.catalog_id}; using literal text")))

        text = request.text
        if not text and request.target_element is not None:
            text = element_text(request.target_element)
        return ResolvedContent(
            text=text,
            source=ContentSource.FALLBACK,
            language=request.language,
            catalog_id=request.catalog_id,
        )

    def _on_boundary(self, generation: int, offset: int, length: int) -> None:
        session = self._session
        if generation != self._generation or session is None or self._state not in ACTIVE_STATES:
            return

        clamped = session.clamp.apply(offset, length)
        if clamped is None:
            logger.debug(f"Dropped boundary ({offset}, {length})")
            return
        offset, length = clamped

        self._emit("boundary", offset, length)

        if session.position_map is not None:
            text_range = session.position_map.range_for(offset, length)
            if text_range is not None:
                session.current_highlight = text_range
                self.highlighter.highlight(text_range)

    def pause(self) -> None:
        if self._state != PlaybackState.PLAYING:
            return
        if not self.provider.capabilities.supports_pause:
            logger.warning(f"{self.provider.provider_name} cannot pause")
            return
        self.provider.pause()
        self._set_state(PlaybackState.PAUSED)

    def resume(self) -> None:
        if self._state != PlaybackState.PAUSED:
            return
        self.provider.resume()
        self._set_state(PlaybackState.PLAYING)

    def stop(self) -> None:
        """Stop the active session. Safe to call from any state."""
        if self._session is None:
            return
        self._end(PlaybackState.STOPPED)

    def _supersede(self) -> None:
        if self._session is not None:
            logger.debug(f"Superseding session {self._session.generation_id}")
            self._end(PlaybackState.STOPPED)

    def _end(self, final: PlaybackState, error: Optional[ReadAloudError] = None) -> None:
        """Retire the session through final to idle."""
        session = self._session
        self._generation += 1
        if session is not None:
            session.provider.on_boundary = None
            if final != PlaybackState.COMPLETED:
                session.provider.stop()
        self.highlighter.clear()

        self._set_state(final)
        if error is not None:
            self._emit("error", error.kind, str(error))
        self._session = None
        self._set_state(PlaybackState.IDLE)

    def _fail(self, error: ReadAloudError) -> None:
        logger.error(f"Playback failed ({error.kind}): {error}")
        self._end(PlaybackState.ERRORED, error)

    def _report(self, error: ReadAloudError) -> None:
        """Surface a failure that happened outside a session."""
        logger.error(f"{error.kind}: {error}")
        self._set_state(PlaybackState.ERRORED)
        self._emit("error", error.kind, str(error))
        self._set_state(PlaybackState.IDLE)
