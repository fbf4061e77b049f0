"""
Audio Player

Plays a synthesized audio resource through sounddevice and exposes the
current playback position for timing-mark polling.

The device callback runs on the audio driver's thread; completion is
handed back to the event loop with call_soon_threadsafe.
"""

import asyncio
import io
from typing import Optional, Tuple

import numpy as np
import requests
import soundfile as sf

from readaloud.speech.errors import NetworkError, ProviderError, ProviderUnavailable


def read_audio(resource: str) -> Tuple[np.ndarray, int]:
    """Decode a local file or http(s) URL into float32 frames."""
    if resource.startswith(("http://", "https://")):
        try:
            response = requests.get(resource, timeout=30)
            response.raise_for_status()
        except requests.RequestException as e:
            raise NetworkError(f"Failed to fetch audio: {e}") from e
        source = io.BytesIO(response.content)
    else:
        source = resource

    try:
        data, sample_rate = sf.read(source, dtype="float32", always_2d=True)
    except (RuntimeError, OSError) as e:
        raise ProviderError(f"Failed to decode audio {resource}: {e}") from e
    return data, sample_rate


class AudioPlayer:
    """Single-use player for one audio resource."""

    def __init__(self, blocksize: int = 1024):
        self.blocksize = blocksize
        self._data: Optional[np.ndarray] = None
        self._sample_rate = 0
        self._frame = 0
        self._paused = False
        self._sd = None
        self._stream = None
        self._finished: Optional[asyncio.Future] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def load(self, resource: str) -> None:
        self._data, self._sample_rate = await asyncio.to_thread(read_audio, resource)

    @property
    def duration_ms(self) -> float:
        if self._data is None or not self._sample_rate:
            return 0.0
        return len(self._data) / self._sample_rate * 1000

    @property
    def position_ms(self) -> float:
        if not self._sample_rate:
            return 0.0
        return self._frame / self._sample_rate * 1000

    @property
    def paused(self) -> bool:
        return self._paused

    def play(self) -> asyncio.Future:
        """Start playback; the returned future resolves when audio ends or stops."""
        if self._data is None:
            raise ProviderError("No audio loaded")

        self._loop = asyncio.get_running_loop()
        self._finished = self._loop.create_future()

        # PortAudio is loaded on first use; it may be absent on headless hosts
        try:
            import sounddevice as sd
        except (ImportError, OSError) as e:
            raise ProviderUnavailable(f"Audio output unavailable: {e}") from e
        self._sd = sd

        try:
            self._stream = sd.OutputStream(
                samplerate=self._sample_rate,
                channels=self._data.shape[1],
                dtype="float32",
                blocksize=self.blocksize,
                callback=self._callback,
                finished_callback=self._on_stream_finished,
            )
            self._stream.start()
        except sd.PortAudioError as e:
            self.stop()
            raise ProviderUnavailable(f"Audio output device unavailable: {e}") from e

        return self._finished

    def _callback(self, outdata, frames, time_info, status) -> None:
        if self._paused:
            outdata.fill(0)
            return

        chunk = self._data[self._frame:self._frame + frames]
        count = len(chunk)
        outdata[:count] = chunk
        self._frame += count
        if count < frames:
            outdata[count:] = 0
            raise self._sd.CallbackStop

    def _on_stream_finished(self) -> None:
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._resolve)

    def _resolve(self) -> None:
        if self._finished is not None and not self._finished.done():
            self._finished.set_result(None)

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def stop(self) -> None:
        """Halt output immediately. Safe to call more than once."""
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.abort()
            stream.close()
        self._resolve()
