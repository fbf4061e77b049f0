"""Tests for network synthesis services."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest
import requests

from readaloud.speech.errors import NetworkError, NetworkTimeout
from readaloud.speech.models import SynthesisRequest
from readaloud.speech.synthesis_service import (
    EdgeSynthesisService,
    HttpSynthesisService,
    estimate_timing_marks,
)


def _mock_communicate(chunks):
    """Create a mock edge_tts.Communicate factory streaming chunks."""
    def factory(text, voice, **kwargs):
        comm = MagicMock()
        comm.text = text
        comm.voice = voice
        comm.kwargs = kwargs

        async def stream():
            for chunk in chunks:
                yield chunk

        comm.stream = stream
        factory.calls.append(comm)
        return comm

    factory.calls = []
    return factory


def _boundary(word, offset_ms):
    return {"type": "WordBoundary", "text": word, "offset": offset_ms * 10_000, "duration": 0}


# --- estimate_timing_marks ---

def test_estimate_timing_marks_spacing():
    marks = estimate_timing_marks("one  two\nthree")
    assert [(m.char_offset, m.char_length) for m in marks] == [(0, 3), (4, 3), (8, 5)]
    assert [m.time_ms for m in marks] == [0, 400, 800]


def test_estimate_timing_marks_empty():
    assert estimate_timing_marks("   ") == []


# --- EdgeSynthesisService ---

@patch("readaloud.speech.synthesis_service.edge_tts.Communicate")
def test_edge_synthesize_writes_audio_and_marks(mock_comm, tmp_path):
    mock_comm.side_effect = _mock_communicate([
        {"type": "audio", "data": b"\xff\xfb" * 10},
        _boundary("Hello", 100),
        _boundary("world", 500),
        {"type": "audio", "data": b"\xff\xfb" * 10},
    ])
    service = EdgeSynthesisService(cache_dir=tmp_path)
    request = SynthesisRequest("<speak>Hello,   world</speak>", "en-US", None, {"rate": 1.25})

    result = asyncio.run(service.synthesize(request))

    assert (tmp_path / result.audio_resource_url.split("/")[-1]).stat().st_size == 40
    assert [(m.char_offset, m.char_length, m.time_ms) for m in result.timing_marks] == [
        (0, 5, 100.0),
        (7, 5, 500.0),
    ]
    comm = mock_comm.side_effect.calls[0]
    assert comm.text == "Hello, world"
    assert comm.voice == "en-US-JennyNeural"
    assert comm.kwargs["rate"] == "+25%"


@patch("readaloud.speech.synthesis_service.edge_tts.Communicate")
def test_edge_voice_resolution(mock_comm, tmp_path):
    mock_comm.side_effect = _mock_communicate([{"type": "audio", "data": b"x"}, _boundary("Hola", 0)])
    service = EdgeSynthesisService(cache_dir=tmp_path)

    asyncio.run(service.synthesize(SynthesisRequest("Hola", "es-ES")))
    asyncio.run(service.synthesize(SynthesisRequest("Hola", "es-ES", "british_male")))

    voices = [c.voice for c in mock_comm.side_effect.calls]
    assert voices == ["es-ES-ElviraNeural", "en-GB-RyanNeural"]


@patch("readaloud.speech.synthesis_service.edge_tts.Communicate")
def test_edge_without_boundaries_estimates(mock_comm, tmp_path):
    mock_comm.side_effect = _mock_communicate([{"type": "audio", "data": b"x"}])
    service = EdgeSynthesisService(cache_dir=tmp_path)

    result = asyncio.run(service.synthesize(SynthesisRequest("two words")))
    assert [m.char_offset for m in result.timing_marks] == [0, 4]


@patch("readaloud.speech.synthesis_service.edge_tts.Communicate")
def test_edge_no_audio_raises(mock_comm, tmp_path):
    mock_comm.side_effect = _mock_communicate([])
    service = EdgeSynthesisService(cache_dir=tmp_path)

    with pytest.raises(NetworkError):
        asyncio.run(service.synthesize(SynthesisRequest("silence")))
    assert list(tmp_path.iterdir()) == []


@patch("readaloud.speech.synthesis_service.edge_tts.Communicate")
def test_edge_failure_raises_network_error(mock_comm, tmp_path):
    mock_comm.side_effect = ConnectionError("no route to host")
    service = EdgeSynthesisService(cache_dir=tmp_path)

    with pytest.raises(NetworkError, match="no route to host"):
        asyncio.run(service.synthesize(SynthesisRequest("Hello")))


# --- HttpSynthesisService ---

def _response(status=200, payload=None):
    response = MagicMock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.reason = "Error"
    response.json.return_value = payload if payload is not None else {}
    return response


@patch("readaloud.speech.synthesis_service.requests.post")
def test_http_synthesize(mock_post):
    mock_post.return_value = _response(payload={
        "audioResourceUrl": "/audio/abc.mp3",
        "timingMarks": [{"charOffset": 0, "charLength": 5, "timeMillis": 0}],
    })
    service = HttpSynthesisService("http://tts.local:8000/", auth_token="secret", headers={"X-Tenant": "a"})

    result = asyncio.run(service.synthesize(SynthesisRequest("Hello", "en-US")))

    assert result.audio_resource_url == "http://tts.local:8000/audio/abc.mp3"
    assert result.timing_marks[0].char_length == 5
    args, kwargs = mock_post.call_args
    assert args[0] == "http://tts.local:8000/synthesize"
    assert kwargs["json"]["text"] == "Hello"
    assert kwargs["headers"]["Authorization"] == "Bearer secret"
    assert kwargs["headers"]["X-Tenant"] == "a"


@patch("readaloud.speech.synthesis_service.requests.post")
def test_http_missing_marks_are_estimated(mock_post):
    mock_post.return_value = _response(payload={"audioResourceUrl": "http://cdn/a.mp3"})
    service = HttpSynthesisService("http://tts.local")

    result = asyncio.run(service.synthesize(SynthesisRequest("one two")))
    assert result.audio_resource_url == "http://cdn/a.mp3"
    assert len(result.timing_marks) == 2


@patch("readaloud.speech.synthesis_service.requests.post")
def test_http_error_status(mock_post):
    mock_post.return_value = _response(500, {"error": {"message": "engine down"}})
    service = HttpSynthesisService("http://tts.local")

    with pytest.raises(NetworkError, match="engine down"):
        asyncio.run(service.synthesize(SynthesisRequest("Hello")))


@patch("readaloud.speech.synthesis_service.requests.post")
def test_http_timeout(mock_post):
    mock_post.side_effect = requests.Timeout("slow")
    service = HttpSynthesisService("http://tts.local")

    with pytest.raises(NetworkTimeout):
        asyncio.run(service.synthesize(SynthesisRequest("Hello")))


@patch("readaloud.speech.synthesis_service.requests.post")
def test_http_malformed_response(mock_post):
    mock_post.return_value = _response(payload={"unexpected": True})
    service = HttpSynthesisService("http://tts.local")

    with pytest.raises(NetworkError, match="Malformed"):
        asyncio.run(service.synthesize(SynthesisRequest("Hello")))


@patch("readaloud.speech.synthesis_service.requests.get")
def test_http_check_available(mock_get):
    service = HttpSynthesisService("http://tts.local")

    mock_get.return_value = _response(200)
    assert asyncio.run(service.check_available()) is True

    mock_get.side_effect = requests.ConnectionError("refused")
    assert asyncio.run(service.check_available()) is False
