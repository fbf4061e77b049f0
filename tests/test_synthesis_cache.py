"""Tests for synthesis cache module."""

import json
import time

from readaloud.speech.models import SynthesisRequest, SynthesisResult, TimingMark
from readaloud.speech.synthesis_cache import SynthesisCache, fingerprint


def _result_with_audio(cache, key):
    audio = cache.audio_path(key)
    audio.write_bytes(b"ID3fake")
    return SynthesisResult(str(audio), [TimingMark(0, 5, 0.0), TimingMark(6, 5, 400.0)])


def test_fingerprint_is_deterministic():
    request = SynthesisRequest("Hello world", "en-US", "en-US-JennyNeural", {"rate": 1.0})
    assert fingerprint("edge", request) == fingerprint("edge", SynthesisRequest.from_dict(request.to_dict()))


def test_fingerprint_varies_with_inputs():
    base = SynthesisRequest("Hello", "en-US", None, {"rate": 1.0})
    keys = {
        fingerprint("edge", base),
        fingerprint("server", base),
        fingerprint("edge", SynthesisRequest("Hello!", "en-US", None, {"rate": 1.0})),
        fingerprint("edge", SynthesisRequest("Hello", "es-ES", None, {"rate": 1.0})),
        fingerprint("edge", SynthesisRequest("Hello", "en-US", None, {"rate": 1.5})),
        fingerprint("edge", base, audio_format="wav"),
    }
    assert len(keys) == 6


def test_set_then_get_hits(tmp_path):
    cache = SynthesisCache(tmp_path)
    result = _result_with_audio(cache, "abc")
    cache.set("abc", result)

    cached = cache.get("abc")
    assert cached.cached is True
    assert cached.timing_marks == result.timing_marks
    assert cache.has("abc")

    stats = cache.stats()
    assert stats.hits == 1
    assert stats.misses == 0
    assert stats.key_count == 1


def test_miss_is_counted(tmp_path):
    cache = SynthesisCache(tmp_path)
    assert cache.get("nothing") is None
    assert cache.stats().misses == 1
    assert cache.stats().hit_rate == 0.0


def test_expired_entry_is_deleted(tmp_path):
    cache = SynthesisCache(tmp_path, ttl_seconds=60)
    cache.set("old", _result_with_audio(cache, "old"))

    meta = tmp_path / "old.json"
    data = json.loads(meta.read_text())
    data["expires"] = time.time() - 1
    meta.write_text(json.dumps(data))

    assert cache.get("old") is None
    assert not meta.exists()
    assert not (tmp_path / "old.mp3").exists()


def test_missing_audio_invalidates_entry(tmp_path):
    cache = SynthesisCache(tmp_path)
    result = _result_with_audio(cache, "gone")
    cache.set("gone", result)
    (tmp_path / "gone.mp3").unlink()

    assert cache.get("gone") is None
    assert not cache.has("gone")


def test_remote_audio_is_cached_by_url(tmp_path):
    cache = SynthesisCache(tmp_path)
    cache.set("remote", SynthesisResult("http://localhost:8000/audio/x.mp3"))
    assert cache.get("remote").audio_resource_url == "http://localhost:8000/audio/x.mp3"


def test_eviction_past_max_entries(tmp_path):
    cache = SynthesisCache(tmp_path, max_entries=2)
    for key in ("a", "b", "c"):
        cache.set(key, SynthesisResult(f"http://host/{key}.mp3"))
        time.sleep(0.01)

    assert cache.stats().key_count == 2
    assert cache.has("c")


def test_clear_removes_everything(tmp_path):
    cache = SynthesisCache(tmp_path)
    for key in ("a", "b"):
        cache.set(key, _result_with_audio(cache, key))

    assert cache.clear() == 2
    assert list(tmp_path.iterdir()) == []
    assert cache.stats().key_count == 0


def test_clear_missing_directory(tmp_path):
    assert SynthesisCache(tmp_path / "never").clear() == 0
