"""
Synthesis Cache Module

Content-addressed on-disk cache of synthesis results. Keys are SHA-256
fingerprints of everything that shapes the audio; entries expire after a
fixed window (default 24h).

Layout per entry:
    <key>.json  - metadata, timing marks and expiry
    <key>.<ext> - audio file (written by the synthesis service)
"""

import hashlib
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from readaloud.speech.models import SynthesisRequest, SynthesisResult
from readaloud.utils import logger

DEFAULT_TTL = 86400  # seconds


@dataclass
class CacheStats:
    """Cache hit/miss counters."""

    hits: int
    misses: int
    hit_rate: float
    key_count: int


def fingerprint(provider_id: str, request: SynthesisRequest, audio_format: str = "mp3") -> str:
    """Deterministic key for a synthesis request."""
    rate = float(request.options.get("rate") or 1.0)
    parts = [
        "tts",
        provider_id,
        request.voice or "",
        request.language or "",
        f"{rate:.2f}",
        audio_format,
        json.dumps(request.options, sort_keys=True, default=str),
        request.text,
    ]
    return hashlib.sha256("\x1f".join(parts).encode("utf-8")).hexdigest()


class SynthesisCache:
    """
    Disk cache of synthesis results.

    Only local audio files are stored alongside the metadata; a result whose
    audio lives elsewhere is cached by URL.
    """

    def __init__(
        self,
        cache_dir: Path,
        ttl_seconds: int = DEFAULT_TTL,
        max_entries: int = 500,
    ):
        self.cache_dir = Path(cache_dir)
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._hits = 0
        self._misses = 0

    def _meta_path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def _read(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._meta_path(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Discarding unreadable cache entry {key[:12]}: {e}")
            self.delete(key)
            return None

        if time.time() > data.get("expires", 0):
            self.delete(key)
            return None
        return data

    def get(self, key: str) -> Optional[SynthesisResult]:
        """Return the cached result, or None if absent or expired."""
        data = self._read(key)
        if data is None:
            self._misses += 1
            return None

        result = SynthesisResult.from_dict(data["result"])
        audio = Path(result.audio_resource_url)
        if not result.audio_resource_url.startswith(("http://", "https://")) and not audio.exists():
            self.delete(key)
            self._misses += 1
            return None

        self._hits += 1
        result.cached = True
        return result

    def has(self, key: str) -> bool:
        return self._read(key) is not None

    def set(self, key: str, result: SynthesisResult, ttl: Optional[int] = None) -> None:
        """Store a result, evicting the oldest entries past max_entries."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._evict(keep=self.max_entries - 1)

        data = {
            "key": key,
            "created": time.time(),
            "expires": time.time() + (ttl if ttl is not None else self.ttl_seconds),
            "result": result.to_dict(),
        }
        with open(self._meta_path(key), "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def _evict(self, keep: int) -> None:
        entries = sorted(self.cache_dir.glob("*.json"), key=lambda p: p.stat().st_mtime)
        for path in entries[:max(0, len(entries) - keep)]:
            self.delete(path.stem)

    def delete(self, key: str) -> None:
        for path in self.cache_dir.glob(f"{key}.*"):
            path.unlink(missing_ok=True)

    def clear(self) -> int:
        """Remove every entry. Returns the number of entries removed."""
        if not self.cache_dir.exists():
            return 0
        keys = {p.stem for p in self.cache_dir.glob("*.json")}
        for key in keys:
            self.delete(key)
        self._hits = 0
        self._misses = 0
        return len(keys)

    def audio_path(self, key: str, extension: str = "mp3") -> Path:
        """Where a service should write the audio for key."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        return self.cache_dir / f"{key}.{extension}"

    def stats(self) -> CacheStats:
        total = self._hits + self._misses
        key_count = len(list(self.cache_dir.glob("*.json"))) if self.cache_dir.exists() else 0
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            hit_rate=self._hits / total if total else 0.0,
            key_count=key_count,
        )
