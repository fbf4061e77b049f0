"""
Configuration loader for the read-aloud toolkit.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


class Config:
    """Configuration manager for read-aloud playback."""

    _instance: Optional["Config"] = None
    _config: Dict[str, Any] = {}

    def __new__(cls) -> "Config":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if not self._config:
            self._load_config()

    def _get_project_root(self) -> Path:
        """Get the project root directory."""
        # Navigate up from readaloud/utils to project root
        current = Path(__file__).resolve()
        return current.parent.parent.parent

    def _config_path(self) -> Path:
        override = os.environ.get("READALOUD_CONFIG")
        if override:
            return Path(override)
        return self._get_project_root() / "config" / "settings.yaml"

    def _load_config(self) -> None:
        """Load configuration from YAML file, layered over the defaults."""
        config = self._get_defaults()
        config_path = self._config_path()

        if config_path.exists():
            with open(config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
            for section, values in loaded.items():
                if isinstance(values, dict) and isinstance(config.get(section), dict):
                    config[section].update(values)
                else:
                    config[section] = values

        self._config = config

    def reload(self) -> None:
        """Re-read the settings file (used after READALOUD_CONFIG changes)."""
        self._config = {}
        self._load_config()

    def _get_defaults(self) -> Dict[str, Any]:
        """Return default configuration."""
        return {
            "tts": {
                "engine": "edge",
                "voice": None,
                "language": "en-US",
                "rate": 1.0,
                "pitch": 1.0,
                "volume": 1.0,
            },
            "network": {
                "endpoint": "http://localhost:8000",
                "timeout": 30.0,
                "auth_token": None,
                "headers": {},
            },
            "cache": {
                "dir": ".cache/tts",
                "ttl_seconds": 86400,
                "max_entries": 500,
            },
            "catalog": {
                "default_language": "en-US",
                "catalog_type": "spoken",
            },
        }

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Example:
            config.get("tts", "engine") -> "edge"
        """
        value = self._config
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key)
            else:
                return default
            if value is None:
                return default
        return value

    def get_path(self, *keys: str, default: str = "") -> Path:
        """Get a path configuration as absolute Path."""
        relative_path = Path(self.get(*keys, default=default))
        if relative_path.is_absolute():
            return relative_path
        return self._get_project_root() / relative_path

    @property
    def project_root(self) -> Path:
        """Get the project root directory."""
        return self._get_project_root()

    @property
    def engine(self) -> str:
        """Get the TTS engine, honouring the TTS_ENGINE override."""
        return os.environ.get("TTS_ENGINE") or self.get("tts", "engine", default="edge")

    @property
    def voice(self) -> Optional[str]:
        """Get the default voice."""
        return self.get("tts", "voice")

    @property
    def language(self) -> str:
        """Get the default speech language."""
        return self.get("tts", "language", default="en-US")

    @property
    def voice_rate(self) -> float:
        """Get the speech rate multiplier."""
        return float(self.get("tts", "rate", default=1.0))

    @property
    def default_language(self) -> str:
        """Get the catalog fallback language."""
        return self.get("catalog", "default_language", default="en-US")

    @property
    def catalog_type(self) -> str:
        """Get the catalog card type used for speech."""
        return self.get("catalog", "catalog_type", default="spoken")

    @property
    def cache_dir(self) -> Path:
        """Get the synthesis cache directory."""
        return self.get_path("cache", "dir", default=".cache/tts")

    @property
    def cache_ttl(self) -> int:
        """Get the synthesis cache lifetime in seconds."""
        return int(self.get("cache", "ttl_seconds", default=86400))


# Singleton instance
config = Config()
