from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

ENV_PREFIX = "TAGSAVER_"

HASH_SCHEMES = ("dct", "ahash")


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_color(value: str) -> Tuple[int, int, int]:
    parts = [int(p) for p in value.split(",")]
    if len(parts) != 3:
        raise ValueError(f"Background color must be 'R,G,B', got {value!r}")
    return (parts[0], parts[1], parts[2])


@dataclass
class Settings:
    db_path: Path = Path("data/tagsaver.db")

    # Fingerprinting
    hash_scheme: str = "dct"
    hash_size: int = 32
    lowfreq_size: int = 8
    background_color: Tuple[int, int, int] = (255, 255, 255)
    frame_offset_seconds: float = 0.1
    hash_timeout_seconds: float = 10.0
    fetch_timeout_seconds: float = 15.0
    cache_max_entries: Optional[int] = None

    # Duplicate detection
    duplicate_detection: bool = True
    similarity_threshold: int = 10

    # Optional remote duplicate-check service
    remote_url: Optional[str] = None
    remote_probe_timeout: float = 2.0
    remote_timeout: float = 5.0

    def validate(self) -> "Settings":
        """Raise ValueError for settings the core cannot work with."""
        if self.hash_scheme not in HASH_SCHEMES:
            raise ValueError(f"Unknown hash scheme {self.hash_scheme!r}, expected one of {HASH_SCHEMES}")
        if self.lowfreq_size < 2:
            raise ValueError("lowfreq_size must be at least 2")
        if self.hash_size < self.lowfreq_size:
            raise ValueError("hash_size must be >= lowfreq_size")
        if self.similarity_threshold < 0:
            raise ValueError("similarity_threshold must be non-negative")
        if any(not 0 <= c <= 255 for c in self.background_color):
            raise ValueError(f"background_color out of range: {self.background_color}")
        if self.frame_offset_seconds < 0:
            raise ValueError("frame_offset_seconds must be non-negative")
        for name in ("hash_timeout_seconds", "fetch_timeout_seconds", "remote_probe_timeout", "remote_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.cache_max_entries is not None and self.cache_max_entries < 1:
            raise ValueError("cache_max_entries must be positive when set")
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from TAGSAVER_* environment variables over the defaults."""
        env = os.environ if environ is None else environ
        settings = cls()

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name.upper())
            return value if value not in (None, "") else None

        if (value := get("db_path")) is not None:
            settings.db_path = Path(value)
        if (value := get("hash_scheme")) is not None:
            settings.hash_scheme = value.lower()
        for name in ("hash_size", "lowfreq_size", "similarity_threshold", "cache_max_entries"):
            if (value := get(name)) is not None:
                setattr(settings, name, int(value))
        for name in (
            "frame_offset_seconds",
            "hash_timeout_seconds",
            "fetch_timeout_seconds",
            "remote_probe_timeout",
            "remote_timeout",
        ):
            if (value := get(name)) is not None:
                setattr(settings, name, float(value))
        if (value := get("background_color")) is not None:
            settings.background_color = _env_color(value)
        if (value := get("duplicate_detection")) is not None:
            settings.duplicate_detection = _env_bool(value)
        if (value := get("remote_url")) is not None:
            settings.remote_url = value.rstrip("/")

        return settings.validate()
