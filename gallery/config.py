"""
Environment-driven settings for the gallery service.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_MAX_FILES = 10
DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5 MiB per file
DEFAULT_MAX_DIMENSION = 2000
DEFAULT_THUMBNAIL_SIZE = 300


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = int(raw)
    if value <= 0:
        raise ValueError(f"{name} must be a positive integer")
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    """Runtime configuration for storage locations and upload limits."""

    upload_dir: Path = field(default_factory=lambda: Path("./var/uploads"))
    ledger_path: Path = field(default_factory=lambda: Path("./var/images.json"))
    max_files: int = DEFAULT_MAX_FILES
    max_bytes: int = DEFAULT_MAX_BYTES
    max_dimension: int = DEFAULT_MAX_DIMENSION
    thumbnail_size: int = DEFAULT_THUMBNAIL_SIZE
    log_level: str = "INFO"

    @property
    def thumbs_dir(self) -> Path:
        return self.upload_dir / "thumbs"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            upload_dir=Path(os.getenv("UPLOAD_STORAGE_PATH", "./var/uploads")),
            ledger_path=Path(os.getenv("IMAGE_LEDGER_PATH", "./var/images.json")),
            max_files=_env_int("MAX_UPLOAD_FILES", DEFAULT_MAX_FILES),
            max_bytes=_env_int("MAX_UPLOAD_BYTES", DEFAULT_MAX_BYTES),
            max_dimension=_env_int("MAX_IMAGE_DIMENSION", DEFAULT_MAX_DIMENSION),
            thumbnail_size=_env_int("THUMBNAIL_SIZE", DEFAULT_THUMBNAIL_SIZE),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
