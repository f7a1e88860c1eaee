"""Runtime configuration for imgstore.

Values are read from environment variables once, at application or CLI
startup, and frozen into a StoreConfig.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

logger = logging.getLogger(__name__)

ENV_STORAGE_DIR: Final[str] = "IMGSTORE_STORAGE_DIR"
ENV_INDEX_FILENAME: Final[str] = "IMGSTORE_INDEX_FILENAME"
ENV_MAX_UPLOAD_BYTES: Final[str] = "IMGSTORE_MAX_UPLOAD_BYTES"
ENV_CORS_ORIGINS: Final[str] = "IMGSTORE_CORS_ORIGINS"

DEFAULT_STORAGE_DIR: Final[str] = "./public"
DEFAULT_INDEX_FILENAME: Final[str] = "meta.json"
DEFAULT_MAX_UPLOAD_BYTES: Final[int] = 10_000_000
DEFAULT_CORS_ORIGINS: Final[tuple[str, ...]] = ("http://localhost:3000",)

ALLOWED_EXTENSIONS: Final[frozenset[str]] = frozenset({".png", ".jpg"})


class StoreConfigError(Exception):
    """Raised when store configuration is invalid."""


@dataclass(frozen=True)
class StoreConfig:
    """Store configuration (immutable).

    Attributes:
        storage_dir: Directory holding blobs and the metadata snapshot.
        index_filename: File name of the metadata snapshot inside storage_dir.
        max_upload_bytes: Upload size ceiling in bytes.
        cors_origins: Origins allowed by the CORS middleware.
    """

    storage_dir: Path
    index_filename: str = DEFAULT_INDEX_FILENAME
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_upload_bytes <= 0:
            raise StoreConfigError(
                f"{ENV_MAX_UPLOAD_BYTES} must be a positive integer, got {self.max_upload_bytes}"
            )
        name = self.index_filename
        if not name or name != Path(name).name or name.startswith("."):
            raise StoreConfigError(f"{ENV_INDEX_FILENAME} must be a plain file name, got '{name}'")

    @property
    def index_path(self) -> Path:
        """Return the full path of the metadata snapshot."""
        return self.storage_dir / self.index_filename


def _parse_positive_int(env_var: str, default: int) -> int:
    """Parse a positive integer from an environment variable.

    Raises:
        StoreConfigError: If the value is set but not a positive integer.
    """
    raw = os.environ.get(env_var)
    if raw is None or not raw.strip():
        return default

    raw = raw.strip()
    try:
        value = int(raw)
    except ValueError as e:
        raise StoreConfigError(f"{env_var} must be a positive integer, got '{raw}'") from e

    if value <= 0:
        raise StoreConfigError(f"{env_var} must be a positive integer, got {value}")
    return value


def _parse_origins(env_var: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """Parse a comma-separated origin list from an environment variable."""
    raw = os.environ.get(env_var)
    if raw is None:
        return default
    return tuple(origin.strip() for origin in raw.split(",") if origin.strip())


def load_store_config() -> StoreConfig:
    """Load store configuration from environment variables.

    Environment variables:
        IMGSTORE_STORAGE_DIR: Blob and snapshot directory (default: ./public)
        IMGSTORE_INDEX_FILENAME: Snapshot file name (default: meta.json)
        IMGSTORE_MAX_UPLOAD_BYTES: Upload ceiling in bytes (default: 10000000)
        IMGSTORE_CORS_ORIGINS: Comma-separated allowed origins
            (default: http://localhost:3000)

    Returns:
        StoreConfig with validated values.

    Raises:
        StoreConfigError: If any value is invalid.
    """
    storage_dir = os.environ.get(ENV_STORAGE_DIR, "").strip() or DEFAULT_STORAGE_DIR
    index_filename = os.environ.get(ENV_INDEX_FILENAME, "").strip() or DEFAULT_INDEX_FILENAME

    config = StoreConfig(
        storage_dir=Path(storage_dir).resolve(),
        index_filename=index_filename,
        max_upload_bytes=_parse_positive_int(ENV_MAX_UPLOAD_BYTES, DEFAULT_MAX_UPLOAD_BYTES),
        cors_origins=_parse_origins(ENV_CORS_ORIGINS, DEFAULT_CORS_ORIGINS),
    )
    logger.debug(
        "Loaded store config: storage_dir=%s max_upload_bytes=%d",
        config.storage_dir,
        config.max_upload_bytes,
    )
    return config
