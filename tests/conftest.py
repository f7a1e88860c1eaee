"""Pytest configuration and fixtures for imgstore tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from imgstore.config import (
    ENV_CORS_ORIGINS,
    ENV_INDEX_FILENAME,
    ENV_MAX_UPLOAD_BYTES,
    ENV_STORAGE_DIR,
    StoreConfig,
)
from imgstore.storage.blob_store import BlobStore, build_blob_store

_IMGSTORE_ENV_VARS = (
    ENV_STORAGE_DIR,
    ENV_INDEX_FILENAME,
    ENV_MAX_UPLOAD_BYTES,
    ENV_CORS_ORIGINS,
    "IMGSTORE_OTEL_ENABLED",
    "IMGSTORE_OTEL_TEST_CAPTURE",
    "IMGSTORE_REQUIRE_OTEL",
)


@pytest.fixture(autouse=True)
def clear_imgstore_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Run every test without inherited IMGSTORE_* configuration."""
    for var in _IMGSTORE_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    """Return a not-yet-created storage directory inside tmp_path."""
    return tmp_path / "public"


@pytest.fixture
def store_config(storage_dir: Path) -> StoreConfig:
    """Return a StoreConfig pointing at the temp storage directory."""
    return StoreConfig(storage_dir=storage_dir)


@pytest.fixture
def store(store_config: StoreConfig) -> BlobStore:
    """Create a BlobStore backed by a JSON snapshot in the temp directory."""
    return build_blob_store(store_config)
