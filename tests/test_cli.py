"""Tests for the imgstore CLI."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from imgstore.cli import main
from imgstore.config import ENV_STORAGE_DIR, load_store_config
from imgstore.storage.blob_store import build_blob_store


@pytest.fixture
def configured_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the CLI at a temp storage directory."""
    storage = tmp_path / "public"
    monkeypatch.setenv(ENV_STORAGE_DIR, str(storage))
    return storage


class TestIndexCheck:
    """Tests for `imgstore index check`."""

    def test_empty_store_passes(
        self, configured_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """A store without a snapshot is a valid empty index."""
        exit_code = main(["index", "check"])

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert output == {"pass": True, "records": 0, "active": 0, "deleted": 0}

    def test_counts_active_and_deleted(
        self, configured_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Deleted records are counted separately."""
        store = build_blob_store(load_store_config())
        store.upload(io.BytesIO(b"abc"), "a.png")
        removed = store.upload(io.BytesIO(b"def"), "b.png")
        store.remove(removed.id)

        exit_code = main(["index", "check"])

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert output["records"] == 2
        assert output["active"] == 1
        assert output["deleted"] == 1

    def test_corrupt_snapshot_exits_2(
        self, configured_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """An unparseable snapshot fails the check."""
        configured_dir.mkdir(parents=True)
        (configured_dir / "meta.json").write_text("{broken", encoding="utf-8")

        exit_code = main(["index", "check"])

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 2
        assert output["pass"] is False
        assert output["error"]


class TestOrphans:
    """Tests for `imgstore orphans`."""

    def test_lists_unindexed_files(
        self, configured_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Files without a record are reported; indexed ones are not."""
        store = build_blob_store(load_store_config())
        store.upload(io.BytesIO(b"abc"), "a.png")
        (store.storage_dir / "stray.jpg").write_bytes(b"x")

        exit_code = main(["orphans"])

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert output == {"orphans": ["stray.jpg"]}


class TestErrors:
    """Tests for error handling in main()."""

    def test_invalid_config_exits_1(
        self,
        configured_dir: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Configuration errors are reported as JSON with exit code 1."""
        monkeypatch.setenv("IMGSTORE_MAX_UPLOAD_BYTES", "nope")

        exit_code = main(["orphans"])

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 1
        assert output["pass"] is False
        assert "StoreConfigError" in output["error"]

    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Running without a command prints usage and succeeds."""
        exit_code = main([])

        assert exit_code == 0
        assert "imgstore" in capsys.readouterr().out
