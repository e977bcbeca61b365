"""Tests for per-project sync state persistence."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from corpus_sync import __version__
from corpus_sync.errors import CacheError, SyncStateCorrupt
from corpus_sync.sync.models import SCHEMA_VERSION, SyncManifest
from corpus_sync.sync.state import SyncStateStore, project_key

DIGEST = "ab" * 32


def _manifest(**overrides) -> SyncManifest:
    data = dict(
        timestamp="2026-10-18T09:00:00+00:00",
        version="0123456789abcdef0123456789abcdef01234567",
        categories=["core", "python"],
        files={"tenets/simplicity.md": DIGEST},
        cache_hit_ratio=0.5,
        sync_duration_ms=120.5,
    )
    data.update(overrides)
    return SyncManifest(**data)


@pytest.fixture
def store(tmp_path: Path) -> SyncStateStore:
    project = tmp_path / "project"
    project.mkdir()
    return SyncStateStore(tmp_path / "cache", project)


class TestProjectKey:
    def test_stable_and_short(self, tmp_path: Path):
        key = project_key(tmp_path)
        assert key == project_key(tmp_path / ".")
        assert len(key) == 16
        int(key, 16)

    def test_distinct_projects(self, tmp_path: Path):
        assert project_key(tmp_path / "a") != project_key(tmp_path / "b")

    def test_state_path_under_cache_root(self, store: SyncStateStore, tmp_path: Path):
        assert store.state_path.parent == tmp_path / "cache" / "state"
        assert store.state_path.suffix == ".json"


class TestSaveAndLoad:
    def test_never_synced(self, store: SyncStateStore):
        assert store.read() is None
        assert store.load() is None
        assert store.age_seconds() is None

    def test_round_trip(self, store: SyncStateStore):
        store.save(_manifest())
        loaded = store.load()

        assert loaded is not None
        assert loaded.files == {"tenets/simplicity.md": DIGEST}
        assert loaded.categories == ["core", "python"]
        assert loaded.version == "0123456789abcdef0123456789abcdef01234567"
        assert loaded.tool_version == __version__
        assert loaded.schema_version == SCHEMA_VERSION
        assert loaded.cache_hit_ratio == 0.5

    def test_file_layout(self, store: SyncStateStore):
        store.save(_manifest(files={"tenets/b.md": DIGEST, "tenets/a.md": DIGEST}))
        data = json.loads(store.state_path.read_text())
        assert data["schema_version"] == SCHEMA_VERSION
        assert data["tool_version"] == __version__
        assert data["total_files"] == 2
        assert list(data["manifest"]) == ["tenets/a.md", "tenets/b.md"]

    def test_save_overwrites(self, store: SyncStateStore):
        store.save(_manifest(version="v1"))
        store.save(_manifest(version="v2"))
        assert store.load().version == "v2"

    def test_projects_are_isolated(self, tmp_path: Path):
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        first = SyncStateStore(tmp_path / "cache", tmp_path / "a")
        second = SyncStateStore(tmp_path / "cache", tmp_path / "b")
        first.save(_manifest())
        assert second.load() is None

    def test_failed_save_leaves_no_temp_file(self, store: SyncStateStore):
        store.save(_manifest(version="v1"))
        with patch(
            "corpus_sync.sync.state.os.replace", side_effect=OSError("disk full")
        ):
            with pytest.raises(CacheError) as exc_info:
                store.save(_manifest(version="v2"))
        assert exc_info.value.operation == "save_state"
        assert isinstance(exc_info.value.__cause__, OSError)
        assert store.load().version == "v1"
        assert [p.name for p in store.state_path.parent.iterdir()] == [
            store.state_path.name
        ]

    def test_unwritable_state_directory(self, store: SyncStateStore):
        state_dir = store.state_path.parent
        state_dir.parent.mkdir(parents=True)
        state_dir.write_text("not a directory")
        with pytest.raises(CacheError, match="Cannot save sync state"):
            store.save(_manifest())

    def test_clear_and_age(self, store: SyncStateStore):
        store.save(_manifest())
        st = store.state_path.stat()
        os.utime(store.state_path, (st.st_atime - 120, st.st_mtime - 120))
        assert store.age_seconds() >= 119
        assert store.clear() is True
        assert store.clear() is False
        assert store.load() is None


class TestCorruption:
    def _write(self, store: SyncStateStore, content: str) -> None:
        store.state_path.parent.mkdir(parents=True, exist_ok=True)
        store.state_path.write_text(content)

    @pytest.mark.parametrize(
        "content",
        [
            "{not json",
            "[]",
            json.dumps({"schema_version": 1, "timestamp": "t", "manifest": []}),
            json.dumps({"timestamp": "t", "manifest": {"/abs.md": "ab" * 32}}),
            json.dumps({"timestamp": "t", "manifest": {"a.md": "nothex"}}),
            json.dumps({"schema_version": 99, "timestamp": "t", "manifest": {}}),
            json.dumps({"manifest": {}}),
        ],
    )
    def test_read_raises(self, store: SyncStateStore, content: str):
        self._write(store, content)
        with pytest.raises(SyncStateCorrupt) as exc_info:
            store.read()
        assert exc_info.value.state_file == str(store.state_path)

    def test_load_treats_corrupt_as_never_synced(self, store, caplog):
        self._write(store, "{not json")
        with caplog.at_level(logging.WARNING, logger="corpus_sync.sync.state"):
            assert store.load() is None
        assert "never synced" in caplog.text

    def test_validation_errors_are_reported(self, store: SyncStateStore):
        self._write(
            store,
            json.dumps({"timestamp": "t", "manifest": {"a b.md": "ab" * 32}}),
        )
        with pytest.raises(SyncStateCorrupt) as exc_info:
            store.read()
        assert any("a b.md" in e for e in exc_info.value.validation_errors)

    def test_missing_optional_fields_are_accepted(self, store: SyncStateStore):
        self._write(
            store,
            json.dumps({"timestamp": "t", "manifest": {"tenets/a.md": "ab" * 32}}),
        )
        loaded = store.read()
        assert loaded.files == {"tenets/a.md": "ab" * 32}
        assert loaded.categories == []
        assert loaded.version is None
