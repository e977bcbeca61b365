"""Tests for category rules and manifest building."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import CORE_PATHS, CORPUS

from corpus_sync.errors import InvalidPath
from corpus_sync.file_handler import content_digest
from corpus_sync.sync.catalog import CorpusCatalog


def _materialise(root: Path, files: dict[str, bytes]) -> None:
    for rel, data in files.items():
        dest = root / rel
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(data)


@pytest.fixture
def corpus_root(tmp_path: Path) -> Path:
    """Corpus files laid out as they are in a project's docs directory."""
    root = tmp_path / "corpus"
    _materialise(
        root,
        {
            rel.removeprefix("docs/"): data
            for rel, data in CORPUS.items()
            if rel.startswith("docs/")
        },
    )
    return root


class TestCategories:
    def test_core_always_first(self):
        assert CorpusCatalog.normalize_categories(None) == ["core"]
        assert CorpusCatalog.normalize_categories(["web", "python", "core"]) == [
            "core",
            "python",
            "web",
        ]

    def test_deduplicates_and_strips(self):
        assert CorpusCatalog.normalize_categories([" python", "python", ""]) == [
            "core",
            "python",
        ]

    @pytest.mark.parametrize("bad", ["../etc", "Python", "a b"])
    def test_invalid_name(self, bad):
        with pytest.raises(InvalidPath):
            CorpusCatalog.normalize_categories([bad])

    @pytest.mark.parametrize(
        "path, category",
        [
            ("tenets/simplicity.md", "core"),
            ("tenets/nested/deep.md", "core"),
            ("bindings/core/api-design.md", "core"),
            ("bindings/categories/python/typing.md", "python"),
            ("bindings/categories/python", None),
            ("bindings/other/x.md", None),
            ("README.md", None),
        ],
    )
    def test_category_of(self, path, category):
        assert CorpusCatalog.category_of(path) == category

    def test_includes_requires_markdown(self):
        catalog = CorpusCatalog()
        assert catalog.includes("tenets/a.md", ["core"])
        assert not catalog.includes("tenets/a.txt", ["core"])
        assert not catalog.includes("bindings/categories/web/a.md", ["core"])
        assert catalog.includes("bindings/categories/web/a.md", ["core", "web"])


class TestSparsePaths:
    def test_core_only(self):
        assert CorpusCatalog().sparse_paths(["core"]) == [
            "docs/tenets/",
            "docs/bindings/core/",
        ]

    def test_with_categories(self):
        assert CorpusCatalog().sparse_paths(["web", "python"]) == [
            "docs/tenets/",
            "docs/bindings/core/",
            "docs/bindings/categories/python/",
            "docs/bindings/categories/web/",
        ]

    def test_custom_and_empty_source_root(self, tmp_path: Path):
        assert CorpusCatalog("corpus/").sparse_paths([])[0] == "corpus/tenets/"
        catalog = CorpusCatalog("")
        assert catalog.sparse_paths([])[0] == "tenets/"
        assert catalog.corpus_root(tmp_path) == tmp_path
        assert CorpusCatalog().corpus_root(tmp_path) == tmp_path / "docs"


class TestEnumerate:
    def test_core_only(self, corpus_root: Path):
        assert CorpusCatalog().enumerate(corpus_root, ["core"]) == CORE_PATHS

    def test_with_category(self, corpus_root: Path):
        paths = CorpusCatalog().enumerate(corpus_root, ["python"])
        assert paths == sorted(
            CORE_PATHS + ["bindings/categories/python/typing.md"]
        )

    def test_missing_root(self, tmp_path: Path):
        assert CorpusCatalog().enumerate(tmp_path / "nope", ["core"]) == []

    def test_skips_invalid_names_and_other_files(self, corpus_root: Path):
        (corpus_root / "tenets" / "with space.md").write_text("x")
        (corpus_root / "tenets" / "notes.txt").write_text("x")
        (corpus_root / "stray.md").write_text("x")
        assert CorpusCatalog().enumerate(corpus_root, ["core"]) == CORE_PATHS

    def test_discover_categories(self, corpus_root: Path):
        (corpus_root / "bindings" / "categories" / "Bad Name").mkdir()
        assert CorpusCatalog().discover_categories(corpus_root) == [
            "core",
            "python",
            "web",
        ]

    def test_discover_categories_empty_tree(self, tmp_path: Path):
        assert CorpusCatalog().discover_categories(tmp_path) == ["core"]

    def test_count_by_category(self):
        counts = CorpusCatalog.count_by_category(
            CORE_PATHS + ["bindings/categories/web/a11y.md", "misc.md"]
        )
        assert counts == {"core": 3, "other": 1, "web": 1}


class TestManifests:
    def test_build_manifest(self, corpus_root: Path):
        manifest = CorpusCatalog().build_manifest(corpus_root, ["core"])
        assert sorted(manifest) == CORE_PATHS
        assert manifest["tenets/simplicity.md"] == content_digest(
            CORPUS["docs/tenets/simplicity.md"]
        )

    def test_unreadable_file_is_left_out(self, corpus_root: Path, monkeypatch):
        import corpus_sync.sync.catalog as catalog_module

        real = catalog_module.file_digest

        def flaky(path: Path) -> str:
            if path.name == "simplicity.md":
                raise PermissionError("denied")
            return real(path)

        monkeypatch.setattr(catalog_module, "file_digest", flaky)
        manifest = CorpusCatalog().build_manifest(corpus_root, ["core"])
        assert "tenets/simplicity.md" not in manifest
        assert len(manifest) == 2

    def test_filter_manifest(self):
        manifest = {
            "tenets/a.md": "1" * 64,
            "bindings/categories/python/b.md": "2" * 64,
            "bindings/categories/web/c.md": "3" * 64,
        }
        assert CorpusCatalog.filter_manifest(manifest, ["web"]) == {
            "tenets/a.md": "1" * 64,
            "bindings/categories/web/c.md": "3" * 64,
        }
