"""Category rules for the corpus tree.

Maps categories to the paths they cover and enumerates the tracked files
under a corpus root (an upstream checkout or a project's docs directory).

Layout, relative to the corpus root:

- ``tenets/**/*.md`` and ``bindings/core/**/*.md`` -- always tracked
  (category ``core``).
- ``bindings/categories/<name>/**/*.md`` -- tracked when ``<name>`` is
  selected.

Upstream the corpus root is ``<source_root>/`` inside the remote tree;
sparse-checkout patterns are built from it.
"""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path, PurePosixPath

from corpus_sync.errors import InvalidPath
from corpus_sync.file_handler import file_digest
from corpus_sync.validators import (
    validate_category_name,
    validate_manifest_path,
)

logger = logging.getLogger(__name__)

CORE_CATEGORY = "core"

_CORE_PREFIXES = ("tenets/", "bindings/core/")
_CATEGORY_PREFIX = "bindings/categories/"


class CorpusCatalog:
    """Category-to-path rules and manifest building.

    Args:
        source_root: Directory of the corpus inside the remote tree
            (e.g. ``"docs"``).
    """

    def __init__(self, source_root: str = "docs") -> None:
        self._source_root = source_root.strip("/")

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    @staticmethod
    def normalize_categories(categories: list[str] | None) -> list[str]:
        """Validate and order a category selection.

        ``core`` is always included and listed first; the rest are
        de-duplicated and sorted.

        Raises:
            InvalidPath: If a category name is not a safe path segment.
        """
        extra: set[str] = set()
        for name in categories or []:
            name = name.strip()
            if not name or name == CORE_CATEGORY:
                continue
            ok, reason = validate_category_name(name)
            if not ok:
                raise InvalidPath(name, reason)
            extra.add(name)
        return [CORE_CATEGORY, *sorted(extra)]

    @staticmethod
    def category_of(path: str) -> str | None:
        """Return the category a manifest path belongs to, or ``None``."""
        if path.startswith(_CORE_PREFIXES):
            return CORE_CATEGORY
        if path.startswith(_CATEGORY_PREFIX):
            rest = path[len(_CATEGORY_PREFIX):]
            name, sep, _ = rest.partition("/")
            if sep and name:
                return name
        return None

    def includes(self, path: str, categories: list[str]) -> bool:
        """Return ``True`` if *path* is tracked under *categories*."""
        if not path.endswith(".md"):
            return False
        category = self.category_of(path)
        return category is not None and (
            category == CORE_CATEGORY or category in categories
        )

    def sparse_paths(self, categories: list[str]) -> list[str]:
        """Sparse-checkout patterns covering *categories* upstream."""
        prefix = f"{self._source_root}/" if self._source_root else ""
        patterns = [f"{prefix}{p}" for p in _CORE_PREFIXES]
        for name in self.normalize_categories(categories):
            if name != CORE_CATEGORY:
                patterns.append(f"{prefix}{_CATEGORY_PREFIX}{name}/")
        return patterns

    def corpus_root(self, checkout_dir: Path) -> Path:
        """Return the corpus root inside an upstream checkout."""
        if not self._source_root:
            return checkout_dir
        return checkout_dir / self._source_root

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def enumerate(self, root: Path, categories: list[str]) -> list[str]:
        """List tracked manifest paths present under *root*.

        Args:
            root: Corpus root directory.
            categories: Selected categories (``core`` implied).

        Returns:
            Sorted POSIX paths relative to *root*.  Paths that fail
            manifest validation (spaces, odd segments) are skipped.
        """
        if not root.is_dir():
            return []

        selected = self.normalize_categories(categories)
        found: list[str] = []
        for path in root.rglob("*.md"):
            if not path.is_file():
                continue
            rel = path.relative_to(root).as_posix()
            if not self.includes(rel, selected):
                continue
            ok, reason = validate_manifest_path(rel)
            if not ok:
                logger.warning("Ignoring %s: %s", rel, reason)
                continue
            found.append(rel)
        return sorted(found)

    def discover_categories(self, root: Path) -> list[str]:
        """Categories present in a tree, from ``bindings/categories/*``."""
        names: set[str] = set()
        categories_dir = root / PurePosixPath(_CATEGORY_PREFIX)
        if categories_dir.is_dir():
            for entry in categories_dir.iterdir():
                if entry.is_dir() and validate_category_name(entry.name)[0]:
                    names.add(entry.name)
        return self.normalize_categories(sorted(names))

    @classmethod
    def count_by_category(cls, paths) -> dict[str, int]:
        """Count manifest paths per category."""
        counts = Counter(cls.category_of(p) or "other" for p in paths)
        return dict(sorted(counts.items()))

    # ------------------------------------------------------------------
    # Manifests
    # ------------------------------------------------------------------

    def build_manifest(
        self, root: Path, categories: list[str]
    ) -> dict[str, str]:
        """Digest every tracked file under *root*.

        A file that cannot be read is left out of the manifest (it then
        shows up as removed in a comparison) and logged.

        Returns:
            Mapping of manifest path to SHA-256 digest.
        """
        manifest: dict[str, str] = {}
        for rel in self.enumerate(root, categories):
            try:
                manifest[rel] = file_digest(root / rel)
            except OSError as exc:
                logger.warning("Cannot read %s: %s", root / rel, exc)
        return manifest

    @classmethod
    def filter_manifest(
        cls, manifest: dict[str, str], categories: list[str]
    ) -> dict[str, str]:
        """Restrict *manifest* to the paths tracked under *categories*."""
        selected = cls.normalize_categories(categories)
        result: dict[str, str] = {}
        for path, digest in manifest.items():
            category = cls.category_of(path)
            if category == CORE_CATEGORY or category in selected:
                result[path] = digest
        return result
