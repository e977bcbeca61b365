"""Shared pytest fixtures for corpus-sync tests."""

from __future__ import annotations

import hashlib
import shutil
from pathlib import Path

import pytest
from dotenv import load_dotenv

from corpus_sync.config import Config
from corpus_sync.core.transport import check_fetch_arguments, check_paths
from corpus_sync.errors import TransportUnavailable
from corpus_sync.sync.workflow import CorpusWorkflow

load_dotenv()

REMOTE_URL = "https://example.com/org/corpus.git"

CORPUS = {
    "docs/tenets/simplicity.md": b"# Simplicity\n\nPrefer the simplest design.\n",
    "docs/tenets/testability.md": b"# Testability\n\nDesign for tests.\n",
    "docs/bindings/core/api-design.md": b"# API design\n\nExplicit contracts.\n",
    "docs/bindings/categories/python/typing.md": b"# Typing\n\nUse type hints.\n",
    "docs/bindings/categories/web/a11y.md": b"# Accessibility\n\nUse semantic HTML.\n",
    "README.md": b"not part of the corpus\n",
}

CORE_PATHS = [
    "bindings/core/api-design.md",
    "tenets/simplicity.md",
    "tenets/testability.md",
]


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-git",
        action="store_true",
        default=False,
        help="Run tests that drive a real git binary",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "git: mark test as requiring a real git binary"
    )


def pytest_collection_modifyitems(config, items):
    """Skip git tests unless --run-git is passed and git is installed."""
    if config.getoption("--run-git") and shutil.which("git"):
        return
    skip_git = pytest.mark.skip(
        reason="need --run-git option and a git binary to run"
    )
    for item in items:
        if "git" in item.keywords:
            item.add_marker(skip_git)


class FakeTransport:
    """In-memory transport for tests.

    ``files`` simulates the remote tree (path -> bytes).  ``fetch()``
    materialises the files matching the session's sparse patterns.
    """

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files: dict[str, bytes] = dict(CORPUS if files is None else files)
        self.directory: Path | None = None
        self.patterns: list[str] = []
        self.available = True
        self.fail_with: Exception | None = None
        self.fetch_calls: list[tuple[str, str | None]] = []
        self.sessions_ended = 0

    def is_available(self) -> bool:
        return self.available

    def begin_session(self, directory: Path) -> None:
        if not self.available:
            raise TransportUnavailable("git")
        directory.mkdir(parents=True, exist_ok=True)
        self.directory = directory
        self.patterns = []

    def restrict_to(self, paths) -> None:
        self.patterns.extend(check_paths(paths))

    def fetch(self, remote_url: str, version_ref: str | None = None) -> str:
        check_fetch_arguments(remote_url, version_ref)
        self.fetch_calls.append((remote_url, version_ref))
        if self.fail_with is not None:
            raise self.fail_with
        assert self.directory is not None
        for rel, data in self.files.items():
            if any(rel.startswith(p) for p in self.patterns):
                dest = self.directory / rel
                dest.parent.mkdir(parents=True, exist_ok=True)
                dest.write_bytes(data)
        return self.revision

    def end_session(self) -> None:
        if self.directory is not None and self.directory.exists():
            shutil.rmtree(self.directory)
        self.directory = None
        self.sessions_ended += 1

    @property
    def revision(self) -> str:
        digest = hashlib.sha1()
        for rel in sorted(self.files):
            digest.update(rel.encode() + self.files[rel])
        return digest.hexdigest()


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def sync_config(tmp_path: Path) -> Config:
    return Config(cache_dir=tmp_path / "cache", remote_url=REMOTE_URL)


@pytest.fixture
def make_workflow(sync_config, project_dir):
    """Factory for a workflow wired to a fake transport."""

    def _make(transport=None, use_cache: bool = True) -> CorpusWorkflow:
        return CorpusWorkflow.from_config(
            sync_config,
            project_dir,
            transport=transport or FakeTransport(),
            use_cache=use_cache,
        )

    return _make


@pytest.fixture
def docs_root(project_dir: Path) -> Path:
    return project_dir / "docs" / "corpus"
