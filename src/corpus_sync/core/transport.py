"""Version-control transport: fetch a restricted subset of a remote tree.

``Transport`` is the seam between the sync engine and the outside world.
``GitTransport`` binds it to the ``git`` binary using sparse checkout:

1. ``begin_session(dir)`` -- ``git init`` + ``core.sparseCheckout``.
2. ``restrict_to(paths)`` -- validate, then append patterns to
   ``.git/info/sparse-checkout``.
3. ``fetch(url, ref)`` -- (re)configure ``origin``, shallow-fetch *ref*,
   check out ``FETCH_HEAD``.
4. ``end_session()`` -- remove the directory.

There are no automatic retries.  A failed command raises
``TransportCommandFailed`` whose ``kind`` is classified from stderr; the
raw stderr is kept on the error.

Use ``sparse_checkout()`` rather than calling the steps by hand: it
guarantees the ephemeral directory is removed on every exit path.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

from corpus_sync.errors import (
    CorpusSyncError,
    InvalidPath,
    InvalidRemoteReference,
    InvalidVersionReference,
    TransportCommandFailed,
    TransportUnavailable,
    classify_transport_failure,
)
from corpus_sync.validators import (
    validate_remote_url,
    validate_sparse_path,
    validate_version_reference,
)

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 120.0


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class Transport(Protocol):
    """Protocol that every transport (real or test double) satisfies."""

    directory: Path | None
    patterns: list[str]

    def is_available(self) -> bool:
        """Return ``True`` if the underlying binary can be used."""
        ...  # pragma: no cover

    def begin_session(self, directory: Path) -> None:
        """Initialise a sparse repository at *directory*."""
        ...  # pragma: no cover

    def restrict_to(self, paths: Iterable[str]) -> None:
        """Append validated path patterns to the session."""
        ...  # pragma: no cover

    def fetch(self, remote_url: str, version_ref: str | None = None) -> str:
        """Fetch and check out *version_ref*; return the fetched revision."""
        ...  # pragma: no cover

    def end_session(self) -> None:
        """Remove the session directory.  Idempotent."""
        ...  # pragma: no cover


def check_paths(paths: Iterable[str]) -> list[str]:
    """Validate every path pattern; raise on the first invalid one.

    Shared by all transports so that invalid input never mutates state.

    Raises:
        InvalidPath: If any pattern contains a space, is absolute, or
            traverses to a parent directory.
    """
    checked = list(paths)
    for path in checked:
        ok, reason = validate_sparse_path(path)
        if not ok:
            raise InvalidPath(path, reason)
    return checked


def check_fetch_arguments(
    remote_url: str, version_ref: str | None
) -> str:
    """Validate fetch arguments; return the ref to fetch (``HEAD`` default).

    Raises:
        InvalidRemoteReference: Malformed remote URL.
        InvalidVersionReference: Malformed version reference.
    """
    ok, reason = validate_remote_url(remote_url)
    if not ok:
        raise InvalidRemoteReference(remote_url, reason)
    if version_ref is None:
        return "HEAD"
    ok, reason = validate_version_reference(version_ref)
    if not ok:
        raise InvalidVersionReference(version_ref, reason)
    return version_ref


# ---------------------------------------------------------------------------
# Git implementation
# ---------------------------------------------------------------------------


class GitTransport:
    """Sparse-checkout transport backed by the ``git`` binary.

    Args:
        binary: Name or path of the git executable.
        timeout: Seconds allowed for each git subprocess (``None`` for no
            limit).
    """

    def __init__(
        self,
        binary: str = "git",
        timeout: float | None = DEFAULT_FETCH_TIMEOUT,
    ) -> None:
        self.binary = binary
        self.timeout = timeout
        self.directory: Path | None = None
        self.patterns: list[str] = []

    def is_available(self) -> bool:
        return shutil.which(self.binary) is not None

    def begin_session(self, directory: Path) -> None:
        """Initialise a repository with sparse checkout at *directory*.

        Raises:
            TransportUnavailable: If git is not installed.
            TransportCommandFailed: If ``git init`` or ``git config`` fails.
        """
        if not self.is_available():
            raise TransportUnavailable(self.binary)

        directory = Path(directory)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise TransportCommandFailed(
                f"Cannot create session directory {directory}: {exc}",
                kind=classify_transport_failure(str(exc)),
                stderr=str(exc),
                operation="begin_session",
            ) from exc

        self.directory = directory
        self.patterns = []
        self._run(["init", "--quiet"], operation="begin_session")
        self._run(
            ["config", "core.sparseCheckout", "true"],
            operation="begin_session",
        )
        logger.debug("Sparse checkout session started in %s", directory)

    def restrict_to(self, paths: Iterable[str]) -> None:
        """Append *paths* to the sparse-checkout file.

        All paths are validated before anything is written, so an invalid
        entry leaves the session untouched.

        Raises:
            InvalidPath: If any path is rejected.
        """
        self._require_session("restrict_to")
        checked = check_paths(paths)
        if not checked:
            return

        assert self.directory is not None
        info_dir = self.directory / ".git" / "info"
        sparse_file = info_dir / "sparse-checkout"
        try:
            info_dir.mkdir(parents=True, exist_ok=True)
            with open(sparse_file, "a", encoding="utf-8") as fh:
                for path in checked:
                    fh.write(path + "\n")
        except OSError as exc:
            raise TransportCommandFailed(
                f"Cannot write {sparse_file}: {exc}",
                kind=classify_transport_failure(str(exc)),
                stderr=str(exc),
                operation="restrict_to",
            ) from exc
        self.patterns.extend(checked)

    def fetch(self, remote_url: str, version_ref: str | None = None) -> str:
        """Fetch *version_ref* from *remote_url* and check it out.

        Re-running against an already configured session is safe: the
        ``origin`` remote is updated in place.

        Returns:
            The fetched commit id.

        Raises:
            InvalidRemoteReference / InvalidVersionReference: Bad input.
            TransportCommandFailed: A git command failed or timed out.
        """
        self._require_session("fetch")
        ref = check_fetch_arguments(remote_url, version_ref)

        remotes = self._run(["remote"], operation="fetch").stdout.split()
        if "origin" in remotes:
            self._run(
                ["remote", "set-url", "origin", remote_url], operation="fetch"
            )
        else:
            self._run(
                ["remote", "add", "origin", remote_url], operation="fetch"
            )

        self._run(
            ["fetch", "--quiet", "--depth", "1", "origin", ref],
            operation="fetch",
        )
        self._run(["checkout", "--quiet", "FETCH_HEAD"], operation="checkout")
        revision = self._run(
            ["rev-parse", "FETCH_HEAD"], operation="fetch"
        ).stdout.strip()
        logger.info("Fetched %s at %s from %s", ref, revision[:12], remote_url)
        return revision

    def end_session(self) -> None:
        """Recursively remove the session directory.  Idempotent."""
        directory, self.directory = self.directory, None
        self.patterns = []
        if directory is None or not directory.exists():
            return
        try:
            shutil.rmtree(directory)
        except OSError as exc:
            logger.warning("Could not remove session directory %s: %s", directory, exc)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_session(self, operation: str) -> None:
        if self.directory is None:
            raise CorpusSyncError(
                "No transport session; call begin_session() first",
                operation=operation,
            )

    def _run(
        self, args: list[str], operation: str
    ) -> subprocess.CompletedProcess:
        """Run ``git <args>`` in the session directory."""
        command = [self.binary, *args]
        display = " ".join(command)
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
        try:
            result = subprocess.run(
                command,
                cwd=str(self.directory),
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
            )
        except FileNotFoundError as exc:
            raise TransportUnavailable(self.binary) from exc
        except subprocess.TimeoutExpired as exc:
            stderr = exc.stderr or ""
            if isinstance(stderr, bytes):
                stderr = stderr.decode("utf-8", errors="replace")
            raise TransportCommandFailed(
                f"Git command timed out after {self.timeout}s: {display}",
                kind="network",
                command=display,
                exit_status=None,
                stderr=stderr,
                operation=operation,
            ) from exc

        if result.returncode != 0:
            stderr = result.stderr or ""
            kind = classify_transport_failure(stderr)
            logger.debug(
                "git failed (%s, exit %s): %s",
                kind,
                result.returncode,
                stderr.strip(),
            )
            raise TransportCommandFailed(
                f"Git command failed: {display} "
                f"(exit status: {result.returncode})",
                kind=kind,
                command=display,
                exit_status=result.returncode,
                stderr=stderr,
                operation=operation,
            )
        return result


# ---------------------------------------------------------------------------
# Guaranteed-cleanup scope
# ---------------------------------------------------------------------------


def new_session_dir(parent: Path | None = None) -> Path:
    """Create a fresh, empty session directory under *parent*.

    *parent* defaults to the system temp directory and is created if
    missing.

    Raises:
        TransportCommandFailed: If the directory cannot be created, with
            ``kind`` classified from the OS error (``disk`` for a full
            filesystem, ``permission`` for an unwritable one).
    """
    try:
        if parent is not None:
            parent.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix="corpus-sync-", dir=parent))
    except OSError as exc:
        raise TransportCommandFailed(
            f"Cannot create session directory: {exc}",
            kind=classify_transport_failure(str(exc)),
            stderr=str(exc),
            operation="begin_session",
        ) from exc


@contextmanager
def sparse_checkout(
    transport: Transport,
    paths: Iterable[str],
    directory: Path | None = None,
) -> Iterator[Path]:
    """Open a sparse-checkout session and always tear it down.

    Args:
        transport: Transport to drive.
        paths: Sparse-checkout patterns to restrict the fetch to.
        directory: Session directory; a fresh temporary directory is
            created when omitted.

    Yields:
        The session directory.  Call ``transport.fetch()`` inside the
        ``with`` block.
    """
    session_dir = directory or new_session_dir()
    try:
        transport.begin_session(session_dir)
        transport.restrict_to(paths)
        yield session_dir
    finally:
        transport.end_session()
        if session_dir.exists():
            shutil.rmtree(session_dir, ignore_errors=True)
