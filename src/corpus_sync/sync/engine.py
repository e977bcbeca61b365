"""Cache-aware sync engine.

The ``SyncEngine`` decides whether an upstream fetch is needed and
materialises the tracked files into a project tree.  It:

1. Enumerates candidate paths for the requested categories from the last
   saved manifest (the last known upstream snapshot).
2. Looks each candidate's digest up in the content cache and computes the
   cache hit ratio (``0.0`` for no candidates).
3. Fetches when ``force`` is set, the snapshot does not cover the
   requested categories, or the ratio is below the threshold.  Any error
   while deciding means "fetch".
4. Without a fetch, verifies that every candidate already exists in the
   target with matching content; a mismatch falls through to a fetch.
5. With a fetch, copies each upstream file whose digest differs from the
   target copy and feeds every file read from upstream to the cache.

Error handling is per-file: a single copy failure is recorded in the
result and does not abort the run.  Cache failures never escape the
engine; they degrade to a miss or a no-op.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from corpus_sync.cache import CacheStats, ContentCache
from corpus_sync.config import DEFAULT_CACHE_THRESHOLD, resolve_threshold
from corpus_sync.core.transport import (
    Transport,
    new_session_dir,
    sparse_checkout,
)
from corpus_sync.errors import CacheError, ConfigurationError, TargetError
from corpus_sync.file_handler import (
    content_digest,
    file_digest,
    write_bytes_atomic,
)

from .catalog import CorpusCatalog
from .comparator import settle_manifest
from .models import FileError, SyncManifest, SyncResult

logger = logging.getLogger(__name__)


class SyncEngine:
    """Decide whether to fetch and materialise corpus files.

    Args:
        transport: Version-control transport (real or fake).
        catalog: Category rules.
        cache: Content cache, or ``None`` to run uncached.
        remote_url: Upstream repository URL.
        version_ref: Branch, tag or commit; ``None`` for the default.
        threshold: Cache hit ratio at or above which the fetch is skipped.
        stats: Statistics collector for this run.
        session_root: Parent directory for ephemeral checkouts
            (system temp directory when ``None``).
    """

    def __init__(
        self,
        transport: Transport,
        catalog: CorpusCatalog,
        cache: ContentCache | None = None,
        *,
        remote_url: str | None = None,
        version_ref: str | None = None,
        threshold: object = DEFAULT_CACHE_THRESHOLD,
        stats: CacheStats | None = None,
        session_root: Path | None = None,
    ) -> None:
        self.transport = transport
        self.catalog = catalog
        self.cache = cache
        self.remote_url = remote_url
        self.version_ref = version_ref
        self.threshold = resolve_threshold(threshold)
        self.stats = stats or CacheStats()
        self.session_root = session_root
        self.fetch_count = 0

    # ------------------------------------------------------------------
    # Fetch decision
    # ------------------------------------------------------------------

    def calculate_cache_hit_ratio(self, candidates: dict[str, str]) -> float:
        """Fraction of candidate digests whose blob is in the cache.

        Args:
            candidates: Manifest path to expected digest.

        Returns:
            ``hits / len(candidates)``; ``0.0`` for no candidates, no
            cache, or any cache failure.
        """
        if not candidates or self.cache is None:
            return 0.0

        started = time.monotonic()
        hits = 0
        try:
            for path, digest in candidates.items():
                if self.cache.get(digest) is not None:
                    hits += 1
                    self.stats.record_cache_hit()
                else:
                    logger.debug("Cache miss: %s", path)
                    self.stats.record_cache_miss()
        except Exception as exc:
            # Includes CacheError; the cache is only an optimisation.
            logger.debug("Cache lookup failed, treating as uncached: %s", exc)
            return 0.0
        finally:
            self.stats.add_cache_check_time(time.monotonic() - started)

        return hits / max(1, len(candidates))

    def sync_needed(
        self, cache_hit_ratio: float, force: bool = False, covered: bool = True
    ) -> bool:
        """Return ``True`` unless the cache makes the fetch redundant.

        Args:
            cache_hit_ratio: Ratio from ``calculate_cache_hit_ratio()``.
            force: Always fetch.
            covered: Whether the snapshot covers every requested category.
        """
        try:
            if force or not covered:
                return True
            return cache_hit_ratio < self.threshold
        except Exception as exc:
            logger.debug("Fetch decision failed, fetching: %s", exc)
            return True

    def check_target_matches(
        self, target_root: Path, candidates: dict[str, str]
    ) -> bool:
        """Return ``True`` if every candidate exists in *target_root*
        with the expected digest."""
        for path, digest in candidates.items():
            try:
                if file_digest(target_root / path) != digest:
                    logger.debug("Target differs: %s", path)
                    return False
            except OSError:
                logger.debug("Target missing: %s", path)
                return False
        return True

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def sync(
        self,
        target_root: Path,
        categories: list[str],
        *,
        saved: SyncManifest | None = None,
        force: bool = False,
    ) -> SyncResult:
        """Bring *target_root* in line with upstream.

        Args:
            target_root: Directory the corpus is materialised into.
            categories: Requested categories (``core`` implied).
            saved: Last saved manifest, if any.
            force: Skip the cache decision and always fetch.

        Returns:
            ``SyncResult`` with copied/skipped/errors lists.

        Raises:
            TargetError: If *target_root* cannot be created.
            TransportUnavailable / TransportCommandFailed: Fetch failed.
            ConfigurationError: No remote URL configured.
        """
        self.stats.start_sync_timing()
        try:
            selected = self.catalog.normalize_categories(categories)
            candidates, covered = self._candidates(saved, selected)

            ratio = 0.0
            needed = True
            try:
                ratio = self.calculate_cache_hit_ratio(candidates)
                needed = self.sync_needed(ratio, force=force, covered=covered)
            except Exception as exc:
                logger.debug("Fetch decision failed, fetching: %s", exc)
                needed = True

            logger.info(
                "Cache hit ratio %.2f (threshold %.2f, %d candidates)",
                ratio,
                self.threshold,
                len(candidates),
            )

            if not needed:
                if self.check_target_matches(target_root, candidates):
                    self.stats.record_fetch_skipped()
                    logger.info("Target up to date; skipping fetch")
                    return SyncResult(
                        skipped=sorted(candidates),
                        fetched=False,
                        version=saved.version if saved else None,
                        cache_hit_ratio=ratio,
                        manifest=candidates,
                    )
                logger.info("Target differs from last sync; fetching")

            with self.upstream(selected) as (source_root, revision):
                copied, skipped, errors, manifest = self.materialize(
                    source_root, target_root, selected, previous=candidates
                )
            return SyncResult(
                copied=copied,
                skipped=skipped,
                errors=errors,
                fetched=True,
                version=revision,
                cache_hit_ratio=ratio,
                manifest=manifest,
            )
        finally:
            self.stats.end_sync_timing()

    # ------------------------------------------------------------------
    # Upstream access
    # ------------------------------------------------------------------

    @contextmanager
    def upstream(self, categories: list[str]) -> Iterator[tuple[Path, str]]:
        """Fetch upstream into an ephemeral checkout.

        Yields:
            ``(corpus root inside the checkout, fetched revision)``.  The
            checkout is removed when the block exits.
        """
        if not self.remote_url:
            raise ConfigurationError(
                "No remote URL configured",
                operation="fetch",
            )

        paths = self.catalog.sparse_paths(categories)
        directory = new_session_dir(self.session_root)
        with sparse_checkout(self.transport, paths, directory) as session_dir:
            revision = self.transport.fetch(self.remote_url, self.version_ref)
            self.fetch_count += 1
            yield self.catalog.corpus_root(session_dir), revision

    def materialize(
        self,
        source_root: Path,
        target_root: Path,
        categories: list[str],
        previous: dict[str, str] | None = None,
    ) -> tuple[list[str], list[str], list[FileError], dict[str, str]]:
        """Copy changed files from *source_root* into *target_root*.

        Returns:
            ``(copied, skipped, errors, manifest)`` where *manifest* maps
            every upstream file to its digest, except that a file which
            failed keeps its digest from *previous* (or is left out), so
            the manifest only claims content the target really holds.

        Raises:
            TargetError: If *target_root* cannot be created.
        """
        try:
            target_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise TargetError(str(target_root), str(exc)) from exc

        copied: list[str] = []
        skipped: list[str] = []
        errors: list[FileError] = []
        manifest: dict[str, str] = {}

        for rel in self.catalog.enumerate(source_root, categories):
            try:
                data = (source_root / rel).read_bytes()
            except OSError as exc:
                errors.append(FileError(file=rel, error=str(exc)))
                continue

            digest = content_digest(data)
            manifest[rel] = digest
            dest = target_root / rel
            try:
                if dest.is_file() and file_digest(dest) == digest:
                    skipped.append(rel)
                else:
                    write_bytes_atomic(dest, data)
                    copied.append(rel)
            except OSError as exc:
                logger.error("Failed to copy %s: %s", rel, exc)
                errors.append(FileError(file=rel, error=str(exc)))
                continue

            self.cache_put(data)

        logger.info(
            "Materialized %d copied, %d skipped, %d errors",
            len(copied),
            len(skipped),
            len(errors),
        )
        if errors:
            manifest = settle_manifest(
                manifest, previous or {}, [e.file for e in errors]
            )
        return copied, skipped, errors, manifest

    def cache_put(self, data: bytes) -> None:
        """Store *data* in the cache; failures are logged and ignored."""
        if self.cache is None:
            return
        try:
            self.cache.put(data)
        except (CacheError, OSError) as exc:
            logger.debug("Cache put failed: %s", exc)
            return
        self.stats.record_cache_put()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _candidates(
        self, saved: SyncManifest | None, categories: list[str]
    ) -> tuple[dict[str, str], bool]:
        """Candidate paths and whether the snapshot covers *categories*."""
        if saved is None:
            return {}, False
        candidates = self.catalog.filter_manifest(saved.files, categories)
        covered = set(categories) <= set(saved.categories)
        return candidates, covered
