"""User-facing workflows: sync, status, diff and update.

``CorpusWorkflow`` binds one project directory to its collaborators
(transport, cache, state store, engine) and exposes one method per
command.  Per-path lifecycle::

    unsynced -> clean -> locally modified -> conflicted -> clean
                                 (update --force or discard local edit)

``status`` never touches the network.  ``diff`` and ``update`` fetch
upstream into an ephemeral checkout that is removed afterwards.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from corpus_sync.cache import CacheStats, ContentCache
from corpus_sync.config import Config
from corpus_sync.core.transport import GitTransport, Transport
from corpus_sync.errors import CacheError, ConflictDetected
from corpus_sync.file_handler import read_file_with_encoding, write_bytes_atomic

from .catalog import CorpusCatalog
from .comparator import compare, plan_update, settle_manifest, sync_coverage
from .engine import SyncEngine
from .models import (
    DiffReport,
    FileError,
    StatusReport,
    SyncManifest,
    SyncResult,
    UpdateReport,
)
from .reporter import unified_text_diff
from .state import SyncStateStore, utc_timestamp

logger = logging.getLogger(__name__)


class CorpusWorkflow:
    """Run sync/status/diff/update against one project.

    Args:
        target: Project directory.
        engine: Sync engine (owns transport, catalog and cache).
        state_store: Sync state store for *target*.
        docs_path: Corpus directory relative to *target*.
    """

    def __init__(
        self,
        target: Path,
        engine: SyncEngine,
        state_store: SyncStateStore,
        docs_path: str = "docs/corpus",
    ) -> None:
        self.target = Path(target)
        self.engine = engine
        self.state_store = state_store
        self.docs_root = self.target / docs_path
        self.catalog = engine.catalog

    @classmethod
    def from_config(
        cls,
        config: Config,
        target: Path,
        *,
        transport: Transport | None = None,
        use_cache: bool = True,
    ) -> CorpusWorkflow:
        """Wire the collaborators described by *config*."""
        cache = None
        if use_cache:
            cache = ContentCache(
                config.cache_dir,
                max_bytes=config.cache_max_bytes,
                max_entries=config.cache_max_entries,
            )
        engine = SyncEngine(
            transport or GitTransport(timeout=config.fetch_timeout),
            CorpusCatalog(config.source_root),
            cache,
            remote_url=config.remote_url,
            version_ref=config.version_ref,
            threshold=config.cache_threshold,
            stats=CacheStats(),
        )
        return cls(
            target,
            engine,
            SyncStateStore(config.cache_dir, target),
            docs_path=config.docs_path,
        )

    @property
    def cache(self) -> ContentCache | None:
        return self.engine.cache

    @property
    def stats(self) -> CacheStats:
        return self.engine.stats

    # ------------------------------------------------------------------
    # sync
    # ------------------------------------------------------------------

    def sync(
        self, categories: list[str] | None = None, *, force: bool = False
    ) -> SyncResult:
        """Materialise the corpus, fetching only when the cache says so.

        The saved manifest is replaced after every fetch.
        """
        selected = self.catalog.normalize_categories(categories)
        saved = self.state_store.load()
        started = time.monotonic()

        result = self.engine.sync(
            self.docs_root, selected, saved=saved, force=force
        )

        if result.fetched:
            self.state_store.save(
                SyncManifest(
                    timestamp=utc_timestamp(),
                    version=result.version,
                    categories=selected,
                    files=result.manifest,
                    cache_hit_ratio=round(result.cache_hit_ratio, 4),
                    sync_duration_ms=round(
                        (time.monotonic() - started) * 1000, 2
                    ),
                )
            )
        return result

    # ------------------------------------------------------------------
    # status
    # ------------------------------------------------------------------

    def status(self, categories: list[str] | None = None) -> StatusReport:
        """Local drift against the saved manifest.  No network access."""
        saved = self.state_store.load()
        if categories:
            selected = self.catalog.normalize_categories(categories)
        elif saved is not None:
            selected = self.catalog.normalize_categories(saved.categories)
        else:
            selected = self.catalog.discover_categories(self.docs_root)

        current = self.catalog.build_manifest(self.docs_root, selected)
        cache_info = self._cache_info()

        if saved is None:
            return StatusReport(
                target=str(self.target),
                categories=selected,
                has_state=False,
                by_category=self.catalog.count_by_category(current),
                cache=cache_info,
            )

        comparison = compare(
            current, self.catalog.filter_manifest(saved.files, selected)
        )
        percent, rating = sync_coverage(comparison)
        return StatusReport(
            target=str(self.target),
            categories=selected,
            has_state=True,
            comparison=comparison,
            synced_version=saved.version,
            synced_at=saved.timestamp,
            state_age_seconds=self.state_store.age_seconds(),
            by_category=self.catalog.count_by_category(current),
            coverage_percent=percent,
            coverage_rating=rating,
            cache=cache_info,
        )

    # ------------------------------------------------------------------
    # diff
    # ------------------------------------------------------------------

    def diff(
        self,
        categories: list[str] | None = None,
        *,
        with_text: bool = False,
    ) -> DiffReport:
        """Pending upstream changes against the saved manifest.

        Nothing in the project is modified.

        Args:
            categories: Category filter; defaults to the saved selection.
            with_text: Also build unified diffs (local vs upstream) for
                modified files.
        """
        saved = self.state_store.load()
        selected = self._selection(categories, saved)
        saved_files = (
            self.catalog.filter_manifest(saved.files, selected)
            if saved is not None
            else {}
        )

        text_diffs: dict[str, str] = {}
        with self.engine.upstream(selected) as (source_root, revision):
            upstream = self.catalog.build_manifest(source_root, selected)
            comparison = compare(upstream, saved_files)
            if with_text:
                for rel in comparison.modified:
                    text = self._text_diff(rel, source_root)
                    if text:
                        text_diffs[rel] = text

        return DiffReport(
            target=str(self.target),
            categories=selected,
            version=revision,
            comparison=comparison,
            has_state=saved is not None,
            text_diffs=text_diffs,
        )

    # ------------------------------------------------------------------
    # update
    # ------------------------------------------------------------------

    def update(
        self,
        categories: list[str] | None = None,
        *,
        dry_run: bool = False,
        force: bool = False,
    ) -> UpdateReport:
        """Apply upstream changes, refusing to overwrite local edits.

        Raises:
            ConflictDetected: Conflicts exist, *force* is not set and this
                is not a dry run.  Nothing is written in that case.
        """
        saved = self.state_store.load()
        selected = self._selection(categories, saved)
        saved_files = (
            self.catalog.filter_manifest(saved.files, selected)
            if saved is not None
            else {}
        )
        local = self.catalog.build_manifest(self.docs_root, selected)

        with self.engine.upstream(selected) as (source_root, revision):
            upstream = self.catalog.build_manifest(source_root, selected)
            local_drift = compare(local, saved_files)
            remote_drift = compare(upstream, saved_files)
            to_write, to_delete, preserved, conflicts = plan_update(
                local_drift, remote_drift, local, upstream, force=force
            )

            plan = dict(
                target=str(self.target),
                categories=selected,
                version=revision,
                dry_run=dry_run,
                force=force,
                to_write=to_write,
                to_delete=to_delete,
                preserved=preserved,
                conflicts=conflicts,
            )
            if conflicts and not force:
                if dry_run:
                    return UpdateReport(**plan)
                raise ConflictDetected(conflicts)
            if dry_run:
                return UpdateReport(**plan)

            applied, deleted, errors = self._apply(
                source_root, to_write, to_delete
            )

        self.state_store.save(
            SyncManifest(
                timestamp=utc_timestamp(),
                version=revision,
                categories=selected,
                files=settle_manifest(
                    upstream, saved_files, [e.file for e in errors]
                ),
            )
        )
        return UpdateReport(
            **plan, applied=applied, deleted=deleted, errors=errors
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _selection(
        self, categories: list[str] | None, saved: SyncManifest | None
    ) -> list[str]:
        if categories:
            return self.catalog.normalize_categories(categories)
        if saved is not None:
            return self.catalog.normalize_categories(saved.categories)
        return self.catalog.discover_categories(self.docs_root)

    def _apply(
        self, source_root: Path, to_write: list[str], to_delete: list[str]
    ) -> tuple[list[str], list[str], list[FileError]]:
        applied: list[str] = []
        deleted: list[str] = []
        errors: list[FileError] = []

        for rel in to_write:
            try:
                data = (source_root / rel).read_bytes()
                write_bytes_atomic(self.docs_root / rel, data)
            except OSError as exc:
                logger.error("Failed to update %s: %s", rel, exc)
                errors.append(FileError(file=rel, error=str(exc)))
                continue
            applied.append(rel)
            self.engine.cache_put(data)

        for rel in to_delete:
            try:
                (self.docs_root / rel).unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.error("Failed to delete %s: %s", rel, exc)
                errors.append(FileError(file=rel, error=str(exc)))
                continue
            deleted.append(rel)

        return applied, deleted, errors

    def _text_diff(self, rel: str, source_root: Path) -> str:
        local_path = self.docs_root / rel
        try:
            remote_text, _ = read_file_with_encoding(source_root / rel)
            if local_path.is_file():
                local_text, _ = read_file_with_encoding(local_path)
            else:
                local_text = ""
        except OSError as exc:
            logger.debug("Cannot diff %s: %s", rel, exc)
            return ""
        return unified_text_diff(rel, local_text, remote_text)

    def _cache_info(self) -> dict | None:
        if self.cache is None:
            return None
        try:
            return {
                **self.cache.directory_stats(),
                **self.cache.health_status(),
            }
        except CacheError as exc:
            logger.debug("Cache stats unavailable: %s", exc)
            return None
