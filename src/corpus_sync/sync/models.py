"""Pydantic models for the sync engine and workflows.

Defines the data contracts shared across the sync modules:

- ``ChangeKind``: bucket of a path in a manifest comparison.
- ``ConflictType``: how a path diverged on both sides.
- ``SyncManifest``: snapshot of one successful sync.
- ``ComparisonResult``: total partition of two manifests.
- ``Conflict``: one conflicted path plus resolution options.
- ``FileError``: a per-file failure recorded without aborting.
- ``SyncResult``: outcome of one engine run.
- ``StatusReport`` / ``DiffReport`` / ``UpdateReport``: workflow output.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

SCHEMA_VERSION = 1


class ChangeKind(str, Enum):
    """Bucket of a path when comparing a current and a saved manifest."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    UNCHANGED = "unchanged"


class ConflictType(str, Enum):
    """How a path diverged locally and upstream."""

    BOTH_MODIFIED = "both_modified"
    BOTH_ADDED = "both_added"
    LOCAL_MODIFIED_REMOTE_REMOVED = "local_modified_remote_removed"
    LOCAL_REMOVED_REMOTE_MODIFIED = "local_removed_remote_modified"


_RESOLUTIONS: dict[ConflictType, list[str]] = {
    ConflictType.BOTH_MODIFIED: [
        "keep local: discard the upstream change for this file",
        "take remote: corpus-sync update --force",
        "merge manually, then run corpus-sync update --force",
    ],
    ConflictType.BOTH_ADDED: [
        "keep local: rename or remove your file",
        "take remote: corpus-sync update --force",
    ],
    ConflictType.LOCAL_MODIFIED_REMOTE_REMOVED: [
        "keep local: move the file outside the corpus directory",
        "take remote (delete): corpus-sync update --force",
    ],
    ConflictType.LOCAL_REMOVED_REMOTE_MODIFIED: [
        "keep local (stay deleted): ignore the upstream change",
        "take remote (restore): corpus-sync update --force",
    ],
}


class SyncManifest(BaseModel):
    """Snapshot of one successful sync.

    Attributes:
        timestamp: ISO 8601 time the snapshot was taken.
        version: Source version reference (commit id or ref name).
        categories: Categories covered by the snapshot.
        files: Manifest path to SHA-256 digest.
        schema_version: Persisted layout version.
        tool_version: corpus-sync version that wrote the snapshot.
        cache_hit_ratio: Hit ratio observed during the sync.
        sync_duration_ms: Wall time of the sync.
    """

    timestamp: str
    version: str | None = None
    categories: list[str] = []
    files: dict[str, str] = {}
    schema_version: int = SCHEMA_VERSION
    tool_version: str | None = None
    cache_hit_ratio: float | None = None
    sync_duration_ms: float | None = None

    model_config = {"frozen": True}

    @property
    def total_files(self) -> int:
        return len(self.files)


class ComparisonResult(BaseModel):
    """Total, disjoint partition of ``current`` and ``saved`` paths.

    Every path in ``current ∪ saved`` appears in exactly one list.
    """

    added: list[str] = []
    modified: list[str] = []
    removed: list[str] = []
    unchanged: list[str] = []

    model_config = {"frozen": True}

    @property
    def total_changes(self) -> int:
        return len(self.added) + len(self.modified) + len(self.removed)

    @property
    def total_files(self) -> int:
        return self.total_changes + len(self.unchanged)

    @property
    def has_changes(self) -> bool:
        return self.total_changes > 0

    @property
    def changed_paths(self) -> set[str]:
        return set(self.added) | set(self.modified) | set(self.removed)

    def kind_of(self, path: str) -> ChangeKind | None:
        """Return the bucket holding *path*, or ``None``."""
        for kind in ChangeKind:
            if path in getattr(self, kind.value):
                return kind
        return None

    def to_dict(self) -> dict:
        return {
            "added": self.added,
            "modified": self.modified,
            "removed": self.removed,
            "unchanged": self.unchanged,
            "total_changes": self.total_changes,
        }


class Conflict(BaseModel):
    """A path changed both locally and upstream since the last sync.

    Attributes:
        path: Manifest path.
        conflict_type: How the two sides diverged.
        local_change: Local bucket (``modified``, ``added``, ``removed``).
        remote_change: Upstream bucket.
    """

    path: str
    conflict_type: ConflictType
    local_change: ChangeKind
    remote_change: ChangeKind

    model_config = {"frozen": True}

    @property
    def resolution_options(self) -> list[str]:
        return list(_RESOLUTIONS[self.conflict_type])

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "type": self.conflict_type.value,
            "local_change": self.local_change.value,
            "remote_change": self.remote_change.value,
            "resolution_options": self.resolution_options,
        }


class FileError(BaseModel):
    """A single file that failed without aborting the run."""

    file: str
    error: str

    model_config = {"frozen": True}


class SyncResult(BaseModel):
    """Outcome of one sync engine run.

    Attributes:
        copied: Paths written to the target tree.
        skipped: Paths already up to date.
        errors: Per-file failures.
        fetched: Whether the transport was invoked.
        version: Revision fetched, when ``fetched``.
        cache_hit_ratio: Ratio computed before deciding to fetch.
        manifest: Source manifest the target was synced against.
    """

    copied: list[str] = []
    skipped: list[str] = []
    errors: list[FileError] = []
    fetched: bool = False
    version: str | None = None
    cache_hit_ratio: float = 0.0
    manifest: dict[str, str] = {}

    model_config = {"frozen": True}

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def total_files(self) -> int:
        return len(self.copied) + len(self.skipped) + len(self.errors)


class StatusReport(BaseModel):
    """Local drift of a project tree against its saved manifest."""

    target: str
    categories: list[str]
    has_state: bool
    comparison: ComparisonResult | None = None
    synced_version: str | None = None
    synced_at: str | None = None
    state_age_seconds: float | None = None
    by_category: dict[str, int] = {}
    coverage_percent: float | None = None
    coverage_rating: str = "no_sync_state"
    cache: dict | None = None

    model_config = {"frozen": True}


class DiffReport(BaseModel):
    """Pending upstream changes against the saved manifest."""

    target: str
    categories: list[str]
    version: str | None
    comparison: ComparisonResult
    has_state: bool = True
    text_diffs: dict[str, str] = {}

    model_config = {"frozen": True}


class UpdateReport(BaseModel):
    """Plan (and, unless dry-run, outcome) of an update.

    Attributes:
        to_write: Upstream added or modified paths to write locally.
        to_delete: Upstream removed paths to delete locally.
        preserved: Locally changed paths left untouched.
        conflicts: Paths changed on both sides.
        applied / deleted: What was actually written / removed.
        errors: Per-file failures.
    """

    target: str
    categories: list[str]
    version: str | None
    dry_run: bool = False
    force: bool = False
    to_write: list[str] = []
    to_delete: list[str] = []
    preserved: list[str] = []
    conflicts: list[Conflict] = []
    applied: list[str] = []
    deleted: list[str] = []
    errors: list[FileError] = []

    model_config = {"frozen": True}

    @property
    def blocked(self) -> bool:
        """Conflicts exist and were not overridden."""
        return bool(self.conflicts) and not self.force

    @property
    def has_changes(self) -> bool:
        return bool(self.to_write or self.to_delete)
