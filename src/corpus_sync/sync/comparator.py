"""Pure manifest comparison and conflict detection.

Nothing in this module touches the filesystem or the network.  Every
function takes manifests (``path -> digest`` dicts) or comparison
results and returns new values.

Three-way model used by ``update``::

    local drift  = compare(local tree,  saved manifest)
    remote drift = compare(upstream,    saved manifest)

A path in both drift sets is a conflict unless both sides arrived at the
same content (converged).
"""

from __future__ import annotations

from .models import ChangeKind, ComparisonResult, Conflict, ConflictType

# (local change, remote change) -> conflict type
_CONFLICT_TYPES: dict[tuple[ChangeKind, ChangeKind], ConflictType] = {
    (ChangeKind.MODIFIED, ChangeKind.MODIFIED): ConflictType.BOTH_MODIFIED,
    (ChangeKind.ADDED, ChangeKind.ADDED): ConflictType.BOTH_ADDED,
    (
        ChangeKind.MODIFIED,
        ChangeKind.REMOVED,
    ): ConflictType.LOCAL_MODIFIED_REMOTE_REMOVED,
    (
        ChangeKind.REMOVED,
        ChangeKind.MODIFIED,
    ): ConflictType.LOCAL_REMOVED_REMOTE_MODIFIED,
}


def compare(
    current: dict[str, str], saved: dict[str, str]
) -> ComparisonResult:
    """Partition every path of *current* and *saved* into one bucket.

    - added: only in *current*
    - removed: only in *saved*
    - modified: in both, digest differs
    - unchanged: in both, digest equal

    Returns:
        A ``ComparisonResult`` with each bucket sorted.
    """
    added: list[str] = []
    modified: list[str] = []
    removed: list[str] = []
    unchanged: list[str] = []

    for path in sorted(current.keys() | saved.keys()):
        if path not in saved:
            added.append(path)
        elif path not in current:
            removed.append(path)
        elif current[path] != saved[path]:
            modified.append(path)
        else:
            unchanged.append(path)

    return ComparisonResult(
        added=added, modified=modified, removed=removed, unchanged=unchanged
    )


def detect_conflicts(
    local: ComparisonResult,
    remote: ComparisonResult,
    local_files: dict[str, str],
    remote_files: dict[str, str],
) -> list[Conflict]:
    """Find paths that drifted both locally and upstream.

    Args:
        local: Local tree vs saved manifest.
        remote: Upstream vs saved manifest.
        local_files: Local tree manifest.
        remote_files: Upstream manifest.

    Returns:
        Conflicts sorted by path.  Converged paths (equal digests on
        both sides, or removed on both sides) are not conflicts.
    """
    conflicts: list[Conflict] = []
    for path in sorted(local.changed_paths & remote.changed_paths):
        if local_files.get(path) == remote_files.get(path):
            continue
        local_kind = local.kind_of(path)
        remote_kind = remote.kind_of(path)
        conflict_type = _CONFLICT_TYPES.get((local_kind, remote_kind))
        if conflict_type is None:
            # added vs modified cannot happen against a shared base
            continue
        conflicts.append(
            Conflict(
                path=path,
                conflict_type=conflict_type,
                local_change=local_kind,
                remote_change=remote_kind,
            )
        )
    return conflicts


def plan_update(
    local: ComparisonResult,
    remote: ComparisonResult,
    local_files: dict[str, str],
    remote_files: dict[str, str],
    *,
    force: bool = False,
) -> tuple[list[str], list[str], list[str], list[Conflict]]:
    """Decide which upstream changes an update applies.

    Only upstream changes are applied; purely local edits are preserved.
    Conflicted paths are applied only when *force* is set, in which case
    the upstream version wins.

    Returns:
        ``(to_write, to_delete, preserved, conflicts)`` where
        *to_write* are upstream added/modified paths, *to_delete* are
        upstream removed paths still present locally, and *preserved*
        are local-only changes left untouched.
    """
    conflicts = detect_conflicts(local, remote, local_files, remote_files)
    conflicted = {c.path for c in conflicts}

    to_write: list[str] = []
    for path in remote.added + remote.modified:
        if path in conflicted and not force:
            continue
        if local_files.get(path) == remote_files[path]:
            continue
        to_write.append(path)

    to_delete: list[str] = []
    for path in remote.removed:
        if path not in local_files:
            continue
        if path in conflicted and not force:
            continue
        to_delete.append(path)

    preserved = sorted(local.changed_paths - remote.changed_paths)
    return sorted(to_write), sorted(to_delete), preserved, conflicts


def settle_manifest(
    upstream: dict[str, str],
    previous: dict[str, str],
    failed: list[str],
) -> dict[str, str]:
    """Manifest to record after applying *upstream* with some failures.

    A failed path keeps its *previous* digest, since the project still
    holds the old bytes, or is left out when it was never recorded.
    The next update sees it as an upstream change again and retries it.
    """
    files = dict(upstream)
    for path in failed:
        if path in previous:
            files[path] = previous[path]
        else:
            files.pop(path, None)
    return files


def sync_coverage(comparison: ComparisonResult | None) -> tuple[float | None, str]:
    """Share of tracked files that are unchanged since the last sync.

    Returns:
        ``(percent, rating)``.  Rating is ``perfect`` (100), ``good``
        (>= 80), ``fair`` (>= 50) or ``poor``; ``(None, "no_sync_state")``
        when there is nothing to compare against.  An empty comparison
        counts as 100 percent.
    """
    if comparison is None:
        return None, "no_sync_state"

    total = comparison.total_files
    if total == 0 or not comparison.has_changes:
        return 100.0, "perfect"

    ratio = len(comparison.unchanged) / total * 100
    if ratio >= 80.0:
        rating = "good"
    elif ratio >= 50.0:
        rating = "fair"
    else:
        rating = "poor"
    return round(ratio, 1), rating
