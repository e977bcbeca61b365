"""Report formatting functions.

Provides human-readable and machine-readable output for the workflows:

- ``format_sync_result`` / ``sync_result_to_json`` -- after ``sync``.
- ``format_status`` / ``status_to_json`` -- local drift.
- ``format_diff`` / ``diff_to_json`` -- pending upstream changes.
- ``format_update`` / ``update_to_json`` -- update plan and outcome.
- ``format_error`` / ``error_to_json`` -- diagnosis plus numbered
  remediation list.
- ``unified_text_diff`` -- unified diff between two texts.
"""

from __future__ import annotations

import difflib
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from corpus_sync.cache import CacheStats
    from corpus_sync.errors import CorpusSyncError

    from .models import (
        ComparisonResult,
        DiffReport,
        StatusReport,
        SyncResult,
        UpdateReport,
    )

# Paths listed per section before collapsing to a count.
_MAX_LISTED = 50


def _listing(title: str, paths: list[str], marker: str = " ") -> list[str]:
    if not paths:
        return []
    lines = [f"{title} ({len(paths)}):"]
    for path in paths[:_MAX_LISTED]:
        lines.append(f"  {marker} {path}")
    if len(paths) > _MAX_LISTED:
        lines.append(f"    ... and {len(paths) - _MAX_LISTED} more")
    lines.append("")
    return lines


def _format_age(seconds: float | None) -> str:
    if seconds is None:
        return "unknown"
    if seconds < 60:
        return f"{int(seconds)}s ago"
    if seconds < 3600:
        return f"{int(seconds // 60)}m ago"
    if seconds < 86400:
        return f"{int(seconds // 3600)}h ago"
    return f"{int(seconds // 86400)}d ago"


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    value = size / 1024
    for unit in ("KiB", "MiB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GiB"


def _comparison_sections(comparison: ComparisonResult) -> list[str]:
    lines: list[str] = []
    lines += _listing("Added", comparison.added, "+")
    lines += _listing("Modified", comparison.modified, "M")
    lines += _listing("Removed", comparison.removed, "-")
    return lines


# ------------------------------------------------------------------
# sync
# ------------------------------------------------------------------


def format_sync_result(
    result: SyncResult,
    stats: CacheStats | None = None,
    cache_stats: dict[str, Any] | None = None,
    verbose: bool = False,
) -> str:
    """Format a sync result as human-readable text.

    Skipped paths are summarised by count unless *verbose*.

    Args:
        result: The engine result.
        stats: Cache statistics to append (``sync --stats``).
        cache_stats: ``ContentCache.directory_stats()`` output.
        verbose: List skipped paths too.
    """
    lines: list[str] = []
    if result.fetched:
        version = (result.version or "unknown")[:12]
        lines.append(f"Synced corpus at {version}")
    else:
        lines.append("Corpus already up to date (fetch skipped)")
    lines.append(
        f"{len(result.copied)} copied, {len(result.skipped)} skipped, "
        f"{len(result.errors)} errors"
    )
    lines.append("")

    lines += _listing("Copied", result.copied, "+")
    if verbose:
        lines += _listing("Skipped (unchanged)", result.skipped)

    if result.errors:
        lines.append(f"Errors ({len(result.errors)}):")
        for err in result.errors:
            lines.append(f"  {err.file}: {err.error}")
        lines.append("")

    if stats is not None:
        lines.append("Cache statistics:")
        lines.append(f"  Hits:         {stats.cache_hits}")
        lines.append(f"  Misses:       {stats.cache_misses}")
        lines.append(f"  Stored:       {stats.cache_puts}")
        lines.append(f"  Hit ratio:    {stats.cache_hit_ratio:.1%}")
        lines.append(
            f"  Fetch:        {'skipped' if stats.fetch_skipped else 'performed'}"
        )
        lines.append(
            f"  Cache check:  {stats.cache_check_time * 1000:.1f} ms"
        )
        lines.append(f"  Total time:   {stats.total_sync_time * 1000:.1f} ms")
        if cache_stats is not None:
            lines.append(f"  Directory:    {cache_stats['path']}")
            lines.append(
                f"  Blobs:        {cache_stats['file_count']} "
                f"({_format_size(cache_stats['size'])}, "
                f"{cache_stats['utilization_percent']}% of capacity)"
            )
        lines.append("")

    return "\n".join(lines).rstrip()


def sync_result_to_json(
    result: SyncResult,
    stats: CacheStats | None = None,
    cache_stats: dict[str, Any] | None = None,
) -> dict:
    data: dict[str, Any] = {
        "fetched": result.fetched,
        "version": result.version,
        "cache_hit_ratio": round(result.cache_hit_ratio, 4),
        "copied": result.copied,
        "skipped": result.skipped,
        "errors": [err.model_dump() for err in result.errors],
        "counts": {
            "copied": len(result.copied),
            "skipped": len(result.skipped),
            "errors": len(result.errors),
        },
    }
    if stats is not None:
        data["stats"] = stats.to_dict()
    if cache_stats is not None:
        data["cache"] = cache_stats
    return data


# ------------------------------------------------------------------
# status
# ------------------------------------------------------------------


def format_status(report: StatusReport, verbose: bool = False) -> str:
    """Format local drift as human-readable text."""
    lines = [f"Corpus status for {report.target}"]
    lines.append(f"Categories: {', '.join(report.categories)}")

    if not report.has_state:
        lines.append("")
        lines.append("No sync state found. Run 'corpus-sync sync' first.")
        if report.by_category:
            lines.append("")
            lines.append("Local files by category:")
            for name, count in report.by_category.items():
                lines.append(f"  {name}: {count}")
        return "\n".join(lines)

    comparison = report.comparison
    assert comparison is not None
    lines.append(
        f"Last sync: {report.synced_at} "
        f"({_format_age(report.state_age_seconds)})"
    )
    if report.synced_version:
        lines.append(f"Version: {report.synced_version[:12]}")
    lines.append(
        f"Coverage: {report.coverage_percent}% ({report.coverage_rating})"
    )
    lines.append("")

    if not comparison.has_changes:
        lines.append(
            f"No local changes ({len(comparison.unchanged)} files unchanged)"
        )
    else:
        lines.append(
            f"{comparison.total_changes} local changes, "
            f"{len(comparison.unchanged)} unchanged"
        )
        lines.append("")
        lines += _comparison_sections(comparison)

    if verbose:
        if report.by_category:
            lines.append("")
            lines.append("Files by category:")
            for name, count in report.by_category.items():
                lines.append(f"  {name}: {count}")
        if report.cache:
            lines.append("")
            lines.append(
                f"Cache: {report.cache['file_count']} blobs in "
                f"{report.cache['path']} "
                f"({'healthy' if report.cache['healthy'] else 'unhealthy'})"
            )
            for diag in report.cache.get("diagnostics", []):
                lines.append(f"  ! {diag['type']}")

    return "\n".join(lines).rstrip()


def status_to_json(report: StatusReport) -> dict:
    data: dict[str, Any] = {
        "target": report.target,
        "categories": report.categories,
        "has_sync_state": report.has_state,
        "synced_version": report.synced_version,
        "synced_at": report.synced_at,
        "state_age_seconds": report.state_age_seconds,
        "coverage": {
            "percent": report.coverage_percent,
            "rating": report.coverage_rating,
        },
        "by_category": report.by_category,
        "changes": (
            report.comparison.to_dict() if report.comparison else None
        ),
    }
    if report.cache is not None:
        data["cache"] = report.cache
    return data


# ------------------------------------------------------------------
# diff
# ------------------------------------------------------------------


def unified_text_diff(path: str, local_text: str, remote_text: str) -> str:
    """Unified diff from the local copy to the upstream copy of *path*."""
    diff = difflib.unified_diff(
        local_text.splitlines(keepends=True),
        remote_text.splitlines(keepends=True),
        fromfile=f"local/{path}",
        tofile=f"upstream/{path}",
    )
    return "".join(diff)


def format_diff(report: DiffReport, verbose: bool = False) -> str:
    """Format pending upstream changes as human-readable text."""
    comparison = report.comparison
    version = (report.version or "unknown")[:12]
    lines = [f"Upstream changes at {version} for {report.target}"]
    if not report.has_state:
        lines.append("(no sync state: every upstream file is new)")
    lines.append("")

    if not comparison.has_changes:
        lines.append("No upstream changes.")
        return "\n".join(lines)

    lines.append(f"{comparison.total_changes} upstream changes")
    lines.append("")
    lines += _comparison_sections(comparison)

    if verbose and report.text_diffs:
        for text in report.text_diffs.values():
            lines.append(text.rstrip())
            lines.append("")

    lines.append("Run 'corpus-sync update' to apply these changes.")
    return "\n".join(lines).rstrip()


def diff_to_json(report: DiffReport) -> dict:
    return {
        "target": report.target,
        "categories": report.categories,
        "version": report.version,
        "has_sync_state": report.has_state,
        "changes": report.comparison.to_dict(),
    }


# ------------------------------------------------------------------
# update
# ------------------------------------------------------------------


def format_update(report: UpdateReport) -> str:
    """Format an update plan (dry run) or outcome as human-readable text."""
    lines: list[str] = []
    if report.dry_run:
        lines.append("DRY RUN -- No changes will be made")
    version = (report.version or "unknown")[:12]
    lines.append(f"Update {report.target} to {version}")
    lines.append("")

    if report.conflicts:
        title = "Conflicts"
        if report.force:
            title += " (overridden by --force, upstream wins)"
        lines.append(f"{title}:")
        for conflict in report.conflicts:
            lines.append(
                f"  ! {conflict.path} [{conflict.conflict_type.value}]"
            )
            if not report.force:
                for n, option in enumerate(conflict.resolution_options, 1):
                    lines.append(f"      {n}. {option}")
        lines.append("")

    if report.dry_run or report.blocked:
        lines += _listing("Would write", report.to_write, "+")
        lines += _listing("Would delete", report.to_delete, "-")
    else:
        lines += _listing("Updated", report.applied, "+")
        lines += _listing("Deleted", report.deleted, "-")

    lines += _listing("Local changes preserved", report.preserved, "M")

    if report.errors:
        lines.append(f"Errors ({len(report.errors)}):")
        for err in report.errors:
            lines.append(f"  {err.file}: {err.error}")
        lines.append("")

    if not report.has_changes and not report.conflicts:
        lines.append("Already up to date.")

    return "\n".join(lines).rstrip()


def update_to_json(report: UpdateReport) -> dict:
    return {
        "target": report.target,
        "categories": report.categories,
        "version": report.version,
        "dry_run": report.dry_run,
        "force": report.force,
        "to_write": report.to_write,
        "to_delete": report.to_delete,
        "preserved": report.preserved,
        "conflicts": [c.to_dict() for c in report.conflicts],
        "applied": report.applied,
        "deleted": report.deleted,
        "errors": [err.model_dump() for err in report.errors],
    }


# ------------------------------------------------------------------
# errors
# ------------------------------------------------------------------


def format_error(error: CorpusSyncError, verbose: bool = False) -> str:
    """Format a fatal error with a numbered remediation list.

    In verbose mode the error context and the chain of underlying
    exceptions are appended.
    """
    lines = [f"Error: {error.message}"]

    stderr = (getattr(error, "stderr", "") or "").strip()
    if stderr:
        lines.append(f"  {stderr.splitlines()[-1]}")

    for conflict in getattr(error, "conflicts", []):
        lines.append(f"  ! {conflict.path} [{conflict.conflict_type.value}]")

    suggestions = error.recovery_suggestions()
    if suggestions:
        lines.append("")
        lines.append("To resolve this issue, try:")
        for n, suggestion in enumerate(suggestions, 1):
            lines.append(f"  {n}. {suggestion}")

    if verbose:
        context = {k: v for k, v in error.context.items() if v is not None}
        if error.operation or context:
            lines.append("")
            lines.append("Details:")
            if error.operation:
                lines.append(f"  operation: {error.operation}")
            for key, value in context.items():
                lines.append(f"  {key}: {value}")
        if stderr:
            lines.append("")
            lines.append("Diagnostic output:")
            for line in stderr.splitlines():
                lines.append(f"  {line}")
        cause = error.__cause__
        while cause is not None:
            lines.append(f"Caused by: {type(cause).__name__}: {cause}")
            cause = cause.__cause__

    return "\n".join(lines)


def error_to_json(error: CorpusSyncError) -> dict:
    data = error.to_dict()
    data["recovery_suggestions"] = error.recovery_suggestions()
    if error.__cause__ is not None:
        data["cause"] = f"{type(error.__cause__).__name__}: {error.__cause__}"
    return data
