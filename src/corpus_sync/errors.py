"""Error taxonomy for corpus-sync.

Every error raised across a module boundary is one of the classes below.
Each carries the operation that failed, a context dict (file path,
command, exit status), and a list of recovery suggestions that the CLI
renders as a numbered remediation list.

Transport failures are classified from the diagnostic text of the
version-control binary.  Classification is advisory: it only selects the
recovery text, and the raw diagnostic is always preserved on the error.
"""

from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------


class CorpusSyncError(Exception):
    """Base class for all corpus-sync errors.

    Args:
        message: Short human-readable diagnosis.
        operation: Name of the operation that failed (e.g. ``"fetch"``).
        context: Extra structured details (paths, commands, exit status).
    """

    fatal = True

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.context: dict[str, Any] = dict(context or {})

    def recovery_suggestions(self) -> list[str]:
        """Return remediation steps for this error, most useful first."""
        return [
            "Run the command again with --verbose for details",
            "Check the corpus-sync configuration file and environment",
        ]

    def to_dict(self) -> dict[str, Any]:
        """Structured representation for machine-readable output."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "operation": self.operation,
            "context": {k: v for k, v in self.context.items() if v is not None},
            "suggestions": self.recovery_suggestions(),
        }


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class TransportUnavailable(CorpusSyncError):
    """The version-control binary is not installed or not on PATH."""

    def __init__(self, binary: str = "git") -> None:
        super().__init__(
            f"{binary} binary not found",
            operation="begin_session",
            context={"binary": binary},
        )
        self.binary = binary

    def recovery_suggestions(self) -> list[str]:
        return [
            f"Install {self.binary} (e.g. 'apt install {self.binary}' or "
            f"'brew install {self.binary}')",
            f"Ensure '{self.binary}' is on your PATH: which {self.binary}",
        ]


# Recovery text per failure kind.
_TRANSPORT_RECOVERY: dict[str, list[str]] = {
    "permission": [
        "Check write permissions on the temporary directory",
        "Verify you have read access to the remote repository",
    ],
    "network": [
        "Check your internet connection",
        "Verify DNS resolution and proxy settings for the remote host",
        "Retry later, or raise the fetch timeout "
        "(CORPUS_SYNC_FETCH_TIMEOUT)",
    ],
    "auth": [
        "Verify your git credentials or SSH key for the remote",
        "Confirm the remote URL is correct and you have access to it",
    ],
    "lock": [
        "Another git process holds a lock; wait for it to finish",
        "Remove a stale '.git/index.lock' if no git process is running",
    ],
    "disk": [
        "Free disk space on the volume holding the temporary directory",
        "Clear the corpus-sync cache directory",
    ],
    "unknown": [
        "Re-run with --verbose to see the full git diagnostic",
        "Try the failing git command manually",
    ],
}


def classify_transport_failure(diagnostic: str) -> str:
    """Classify transport diagnostic text into a failure kind.

    Args:
        diagnostic: Captured stderr of the failed command.

    Returns:
        One of ``permission``, ``network``, ``auth``, ``lock``, ``disk``
        or ``unknown``.
    """
    text = diagnostic.lower()

    match text:
        case s if ".lock" in s or "another git process" in s:
            return "lock"
        case s if "no space left" in s or "disk quota" in s:
            return "disk"
        case s if (
            "authentication failed" in s
            or "could not read username" in s
            or "publickey" in s
            or "terminal prompts disabled" in s
            or "403" in s
        ):
            return "auth"
        case s if (
            "permission denied" in s
            or "access denied" in s
            or "read-only file system" in s
        ):
            return "permission"
        case s if (
            "could not resolve" in s
            or "timed out" in s
            or "connection refused" in s
            or "network is unreachable" in s
            or "unable to access" in s
            or "failed to connect" in s
            or "remote end hung up" in s
            or "early eof" in s
        ):
            return "network"
        case _:
            return "unknown"


class TransportCommandFailed(CorpusSyncError):
    """A version-control command exited non-zero or timed out.

    Args:
        message: Short diagnosis.
        kind: Failure class from ``classify_transport_failure()``.
        command: The command line that failed.
        exit_status: Process exit status (``None`` on timeout).
        stderr: Raw diagnostic text, kept verbatim.
        operation: Transport operation name.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: str = "unknown",
        command: str | None = None,
        exit_status: int | None = None,
        stderr: str = "",
        operation: str | None = None,
    ) -> None:
        super().__init__(
            message,
            operation=operation,
            context={
                "kind": kind,
                "command": command,
                "exit_status": exit_status,
            },
        )
        self.kind = kind
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr

    def recovery_suggestions(self) -> list[str]:
        return list(
            _TRANSPORT_RECOVERY.get(self.kind, _TRANSPORT_RECOVERY["unknown"])
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["stderr"] = self.stderr
        return data


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class InvalidPath(CorpusSyncError):
    """A path pattern was rejected before reaching the transport."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            f"Invalid path '{path}': {reason}",
            operation="restrict_to",
            context={"path": path},
        )
        self.path = path
        self.reason = reason

    def recovery_suggestions(self) -> list[str]:
        return [
            "Use relative paths without spaces, e.g. 'docs/tenets/'",
            "Remove leading '/' and any '../' segments",
        ]


class InvalidRemoteReference(CorpusSyncError):
    """The remote URL is malformed or uses an unsupported scheme."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(
            f"Invalid remote URL '{url}': {reason}",
            operation="fetch",
            context={"remote_url": url},
        )
        self.url = url

    def recovery_suggestions(self) -> list[str]:
        return [
            "Use an https://, ssh://, git@host: or file:// URL",
            "Set the remote with CORPUS_SYNC_REMOTE_URL or 'sync.remote_url' "
            "in the config file",
        ]


class InvalidVersionReference(CorpusSyncError):
    """The version reference (branch, tag or commit) is malformed."""

    def __init__(self, ref: str, reason: str) -> None:
        super().__init__(
            f"Invalid version reference '{ref}': {reason}",
            operation="fetch",
            context={"version_ref": ref},
        )
        self.ref = ref

    def recovery_suggestions(self) -> list[str]:
        return [
            "Use a branch, tag or commit name, e.g. 'main' or 'v1.2.0'",
            "Version references cannot contain spaces or '..' and cannot "
            "start with '-'",
        ]


# ---------------------------------------------------------------------------
# Cache and state
# ---------------------------------------------------------------------------


class CacheError(CorpusSyncError):
    """A content-cache operation failed.

    Never fatal: callers catch it and treat the operation as a miss or
    a no-op.
    """

    fatal = False

    def __init__(
        self,
        message: str,
        *,
        cache_path: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(
            message, operation=operation, context={"cache_path": cache_path}
        )
        self.cache_path = cache_path

    def recovery_suggestions(self) -> list[str]:
        return [
            "Check permissions and free space of the cache directory",
            "Clear the cache directory, or run with --no-cache",
            "Point CORPUS_SYNC_CACHE_DIR at another directory",
        ]


class SyncStateCorrupt(CorpusSyncError):
    """The persisted sync state cannot be read or fails validation.

    Treated as "no prior state": the operation proceeds as a first sync.
    """

    fatal = False

    def __init__(
        self,
        message: str = "Sync state is invalid or corrupted",
        *,
        state_file: str | None = None,
        validation_errors: list[str] | None = None,
    ) -> None:
        super().__init__(
            message, operation="load", context={"state_file": state_file}
        )
        self.state_file = state_file
        self.validation_errors = list(validation_errors or [])

    def recovery_suggestions(self) -> list[str]:
        suggestions = ["Run 'corpus-sync sync' to rebuild the sync state"]
        if self.state_file:
            suggestions.append(
                f"Delete the corrupted state file: rm '{self.state_file}'"
            )
        if self.validation_errors:
            suggestions.append(
                "Validation errors: " + ", ".join(self.validation_errors)
            )
        return suggestions


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


class ConflictDetected(CorpusSyncError):
    """``update`` found paths changed both locally and upstream.

    Args:
        conflicts: Conflict records (anything with a ``path`` attribute).
    """

    def __init__(self, conflicts: list[Any]) -> None:
        self.conflicts = list(conflicts)
        paths = [getattr(c, "path", str(c)) for c in self.conflicts]
        count = len(paths)
        message = f"{count} conflict{'s' if count != 1 else ''} detected"
        if paths:
            message += " in: " + ", ".join(paths[:3])
        if count > 3:
            message += f" and {count - 3} more"
        super().__init__(
            message, operation="update", context={"conflicts": count}
        )

    @property
    def conflicted_paths(self) -> list[str]:
        return [getattr(c, "path", str(c)) for c in self.conflicts]

    def recovery_suggestions(self) -> list[str]:
        return [
            "Review pending upstream changes: corpus-sync diff",
            "Preview the update: corpus-sync update --dry-run",
            "Take the upstream version: corpus-sync update --force",
            "Keep your version: discard or commit your local edit, then "
            "merge upstream changes manually",
        ]


class ConfigurationError(CorpusSyncError):
    """The configuration files or values are invalid."""

    def recovery_suggestions(self) -> list[str]:
        return [
            "Check the YAML syntax of .corpus_sync/config.yml",
            "Verify CORPUS_SYNC_* environment variables",
        ]


class TargetError(CorpusSyncError):
    """The target project tree cannot be created or read as a whole."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            f"Cannot use target directory '{path}': {reason}",
            operation="materialize",
            context={"path": path},
        )
        self.path = path

    def recovery_suggestions(self) -> list[str]:
        return [
            f"Check that '{self.path}' exists and is writable: "
            f"ls -la '{self.path}'",
            "Pass another directory with --directory",
        ]
